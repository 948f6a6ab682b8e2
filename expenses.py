from typing import Any, Dict, List

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import as_utc, create_document, to_object_id, utcnow
from errors import NotFoundError
from schemas import Expense, ExpenseUpdate


def list_expenses(db: Database, user_id) -> List[Dict[str, Any]]:
    cursor = db["expense"].find({"userId": to_object_id(user_id, "user id")}).sort("expenseDate", DESCENDING)
    return list(cursor)


def add_expense(db: Database, user_id, expense: Expense) -> Dict[str, Any]:
    data = expense.model_dump(by_alias=True)
    data["title"] = expense.title.strip()
    data["description"] = (expense.description or "").strip()
    data["expenseDate"] = as_utc(expense.expense_date) or utcnow()
    data["userId"] = to_object_id(user_id, "user id")
    inserted_id = create_document(db, "expense", data)
    return db["expense"].find_one({"_id": inserted_id})


def update_expense(db: Database, user_id, expense_id, changes: ExpenseUpdate) -> Dict[str, Any]:
    updates = changes.model_dump(by_alias=True, exclude_none=True)
    for key in ("title", "description"):
        if key in updates:
            updates[key] = updates[key].strip()
    if "expenseDate" in updates:
        updates["expenseDate"] = as_utc(updates["expenseDate"])
    updates["updatedAt"] = utcnow()
    doc = db["expense"].find_one_and_update(
        {"_id": to_object_id(expense_id, "expense id"), "userId": to_object_id(user_id, "user id")},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise NotFoundError("Expense not found or you do not have permission to update it")
    return doc


def delete_expense(db: Database, user_id, expense_id) -> Dict[str, Any]:
    doc = db["expense"].find_one_and_delete({
        "_id": to_object_id(expense_id, "expense id"),
        "userId": to_object_id(user_id, "user id"),
    })
    if not doc:
        raise NotFoundError("Expense not found or you do not have permission to delete it")
    return doc
