from typing import Any, Dict, List

from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, get_documents, to_object_id, utcnow
from errors import NotFoundError
from schemas import Client, ClientUpdate


def list_clients(db: Database, user_id) -> List[Dict[str, Any]]:
    return get_documents(db, "client", {"userId": to_object_id(user_id, "user id")})


def get_client(db: Database, user_id, client_id) -> Dict[str, Any]:
    doc = db["client"].find_one({
        "_id": to_object_id(client_id, "client id"),
        "userId": to_object_id(user_id, "user id"),
    })
    if not doc:
        raise NotFoundError("Client not found or you don't have permission to access it")
    return doc


def create_client(db: Database, user_id, client: Client) -> Dict[str, Any]:
    data = client.model_dump(by_alias=True)
    data["userId"] = to_object_id(user_id, "user id")
    data["projects"] = 0
    inserted_id = create_document(db, "client", data)
    return db["client"].find_one({"_id": inserted_id})


def update_client(db: Database, user_id, client_id, changes: ClientUpdate) -> Dict[str, Any]:
    updates = changes.model_dump(by_alias=True, exclude_none=True)
    updates["updatedAt"] = utcnow()
    doc = db["client"].find_one_and_update(
        {"_id": to_object_id(client_id, "client id"), "userId": to_object_id(user_id, "user id")},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise NotFoundError("Client not found")
    return doc


# Project counter: every change to Client.projects goes through these two

def adjust_project_count(db: Database, client_id, delta: int) -> int:
    """Add ``delta`` to the client's project counter, flooring at zero."""
    cid = to_object_id(client_id, "client id")
    if delta >= 0:
        return db["client"].update_one({"_id": cid}, {"$inc": {"projects": delta}}).modified_count
    result = db["client"].update_one(
        {"_id": cid, "projects": {"$gte": -delta}}, {"$inc": {"projects": delta}}
    )
    if result.matched_count:
        return result.modified_count
    return db["client"].update_one(
        {"_id": cid, "projects": {"$gt": 0}}, {"$set": {"projects": 0}}
    ).modified_count


def recount_projects(db: Database, client_id) -> int:
    cid = to_object_id(client_id, "client id")
    count = db["project"].count_documents({"clientId": cid})
    db["client"].update_one({"_id": cid}, {"$set": {"projects": count}})
    return count
