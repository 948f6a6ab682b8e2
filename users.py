from typing import Any, Dict

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, to_object_id
from errors import NotFoundError, ValidationError
from schemas import User


def create_user(db: Database, user: User) -> Dict[str, Any]:
    """Register a user. ``password`` must already be hashed by the auth layer."""
    email = user.email.strip().lower()
    if db["user"].find_one({"email": email}, {"_id": 1}):
        raise ValidationError("User already exists")
    data = user.model_dump(by_alias=True)
    data["email"] = email
    data["avatar"] = user.avatar or user.name[:1].upper()
    try:
        inserted_id = create_document(db, "user", data)
    except DuplicateKeyError:
        raise ValidationError("User already exists") from None
    return db["user"].find_one({"_id": inserted_id}, {"password": 0})


def get_user(db: Database, user_id) -> Dict[str, Any]:
    doc = db["user"].find_one({"_id": to_object_id(user_id, "user id")}, {"password": 0})
    if not doc:
        raise NotFoundError("User not found")
    return doc
