from typing import Any, Dict, List

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import to_object_id, utcnow
from errors import NotFoundError, ValidationError
from projects import get_project
from schemas import EstimateBulkCreate


def save_estimates(db: Database, user_id, project_id, payload: EstimateBulkCreate) -> List[Dict[str, Any]]:
    """Replace every estimate of a project with a new, unselected set."""
    if not payload.estimates:
        raise ValidationError("Estimates array is required and cannot be empty")
    project = get_project(db, user_id, project_id)

    now = utcnow()
    docs = []
    for estimate in payload.estimates:
        data = estimate.model_dump(by_alias=True)
        data.update({"projectId": project["_id"], "isSelected": False, "createdAt": now, "updatedAt": now})
        docs.append(data)

    # New set goes in before the old one is removed
    result = db["estimate"].insert_many(docs)
    db["estimate"].delete_many({"projectId": project["_id"], "_id": {"$nin": result.inserted_ids}})
    return list(db["estimate"].find({"_id": {"$in": result.inserted_ids}}))


def list_estimates(db: Database, user_id, project_id) -> List[Dict[str, Any]]:
    project = get_project(db, user_id, project_id)
    out = []
    for estimate in db["estimate"].find({"projectId": project["_id"]}).sort("createdAt", DESCENDING):
        estimate["featureCount"] = len(estimate.get("features") or [])
        estimate["techCount"] = len(estimate.get("techStack") or [])
        out.append(estimate)
    return out


def select_estimate(db: Database, user_id, estimate_id) -> Dict[str, Any]:
    """Mark one estimate as selected and clear the flag on its siblings.

    A partial unique index on ``projectId`` (where ``isSelected``) makes a
    concurrent second selection fail instead of leaving two selected.
    """
    eid = to_object_id(estimate_id, "estimate id")
    estimate = db["estimate"].find_one({"_id": eid})
    if not estimate:
        raise NotFoundError("Estimate not found")
    get_project(db, user_id, estimate["projectId"])

    now = utcnow()
    db["estimate"].update_many(
        {"projectId": estimate["projectId"], "_id": {"$ne": eid}, "isSelected": True},
        {"$set": {"isSelected": False, "updatedAt": now}},
    )
    try:
        return db["estimate"].find_one_and_update(
            {"_id": eid},
            {"$set": {"isSelected": True, "updatedAt": now}},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise ValidationError("Another estimate was selected for this project at the same time") from None
