from typing import Any, Dict, List

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from clients import adjust_project_count, get_client
from database import as_utc, create_document, to_object_id, utcnow
from errors import NotFoundError, ValidationError
from schemas import Project, ProjectUpdate

PROJECT_STATUSES = ("planning", "active", "on_hold", "completed", "cancelled")

# Display labels sent by the frontend
STATUS_LABELS = {
    "Active": "active",
    "Completed": "completed",
    "On Hold": "on_hold",
    "Cancelled": "cancelled",
    "Planning": "planning",
}


def normalize_status(status: str) -> str:
    value = STATUS_LABELS.get(status, status.strip().lower().replace(" ", "_"))
    if value not in PROJECT_STATUSES:
        raise ValidationError(f"Invalid project status: {status}")
    return value


def list_projects(db: Database, user_id, client_id) -> List[Dict[str, Any]]:
    client = get_client(db, user_id, client_id)
    cursor = db["project"].find(
        {"clientId": client["_id"], "userId": client["userId"]}
    ).sort("createdAt", DESCENDING)
    return list(cursor)


def get_project(db: Database, user_id, project_id) -> Dict[str, Any]:
    doc = db["project"].find_one({
        "_id": to_object_id(project_id, "project id"),
        "userId": to_object_id(user_id, "user id"),
    })
    if not doc:
        raise NotFoundError("Project not found")
    return doc


def create_project(db: Database, user_id, client_id, project: Project) -> Dict[str, Any]:
    client = get_client(db, user_id, client_id)
    name = (project.name or project.title or "").strip()
    if not name:
        raise ValidationError("Project name/title is required")

    data = project.model_dump(by_alias=True, exclude={"title"})
    data.update({
        "name": name,
        "status": normalize_status(project.status),
        "clientId": client["_id"],
        "userId": client["userId"],
        "startDate": as_utc(project.start_date) or utcnow(),
        "endDate": as_utc(project.end_date),
        "milestones": [],
    })
    inserted_id = create_document(db, "project", data)
    adjust_project_count(db, client["_id"], 1)
    return db["project"].find_one({"_id": inserted_id})


def update_project(db: Database, user_id, project_id, changes: ProjectUpdate) -> Dict[str, Any]:
    existing = get_project(db, user_id, project_id)
    updates = changes.model_dump(by_alias=True, exclude_none=True, exclude={"title"})
    if changes.title and not changes.name:
        updates["name"] = changes.title
    for key in ("startDate", "endDate"):
        if key in updates:
            updates[key] = as_utc(updates[key])
    if "status" in updates:
        updates["status"] = normalize_status(updates["status"])
        if updates["status"] == "completed" and not existing.get("actualEndDate"):
            updates["actualEndDate"] = utcnow()
    updates["updatedAt"] = utcnow()
    return db["project"].find_one_and_update(
        {"_id": existing["_id"]},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
