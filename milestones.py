"""
Milestones embedded in project documents.

Every mutation is a single atomic update on the owning project ($push,
$pull, positional $set) so concurrent edits to one project's milestones
do not overwrite each other.

Status lifecycle: ``Pending`` -> ``Paid`` only. ``Overdue`` is never
stored; it is derived on read for pending, unachieved milestones whose
due date has passed.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo.database import Database

import settings
from database import as_utc, to_object_id, utcnow
from errors import NotFoundError, ValidationError
from logging_config import get_logger
from schemas import Milestone, MilestoneBulkCreate, MilestoneCreate, MilestonePayment

logger = get_logger("milestones")

MAX_TOTAL_PERCENTAGE = 100
STATS_LIST_LIMIT = 10


def _new_milestone(milestone: Milestone, now: datetime) -> Dict[str, Any]:
    doc = milestone.model_dump(by_alias=True, exclude={"project_id"})
    doc.update({
        "_id": ObjectId(),
        "dueDate": as_utc(milestone.due_date),
        "createdAt": now,
        "updatedAt": now,
    })
    if doc.get("status") == "Paid":
        doc["paidDate"] = now
    return doc


def effective_status(milestone: Dict[str, Any], now: Optional[datetime] = None) -> str:
    status = milestone.get("status") or "Pending"
    if status != "Pending" or milestone.get("isAchived"):
        return status
    due = as_utc(milestone.get("dueDate"))
    if due is not None and due < (as_utc(now) or utcnow()):
        return "Overdue"
    return status


def _unpaid(project_id: ObjectId, mid: ObjectId) -> Dict[str, Any]:
    # Matches only while the milestone is still unpaid
    return {"_id": project_id, "milestones": {"$elemMatch": {"_id": mid, "status": {"$ne": "Paid"}}}}


def _find_milestone(db: Database, uid: ObjectId, mid: ObjectId) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    project = db["project"].find_one({"userId": uid, "milestones._id": mid})
    if not project:
        raise NotFoundError("Milestone not found or access denied")
    for milestone in project.get("milestones") or []:
        if milestone.get("_id") == mid:
            return project, milestone
    raise NotFoundError("Milestone not found")


def add_milestone(db: Database, user_id, client_id, payload: MilestoneCreate,
                  now: Optional[datetime] = None) -> Dict[str, Any]:
    """Append one milestone to a project owned by the user and client.

    The 100% ceiling is only enforced by bulk creation.
    """
    now = as_utc(now) or utcnow()
    pid = to_object_id(payload.project_id, "project id")
    doc = _new_milestone(payload, now)
    result = db["project"].update_one(
        {
            "_id": pid,
            "clientId": to_object_id(client_id, "client id"),
            "userId": to_object_id(user_id, "user id"),
        },
        {"$push": {"milestones": doc}, "$set": {"updatedAt": now}},
    )
    if result.matched_count == 0:
        raise NotFoundError("Project not found or access denied")
    logger.info("milestone_added", extra={"project_id": str(pid), "milestone_id": str(doc["_id"])})
    return doc


def bulk_create_milestones(db: Database, user_id, payload: MilestoneBulkCreate,
                           now: Optional[datetime] = None) -> Dict[str, Any]:
    """Replace a project's milestones with a new set totalling at most 100%."""
    if not payload.milestones:
        raise ValidationError("Milestones array is required and cannot be empty")
    now = as_utc(now) or utcnow()
    project_filter = {
        "_id": to_object_id(payload.project_id, "project id"),
        "clientId": to_object_id(payload.client_id, "client id"),
        "userId": to_object_id(user_id, "user id"),
    }
    if db["project"].find_one(project_filter, {"_id": 1}) is None:
        raise NotFoundError("Project not found or access denied")

    total = round(sum(m.percentage for m in payload.milestones), 2)
    if total > MAX_TOTAL_PERCENTAGE:
        raise ValidationError(
            f"Total milestone percentages cannot exceed 100%. Current total: {total:g}%"
        )

    docs = [_new_milestone(m, now) for m in payload.milestones]
    updates: Dict[str, Any] = {"milestones": docs, "updatedAt": now}
    if payload.start_date:
        updates["startDate"] = as_utc(payload.start_date)
    if payload.end_date:
        updates["endDate"] = as_utc(payload.end_date)
    if payload.estimate_id:
        updates["estimateId"] = to_object_id(payload.estimate_id, "estimate id")

    result = db["project"].update_one(project_filter, {"$set": updates})
    if result.matched_count == 0:
        raise NotFoundError("Project not found or access denied")
    project = db["project"].find_one({"_id": project_filter["_id"]})
    milestones = project.get("milestones") or []
    return {
        "project": {"id": project["_id"], "name": project.get("name"), "milestones": milestones},
        "summary": {
            "totalMilestones": len(milestones),
            "totalAmount": sum(m.get("amount") or 0 for m in milestones),
            "totalPercentage": sum(m.get("percentage") or 0 for m in milestones),
        },
    }


def mark_milestone_achieved(db: Database, user_id, milestone_id, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Set the achieved flag; also stamps ``achievedDate`` and the milestone's ``updatedAt``."""
    uid = to_object_id(user_id, "user id")
    mid = to_object_id(milestone_id, "milestone id")
    now = as_utc(now) or utcnow()
    project, _ = _find_milestone(db, uid, mid)
    db["project"].update_one(
        {"_id": project["_id"], "userId": uid, "milestones._id": mid},
        {"$set": {
            "milestones.$.isAchived": True,
            "milestones.$.achievedDate": now,
            "milestones.$.updatedAt": now,
            "updatedAt": now,
        }},
    )
    _, milestone = _find_milestone(db, uid, mid)
    return milestone


def mark_milestone_paid(db: Database, user_id, milestone_id, payment: Optional[MilestonePayment] = None,
                        now: Optional[datetime] = None) -> Dict[str, Any]:
    uid = to_object_id(user_id, "user id")
    mid = to_object_id(milestone_id, "milestone id")
    now = as_utc(now) or utcnow()
    project, milestone = _find_milestone(db, uid, mid)
    if milestone.get("status") == "Paid":
        raise ValidationError("Milestone is already paid")

    updates = {
        "milestones.$.status": "Paid",
        "milestones.$.paidDate": now,
        "milestones.$.updatedAt": now,
        "updatedAt": now,
    }
    if payment is not None:
        if payment.payment_method:
            updates["milestones.$.paymentMethod"] = payment.payment_method
        if payment.transaction_id:
            updates["milestones.$.transactionId"] = payment.transaction_id
    result = db["project"].update_one(_unpaid(project["_id"], mid), {"$set": updates})
    if result.matched_count == 0:
        _find_milestone(db, uid, mid)
        raise ValidationError("Milestone is already paid")
    _, milestone = _find_milestone(db, uid, mid)
    return milestone


def delete_milestone(db: Database, user_id, milestone_id, now: Optional[datetime] = None) -> Dict[str, Any]:
    uid = to_object_id(user_id, "user id")
    mid = to_object_id(milestone_id, "milestone id")
    project, milestone = _find_milestone(db, uid, mid)
    if milestone.get("status") == "Paid":
        raise ValidationError("Cannot delete a paid milestone. Please contact support if needed.")

    result = db["project"].update_one(
        _unpaid(project["_id"], mid),
        {
            "$pull": {"milestones": {"_id": mid, "status": {"$ne": "Paid"}}},
            "$set": {"updatedAt": as_utc(now) or utcnow()},
        },
    )
    if result.matched_count == 0:
        _find_milestone(db, uid, mid)
        raise ValidationError("Cannot delete a paid milestone. Please contact support if needed.")
    return {"id": mid, "name": milestone.get("name"), "amount": milestone.get("amount")}


def _with_project(milestone: Dict[str, Any], project: Dict[str, Any], client_name: Optional[str],
                  now: datetime) -> Dict[str, Any]:
    out = dict(milestone)
    out.update({
        "status": effective_status(milestone, now),
        "projectId": project["_id"],
        "projectName": project.get("name"),
        "clientName": client_name,
        "totalAmount": project.get("totalAmount"),
    })
    return out


def _client_names(db: Database, projects: List[Dict[str, Any]]) -> Dict[ObjectId, Optional[str]]:
    ids = list({p.get("clientId") for p in projects if p.get("clientId") is not None})
    if not ids:
        return {}
    return {c["_id"]: c.get("name") for c in db["client"].find({"_id": {"$in": ids}}, {"name": 1})}


def list_client_milestones(db: Database, user_id, client_id, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = as_utc(now) or utcnow()
    projects = list(db["project"].find({
        "clientId": to_object_id(client_id, "client id"),
        "userId": to_object_id(user_id, "user id"),
    }))
    if not projects:
        raise NotFoundError("No projects found for this client")
    names = _client_names(db, projects)

    milestones = [
        _with_project(m, p, names.get(p.get("clientId")), now)
        for p in projects
        for m in p.get("milestones") or []
    ]
    milestones.sort(key=lambda m: as_utc(m.get("dueDate")) or datetime.max)

    def by_status(status):
        return [m for m in milestones if m["status"] == status]

    return {
        "milestones": milestones,
        "summary": {
            "total": len(milestones),
            "pending": len(by_status("Pending")),
            "paid": len(by_status("Paid")),
            "overdue": len(by_status("Overdue")),
            "totalValue": sum(m.get("amount") or 0 for m in milestones),
            "pendingValue": sum(m.get("amount") or 0 for m in by_status("Pending")),
        },
    }


def milestone_stats(db: Database, user_id, client_id=None, now: Optional[datetime] = None,
                    window_days: Optional[int] = None) -> Dict[str, Any]:
    """Counts and values per status, plus upcoming milestones and recent payments."""
    now = as_utc(now) or utcnow()
    window = timedelta(days=window_days if window_days is not None else settings.UPCOMING_WINDOW_DAYS)
    query: Dict[str, Any] = {"userId": to_object_id(user_id, "user id")}
    if client_id:
        query["clientId"] = to_object_id(client_id, "client id")
    projects = list(db["project"].find(query))
    names = _client_names(db, projects)

    stats: Dict[str, Any] = {
        "totalMilestones": 0,
        "pendingMilestones": 0,
        "paidMilestones": 0,
        "overdueMilestones": 0,
        "totalValue": 0,
        "pendingValue": 0,
        "paidValue": 0,
        "overdueValue": 0,
    }
    upcoming = []
    recent = []
    for project in projects:
        for raw in project.get("milestones") or []:
            milestone = _with_project(raw, project, names.get(project.get("clientId")), now)
            amount = milestone.get("amount") or 0
            status = milestone["status"]
            stats["totalMilestones"] += 1
            stats["totalValue"] += amount
            if status == "Pending":
                stats["pendingMilestones"] += 1
                stats["pendingValue"] += amount
                due = as_utc(milestone.get("dueDate"))
                if due is not None and now <= due <= now + window:
                    upcoming.append(milestone)
            elif status == "Paid":
                stats["paidMilestones"] += 1
                stats["paidValue"] += amount
                paid = as_utc(milestone.get("paidDate"))
                if paid is not None and paid >= now - window:
                    recent.append(milestone)
            elif status == "Overdue":
                stats["overdueMilestones"] += 1
                stats["overdueValue"] += amount

    upcoming.sort(key=lambda m: as_utc(m["dueDate"]))
    recent.sort(key=lambda m: as_utc(m["paidDate"]), reverse=True)
    stats["upcomingMilestones"] = upcoming[:STATS_LIST_LIMIT]
    stats["recentPayments"] = recent[:STATS_LIST_LIMIT]
    return stats
