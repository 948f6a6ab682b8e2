"""
Dashboard and revenue rollups.

Both caches (``dashboard`` and ``revenue``) are derived from the project,
estimate, client and expense collections and are recomputed wholesale,
never maintained incrementally.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import as_utc, to_object_id, utcnow
from errors import AggregationError, ValidationError
from logging_config import get_logger
from months import Month

logger = get_logger("aggregation")

IdLike = Union[str, ObjectId]


def recompute_dashboard_stats(db: Database, user_id: IdLike, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Recompute and upsert the dashboard cache for a user.

    ``totalRevenue`` is the summed price of every selected estimate on the
    user's projects, not collected payments. ``activeProjects`` counts all of
    the user's projects.
    """
    uid = to_object_id(user_id, "user id")
    try:
        project_ids = [p["_id"] for p in db["project"].find({"userId": uid}, {"_id": 1})]
        total_revenue = 0
        if project_ids:
            for estimate in db["estimate"].find({"projectId": {"$in": project_ids}, "isSelected": True}):
                total_revenue += estimate.get("price") or 0

        expense_totals = list(db["expense"].aggregate([
            {"$match": {"userId": uid}},
            {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
        ]))
        stats = {
            "totalClients": db["client"].count_documents({"userId": uid}),
            "activeClients": db["client"].count_documents({"userId": uid, "status": "Active"}),
            "totalRevenue": total_revenue,
            "totalExpenses": expense_totals[0]["total"] if expense_totals else 0,
            "activeProjects": len(project_ids),
            "completedProjects": db["project"].count_documents({"userId": uid, "status": "completed"}),
            "lastUpdated": as_utc(now) or utcnow(),
        }
        return db["dashboard"].find_one_and_update(
            {"userId": uid},
            {"$set": stats},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError as e:
        raise AggregationError(f"Error updating dashboard stats: {e}") from e


def _achieved_revenue(db: Database, uid: ObjectId, year: int, month: Month, flag: str) -> float:
    # Legacy behaviour: a project also matches when its clientId equals the user id
    projects = db["project"].find({"$or": [{"userId": uid}, {"clientId": uid}]})
    total = 0
    for project in projects:
        for milestone in project.get("milestones") or []:
            if not milestone.get(flag):
                continue
            modified = as_utc(milestone.get("updatedAt"))
            if modified is None:
                continue
            if modified.year == year and modified.month == month.ordinal:
                total += milestone.get("amount") or 0
    return total


def calculate_current_month_revenue(db: Database, user_id: IdLike, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Sum achieved milestone amounts last modified in the current UTC month.

    Nothing is persisted; pair with :func:`upsert_revenue`.
    """
    uid = to_object_id(user_id, "user id")
    now = as_utc(now) or utcnow()
    month = Month.from_ordinal(now.month)
    try:
        revenue = _achieved_revenue(db, uid, now.year, month, "isAchived")
    except PyMongoError as e:
        raise AggregationError(f"Error calculating revenue: {e}") from e
    return {
        "userId": uid,
        "year": now.year,
        "month": month.value,
        "revenue": revenue,
        "calculatedAt": utcnow(),
    }


def calculate_month_revenue(db: Database, user_id: IdLike, year: int, month: Union[str, Month]) -> Dict[str, Any]:
    """Historical variant of :func:`calculate_current_month_revenue`.

    Checks the ``isAchieved`` spelling, which stored milestones do not carry,
    so existing data yields zero. Kept as-is pending a product decision.
    """
    uid = to_object_id(user_id, "user id")
    target = Month.parse(month)
    try:
        revenue = _achieved_revenue(db, uid, int(year), target, "isAchieved")
    except PyMongoError as e:
        raise AggregationError(f"Error calculating revenue: {e}") from e
    return {
        "userId": uid,
        "year": int(year),
        "month": target.value,
        "revenue": revenue,
        "calculatedAt": utcnow(),
    }


def upsert_revenue(db: Database, user_id: IdLike, year: int, month: Union[str, Month], revenue: float) -> Dict[str, Any]:
    uid = to_object_id(user_id, "user id")
    target = Month.parse(month)
    try:
        return db["revenue"].find_one_and_update(
            {"userId": uid, "year": int(year), "month": target.value},
            {"$set": {"revenue": revenue, "calculatedAt": utcnow()}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError as e:
        raise AggregationError(f"Error updating revenue: {e}") from e


def revenue_period_query(uid: ObjectId, start_year: int, start_month: Month,
                         end_year: int, end_month: Month) -> Dict[str, Any]:
    if start_year == end_year:
        months = Month.span(start_month, end_month)
        return {"userId": uid, "year": start_year, "month": {"$in": [m.value for m in months]}}
    clauses = [
        {"year": start_year, "month": {"$in": [m.value for m in Month.span(start_month, Month.DECEMBER)]}},
        {"year": end_year, "month": {"$in": [m.value for m in Month.span(Month.JANUARY, end_month)]}},
    ]
    for year in range(start_year + 1, end_year):
        clauses.append({"year": year})
    return {"userId": uid, "$or": clauses}


def get_revenue_for_period(db: Database, user_id: IdLike, start_year: int, start_month: Union[str, Month],
                           end_year: int, end_month: Union[str, Month]) -> List[Dict[str, Any]]:
    """Stored revenue rows in the inclusive range, ordered by year then calendar month."""
    uid = to_object_id(user_id, "user id")
    start = Month.parse(start_month)
    end = Month.parse(end_month)
    if (start_year, start.ordinal) > (end_year, end.ordinal):
        raise ValidationError(
            f"Period start {start.value} {start_year} is after end {end.value} {end_year}"
        )
    query = revenue_period_query(uid, int(start_year), start, int(end_year), end)
    try:
        rows = list(db["revenue"].find(query))
    except PyMongoError as e:
        raise AggregationError(f"Error fetching revenue period: {e}") from e
    return sorted(rows, key=lambda r: (r["year"], Month.parse(r["month"]).ordinal))


def expense_breakdown(db: Database, user_id: IdLike) -> List[Dict[str, Any]]:
    uid = to_object_id(user_id, "user id")
    try:
        return list(db["expense"].aggregate([
            {"$match": {"userId": uid}},
            {"$group": {"_id": "$category", "amount": {"$sum": "$amount"}, "count": {"$sum": 1}}},
            {"$project": {"category": "$_id", "amount": 1, "count": 1, "_id": 0}},
            {"$sort": {"amount": -1}},
        ]))
    except PyMongoError as e:
        raise AggregationError(f"Error building expense breakdown: {e}") from e


def get_dashboard_stats(db: Database, user_id: IdLike) -> Optional[Dict[str, Any]]:
    return db["dashboard"].find_one({"userId": to_object_id(user_id, "user id")})


def list_revenue(db: Database, user_id: IdLike) -> List[Dict[str, Any]]:
    rows = db["revenue"].find({"userId": to_object_id(user_id, "user id")})
    return sorted(rows, key=lambda r: (r["year"], Month.parse(r["month"]).ordinal))


def refresh_user_analytics(db: Database, user_id: IdLike, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """Best-effort refresh of both caches; failures are logged, never raised."""
    try:
        stats = recompute_dashboard_stats(db, user_id, now=now)
        current = calculate_current_month_revenue(db, user_id, now=now)
        revenue = upsert_revenue(db, user_id, current["year"], current["month"], current["revenue"])
    except AggregationError as e:
        logger.warning("analytics_refresh_failed", extra={"user_id": str(user_id), "error": e.message})
        return None
    return {"dashboard": stats, "revenue": revenue}
