"""
Cascade deletes across collections.

MongoDB has no foreign keys, so removing a user, client or project has to
clean up the documents that point at it. The ``delete_*`` functions here are
the single entry points for those deletes: the parent document is removed
first, then every dependent cleanup is fanned out on a thread pool and run
independently. A failed cleanup is logged and reported, never raised, and
never undoes the parent delete. Cleanups are plain ``delete_many`` calls,
so running one twice is harmless.

``DeleteHooks`` covers deletes issued from anywhere else: any code that
removes users or projects through ``delete_hooks`` gets the same dependent
cleanup. Within this module only ``delete_client`` goes through it, for the
client's projects; ``delete_user`` and ``delete_project`` run their cleanups
themselves so the report carries the counts. The user hook is there for
other callers, such as maintenance scripts. Hooks are registered explicitly
at startup by ``register_cascade_hooks``.
"""

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from bson import ObjectId
from pymongo.database import Database

import settings
from clients import adjust_project_count
from database import to_object_id
from errors import DependencyCleanupError, NotFoundError
from logging_config import get_logger

logger = get_logger("cascade")

CleanupAction = Callable[[], int]
DeleteHook = Callable[[Database, ObjectId], None]


@dataclass
class CleanupResult:
    target: str
    count: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CascadeReport:
    entity: str
    entity_id: str
    deleted: bool
    cleanups: List[CleanupResult] = field(default_factory=list)

    @property
    def failures(self) -> List[CleanupResult]:
        return [c for c in self.cleanups if not c.ok]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity": self.entity,
            "id": self.entity_id,
            "deleted": self.deleted,
            "cleanups": {c.target: c.count for c in self.cleanups if c.ok},
            "failures": {c.target: c.error for c in self.failures},
        }


def delete_action(db: Database, collection: str, filter_dict: dict) -> CleanupAction:
    def action() -> int:
        return db[collection].delete_many(filter_dict).deleted_count
    return action


def run_cleanups(steps: Dict[str, CleanupAction]) -> List[CleanupResult]:
    """Run every step concurrently and wait for all of them."""
    if not steps:
        return []
    results = []
    workers = max(1, min(settings.CASCADE_MAX_WORKERS, len(steps)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {name: pool.submit(action) for name, action in steps.items()}
        for name, future in futures.items():
            try:
                results.append(CleanupResult(name, future.result()))
            except Exception as e:
                err = DependencyCleanupError(name, str(e))
                logger.warning("cascade_cleanup_failed", extra={"target": name, "error": err.message})
                results.append(CleanupResult(name, error=err.message))
    return results


class DeleteHooks:
    """Before-delete callbacks keyed by collection name.

    A hook that raises is logged and skipped; the delete always goes ahead.
    """

    def __init__(self):
        self._hooks: Dict[str, List[DeleteHook]] = defaultdict(list)

    def register(self, collection: str, hook: DeleteHook) -> None:
        if hook not in self._hooks[collection]:
            self._hooks[collection].append(hook)

    def clear(self) -> None:
        self._hooks.clear()

    def hooks_for(self, collection: str) -> List[DeleteHook]:
        return list(self._hooks.get(collection, ()))

    def _before_delete(self, db: Database, collection: str, ids: List[ObjectId]) -> None:
        for hook in self.hooks_for(collection):
            for doc_id in ids:
                try:
                    hook(db, doc_id)
                except Exception:
                    logger.exception("delete_hook_failed", extra={"collection": collection, "doc_id": str(doc_id)})

    def delete_one(self, db: Database, collection: str, filter_dict: dict) -> int:
        doc = db[collection].find_one(filter_dict, {"_id": 1})
        if doc is None:
            return 0
        self._before_delete(db, collection, [doc["_id"]])
        return db[collection].delete_one({"_id": doc["_id"]}).deleted_count

    def delete_many(self, db: Database, collection: str, filter_dict: dict) -> int:
        ids = [d["_id"] for d in db[collection].find(filter_dict, {"_id": 1})]
        if not ids:
            return 0
        self._before_delete(db, collection, ids)
        return db[collection].delete_many({"_id": {"$in": ids}}).deleted_count


delete_hooks = DeleteHooks()


def user_cleanup_steps(db: Database, uid: ObjectId) -> Dict[str, CleanupAction]:
    return {
        "dashboard": delete_action(db, "dashboard", {"userId": uid}),
        "revenue": delete_action(db, "revenue", {"userId": uid}),
        "expense": delete_action(db, "expense", {"userId": uid}),
    }


def _log_report(report: CascadeReport) -> CascadeReport:
    logger.info(
        "cascade_delete_completed",
        extra={
            "entity": report.entity,
            "entity_id": report.entity_id,
            "cleanups": {c.target: c.count for c in report.cleanups if c.ok},
            "failures": len(report.failures),
        },
    )
    return report


def _user_hook(db: Database, user_id: ObjectId) -> None:
    run_cleanups(user_cleanup_steps(db, user_id))


def _project_hook(db: Database, project_id: ObjectId) -> None:
    run_cleanups({"estimate": delete_action(db, "estimate", {"projectId": project_id})})


def register_cascade_hooks(hooks: DeleteHooks = delete_hooks) -> DeleteHooks:
    hooks.register("user", _user_hook)
    hooks.register("project", _project_hook)
    logger.info("cascade_hooks_registered", extra={"collections": "user,project"})
    return hooks


def delete_user(db: Database, user_id) -> CascadeReport:
    """Delete a user and its dashboard, revenue and expense records."""
    uid = to_object_id(user_id, "user id")
    if db["user"].find_one({"_id": uid}, {"_id": 1}) is None:
        raise NotFoundError("User not found")
    deleted = db["user"].delete_one({"_id": uid}).deleted_count > 0
    report = CascadeReport("user", str(uid), deleted, run_cleanups(user_cleanup_steps(db, uid)))
    return _log_report(report)


def delete_client(db: Database, user_id, client_id, hooks: DeleteHooks = delete_hooks) -> CascadeReport:
    """Delete a client and its projects, revenue rows and expenses.

    Revenue and expense rows are matched on ``clientId``. Expenses created
    through the expense API carry only ``userId``, so they survive.
    """
    uid = to_object_id(user_id, "user id")
    cid = to_object_id(client_id, "client id")
    if db["client"].find_one({"_id": cid, "userId": uid}, {"_id": 1}) is None:
        raise NotFoundError("Client not found")
    deleted = db["client"].delete_one({"_id": cid, "userId": uid}).deleted_count > 0
    steps = {
        "project": lambda: hooks.delete_many(db, "project", {"clientId": cid}),
        "revenue": delete_action(db, "revenue", {"clientId": cid}),
        "expense": delete_action(db, "expense", {"clientId": cid}),
    }
    return _log_report(CascadeReport("client", str(cid), deleted, run_cleanups(steps)))


def delete_project(db: Database, user_id, project_id) -> CascadeReport:
    """Delete a project and its estimates, and decrement the client's project count."""
    uid = to_object_id(user_id, "user id")
    pid = to_object_id(project_id, "project id")
    project = db["project"].find_one({"_id": pid, "userId": uid}, {"_id": 1, "clientId": 1})
    if project is None:
        raise NotFoundError("Project not found or you don't have permission to delete it")
    deleted = db["project"].delete_one({"_id": pid}).deleted_count > 0
    steps = {"estimate": delete_action(db, "estimate", {"projectId": pid})}
    if deleted and project.get("clientId") is not None:
        steps["client.projects"] = lambda: adjust_project_count(db, project["clientId"], -1)
    return _log_report(CascadeReport("project", str(pid), deleted, run_cleanups(steps)))
