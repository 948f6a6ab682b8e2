from contextlib import asynccontextmanager
from typing import Any, Optional

from bson import ObjectId
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database

import aggregation
import cascade
import clients
import database
import estimates
import expenses
import milestones
import projects
import settings
import users
from database import ensure_indexes, get_db, serialize_doc
from errors import DomainError
from logging_config import configure_logging, get_logger
from months import Month
from schemas import (
    Client,
    ClientUpdate,
    EstimateBulkCreate,
    Expense,
    ExpenseUpdate,
    MilestoneBulkCreate,
    MilestoneCreate,
    MilestonePayment,
    Project,
    ProjectUpdate,
    User,
)

logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Connection first, then indexes, then cascade hooks
    configure_logging()
    if database.db is not None:
        ensure_indexes(database.db)
    else:
        logger.warning("database_not_configured")
    cascade.register_cascade_hooks()
    yield
    if database.client is not None:
        database.client.close()


app = FastAPI(title="Freelance Tracker API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


def ok(data: Any = None, message: Optional[str] = None, status_code: int = 200, **extra):
    body = {"success": True, "data": _serialize(data)}
    if message:
        body["message"] = message
    body.update({k: _serialize(v) for k, v in extra.items()})
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def _serialize(value):
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, ObjectId):
        return str(value)
    return value


# Auth: the caller is identified by x-user-id; token handling lives upstream

def current_user(x_user_id: Optional[str] = Header(default=None), db: Database = Depends(get_db)) -> ObjectId:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authorized. No user id provided.")
    if not ObjectId.is_valid(x_user_id) or db["user"].find_one({"_id": ObjectId(x_user_id)}, {"_id": 1}) is None:
        raise HTTPException(status_code=401, detail="User not found.")
    user_id = ObjectId(x_user_id)
    if settings.RECOMPUTE_ON_REQUEST:
        aggregation.refresh_user_analytics(db, user_id)
    return user_id


@app.get("/")
def read_root():
    return {"message": "Freelance Tracker Backend is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }

    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = database.db.name
            response["connection_status"] = "Connected"

            try:
                collections = database.db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️  Available but not initialized"

    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"

    response["database_url"] = "✅ Set" if settings.DATABASE_URL else "❌ Not Set"
    response["database_name"] = "✅ Set" if settings.DATABASE_NAME else "❌ Not Set"

    return response


# Users
@app.post("/api/users")
def create_user(user: User, db: Database = Depends(get_db)):
    return ok(users.create_user(db, user), "User created successfully", status_code=201)


@app.get("/api/users/me")
def read_me(user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    return ok(users.get_user(db, user_id))


@app.delete("/api/users/me")
def delete_me(user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    report = cascade.delete_user(db, user_id)
    return ok(report.to_dict(), "User deleted successfully")


# Clients
@app.get("/api/clients")
def list_clients(user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    return ok(clients.list_clients(db, user_id))


@app.post("/api/clients")
def create_client(client: Client, user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    return ok(clients.create_client(db, user_id, client), status_code=201)


@app.put("/api/clients/{client_id}")
def update_client(client_id: str, changes: ClientUpdate, user_id: ObjectId = Depends(current_user),
                  db: Database = Depends(get_db)):
    return ok(clients.update_client(db, user_id, client_id, changes))


@app.delete("/api/clients/{client_id}")
def delete_client(client_id: str, user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    report = cascade.delete_client(db, user_id, client_id)
    return ok(report.to_dict(), "Client deleted successfully")


# Projects
@app.get("/api/clients/{client_id}/projects")
def list_projects(client_id: str, user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    docs = projects.list_projects(db, user_id, client_id)
    return ok(docs, count=len(docs))


@app.post("/api/clients/{client_id}/projects")
def create_project(client_id: str, project: Project, user_id: ObjectId = Depends(current_user),
                   db: Database = Depends(get_db)):
    doc = projects.create_project(db, user_id, client_id, project)
    return ok(doc, "Project created successfully", status_code=201)


@app.get("/api/projects/{project_id}")
def get_project(project_id: str, user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    return ok(projects.get_project(db, user_id, project_id))


@app.put("/api/projects/{project_id}")
def update_project(project_id: str, changes: ProjectUpdate, user_id: ObjectId = Depends(current_user),
                   db: Database = Depends(get_db)):
    return ok(projects.update_project(db, user_id, project_id, changes), "Project updated successfully")


@app.delete("/api/projects/{project_id}")
def delete_project(project_id: str, user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    report = cascade.delete_project(db, user_id, project_id)
    return ok(report.to_dict(), "Project deleted successfully")


# Estimates
@app.post("/api/projects/{project_id}/estimates")
def save_estimates(project_id: str, payload: EstimateBulkCreate, user_id: ObjectId = Depends(current_user),
                   db: Database = Depends(get_db)):
    saved = estimates.save_estimates(db, user_id, project_id, payload)
    return ok(saved, f"{len(saved)} estimates saved successfully", status_code=201)


@app.get("/api/projects/{project_id}/estimates")
def list_estimates(project_id: str, user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    docs = estimates.list_estimates(db, user_id, project_id)
    return ok(docs, f"Found {len(docs)} estimates", count=len(docs))


@app.put("/api/estimates/{estimate_id}/select")
def select_estimate(estimate_id: str, user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    return ok(estimates.select_estimate(db, user_id, estimate_id), "Estimate selected successfully")


# Milestones
@app.get("/api/clients/{client_id}/milestones")
def list_client_milestones(client_id: str, user_id: ObjectId = Depends(current_user),
                           db: Database = Depends(get_db)):
    result = milestones.list_client_milestones(db, user_id, client_id)
    return ok(result["milestones"], summary=result["summary"])


@app.post("/api/clients/{client_id}/milestones")
def add_milestone(client_id: str, payload: MilestoneCreate, user_id: ObjectId = Depends(current_user),
                  db: Database = Depends(get_db)):
    doc = milestones.add_milestone(db, user_id, client_id, payload)
    return ok(doc, "Milestone added successfully", status_code=201)


@app.post("/api/milestones/bulk")
def bulk_create_milestones(payload: MilestoneBulkCreate, user_id: ObjectId = Depends(current_user),
                           db: Database = Depends(get_db)):
    result = milestones.bulk_create_milestones(db, user_id, payload)
    count = result["summary"]["totalMilestones"]
    return ok(result, f"Successfully created {count} milestones", status_code=201)


@app.get("/api/milestones/stats")
def milestone_stats(client_id: Optional[str] = None, user_id: ObjectId = Depends(current_user),
                    db: Database = Depends(get_db)):
    return ok(milestones.milestone_stats(db, user_id, client_id))


@app.put("/api/milestones/{milestone_id}/achieve")
def achieve_milestone(milestone_id: str, user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    return ok(milestones.mark_milestone_achieved(db, user_id, milestone_id), "Milestone updated successfully")


@app.put("/api/milestones/{milestone_id}/pay")
def pay_milestone(milestone_id: str, payment: Optional[MilestonePayment] = None,
                  user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    return ok(milestones.mark_milestone_paid(db, user_id, milestone_id, payment), "Milestone marked as paid")


@app.delete("/api/milestones/{milestone_id}")
def delete_milestone(milestone_id: str, user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    deleted = milestones.delete_milestone(db, user_id, milestone_id)
    return ok(message="Milestone deleted successfully", deletedMilestone=deleted)


# Expenses
@app.get("/api/expenses")
def list_expenses(user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    return ok(expenses.list_expenses(db, user_id))


@app.post("/api/expenses")
def add_expense(expense: Expense, user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    return ok(expenses.add_expense(db, user_id, expense), "Expense created successfully", status_code=201)


@app.put("/api/expenses/{expense_id}")
def update_expense(expense_id: str, changes: ExpenseUpdate, user_id: ObjectId = Depends(current_user),
                   db: Database = Depends(get_db)):
    return ok(expenses.update_expense(db, user_id, expense_id, changes), "Expense updated successfully")


@app.delete("/api/expenses/{expense_id}")
def delete_expense(expense_id: str, user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    return ok(expenses.delete_expense(db, user_id, expense_id), "Expense deleted successfully")


# Analytics
@app.get("/api/analytics/dashboard-stats")
def dashboard_stats(user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    return ok(aggregation.get_dashboard_stats(db, user_id))


@app.get("/api/analytics/revenue-over-time")
def revenue_over_time(user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    return ok(aggregation.list_revenue(db, user_id))


@app.get("/api/analytics/revenue-period")
def revenue_period(start_year: int, start_month: Month, end_year: int, end_month: Month,
                   user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    rows = aggregation.get_revenue_for_period(db, user_id, start_year, start_month, end_year, end_month)
    return ok(rows)


@app.get("/api/analytics/revenue/{year}/{month}")
def month_revenue(year: int, month: str, user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    return ok(aggregation.calculate_month_revenue(db, user_id, year, month))


@app.get("/api/analytics/expense-breakdown")
def expense_breakdown(user_id: ObjectId = Depends(current_user), db: Database = Depends(get_db)):
    return ok(aggregation.expense_breakdown(db, user_id))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
