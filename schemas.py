"""
Database Schemas

Each Pydantic model represents a collection in MongoDB. The collection name
is the lowercase of the class name:
- User -> "user"
- Client -> "client"
- Project -> "project" (milestones are embedded in it)
- Estimate -> "estimate"
- Expense -> "expense"
- Dashboard -> "dashboard"
- Revenue -> "revenue"

Stored field names are camelCase; models accept either spelling.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from months import Month

ProjectStatus = Literal["planning", "active", "on_hold", "completed", "cancelled"]
MilestoneStatus = Literal["Pending", "Paid", "Overdue"]
Currency = Literal["USD", "EUR", "GBP", "INR", "CAD", "AUD", "JPY"]


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class User(Document):
    """
    Users collection schema
    Collection name: "user"
    """
    name: str = Field(..., min_length=1, description="Full name")
    email: str = Field(..., min_length=3, description="Email address (unique)")
    password: str = Field(..., description="Hashed password")
    role: str = Field("user", description="Access role")
    avatar: Optional[str] = Field(None, description="Avatar initial or URL")


class Client(Document):
    """
    Clients collection schema
    Collection name: "client"
    """
    name: str = Field(..., min_length=1, description="Client name")
    email: Optional[str] = Field(None, description="Contact email")
    phone: Optional[str] = Field(None, description="Contact phone")
    company: Optional[str] = Field(None, description="Company name")
    status: Literal["Active", "Inactive"] = Field("Active", description="Client status")
    notes: Optional[str] = Field(None, description="Free-form notes")


class ClientUpdate(Document):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    status: Optional[Literal["Active", "Inactive"]] = None
    notes: Optional[str] = None


class Milestone(Document):
    """
    Milestone embedded in a project's ``milestones`` array.
    The achieved flag is stored as ``isAchived``.
    """
    name: str = Field(..., min_length=1, description="Milestone name")
    description: Optional[str] = Field(None, max_length=7000)
    percentage: float = Field(..., ge=0, le=100, description="Share of the project value")
    amount: float = Field(..., ge=0, description="Payment amount")
    due_date: datetime = Field(..., description="Due date")
    status: Literal["Pending", "Paid"] = Field("Pending", description="Payment status")
    is_achieved: bool = Field(False, alias="isAchived", description="Achieved flag")
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None


class MilestoneCreate(Milestone):
    project_id: str = Field(..., description="Project the milestone belongs to")


class MilestoneBulkCreate(Document):
    project_id: str
    client_id: str
    milestones: List[Milestone]
    estimate_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class MilestonePayment(Document):
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None


class Project(Document):
    """
    Projects collection schema
    Collection name: "project"
    """
    name: Optional[str] = Field(None, max_length=200, description="Project name")
    title: Optional[str] = Field(None, description="Legacy alias for name")
    description: Optional[str] = Field("", description="Project description")
    status: str = Field("planning", description="Stored enum or display label")
    currency: str = Field("INR", description="Currency code")
    total_amount: Optional[float] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    project_number: Optional[str] = None


class ProjectUpdate(Document):
    name: Optional[str] = Field(None, max_length=200)
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    currency: Optional[str] = None
    total_amount: Optional[float] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    tags: Optional[List[str]] = None
    project_number: Optional[str] = None


class Estimate(Document):
    """
    Estimates collection schema
    Collection name: "estimate"
    """
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1, max_length=1000)
    timeline: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    features: List[str] = Field(default_factory=list)
    tech_stack: List[str] = Field(default_factory=list)


class EstimateBulkCreate(Document):
    estimates: List[Estimate]
    client_id: Optional[str] = None


class Expense(Document):
    """
    Expenses collection schema
    Collection name: "expense"
    """
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field("", max_length=500)
    amount: float = Field(..., gt=0, description="Rounded half-up to 2 decimals")
    currency: Currency = Field("INR")
    category: str = Field(..., min_length=1)
    expense_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("amount")
    @classmethod
    def round_amount(cls, v: float) -> float:
        return round_money(v)

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v: List[str]) -> List[str]:
        return [t.strip() for t in v if t and t.strip()]


class ExpenseUpdate(Document):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    amount: Optional[float] = Field(None, gt=0)
    currency: Optional[Currency] = None
    category: Optional[str] = None
    expense_date: Optional[datetime] = None
    tags: Optional[List[str]] = None

    @field_validator("amount")
    @classmethod
    def round_amount(cls, v: Optional[float]) -> Optional[float]:
        return None if v is None else round_money(v)

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return None if v is None else [t.strip() for t in v if t and t.strip()]


class Dashboard(Document):
    """
    Dashboard stats cache, one per user
    Collection name: "dashboard"
    """
    total_clients: int = 0
    active_clients: int = 0
    total_revenue: float = 0
    total_expenses: float = 0
    active_projects: int = 0
    completed_projects: int = 0
    last_updated: Optional[datetime] = None


class Revenue(Document):
    """
    Revenue per user and calendar month
    Collection name: "revenue"
    Unique on (userId, year, month)
    """
    year: int = Field(..., ge=2000, le=2100)
    month: Month
    revenue: float = Field(0, ge=0)
    calculated_at: Optional[datetime] = None


def round_money(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
