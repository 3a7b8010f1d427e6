from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"


class Currency(str, Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"


class ExpenseStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    REIMBURSED = "Reimbursed"


class CamelModel(BaseModel):
    """Serializes as camelCase on the wire, accepts either form on input."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class UserBase(BaseModel):
    username: str = Field(min_length=1)


class UserCreate(UserBase):
    password: str = Field(min_length=1)
    role: Role = Role.EMPLOYEE


class UserLogin(BaseModel):
    username: str
    password: str


class User(UserBase):
    id: str
    role: Role = Role.EMPLOYEE
    budget: float = 0.0
    created_at: datetime

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token: str
    token_type: str
    role: Role


class Identity(BaseModel):
    """Verified token claims."""
    username: str
    role: Role = Role.EMPLOYEE


class ExpenseSubmit(CamelModel):
    username: str
    amount: float
    currency: Currency
    category: Optional[str] = None
    date: Optional[datetime] = None
    description: Optional[str] = None
    budget: Optional[float] = None


class Expense(CamelModel):
    id: str
    username: str
    amount: float
    currency: Currency
    category: str
    date: datetime
    description: Optional[str] = None
    status: ExpenseStatus
    budget: Optional[float] = None
    converted_amount: float
    policy_compliant: bool
    created_at: datetime
    updated_at: Optional[datetime] = None


class EnrichedExpense(Expense):
    # Read-time values, never stored
    budget: float = 0.0
    total_expenses: float = 0.0


class ExpenseSubmitted(CamelModel):
    message: str
    expense: Expense


class ExpenseDecision(CamelModel):
    expense_id: str


class ExpenseDecided(CamelModel):
    message: str
    expense: Expense


class CategoryAnalytics(CamelModel):
    category: str
    total_amount: float
    total_converted_amount: float
    average_converted_amount: float
    expense_count: int


class MonthlyCategory(CamelModel):
    category: str
    expenses: float
    budget: float


class MonthlyBudgetSummary(CamelModel):
    total_expenses: float
    budget: Optional[float] = None  # None when the month has no expenses
    categories: List[MonthlyCategory] = []
    has_data: bool
    period_start: datetime
    period_end: datetime


class CategoryReport(CamelModel):
    category: str
    total_amount: float
    converted_total: float
    status: ExpenseStatus  # Status of the most recent expense in the category
    status_counts: Dict[ExpenseStatus, int] = {}
