"""
SQLAlchemy ORM Models for PostgreSQL
"""
from sqlalchemy import Column, String, Float, DateTime, Text, Enum as SQLEnum, Boolean, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base
from datetime import datetime
import enum

Base = declarative_base()


class RoleEnum(str, enum.Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"


class CurrencyEnum(str, enum.Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"


class ExpenseStatusEnum(str, enum.Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    REIMBURSED = "Reimbursed"


def _enum_values(enum_class):
    return [member.value for member in enum_class]


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    username = Column(String, unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=True)  # Null for users created by a budget upsert
    budget = Column(Float, default=0.0, nullable=False)  # Monthly budget
    role = Column(
        SQLEnum(RoleEnum, name="user_role", values_callable=_enum_values),
        default=RoleEnum.EMPLOYEE,
        nullable=False,
    )
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String, primary_key=True)
    username = Column(String, nullable=False, index=True)  # Owner, matches users.username
    amount = Column(Float, nullable=False)  # Source currency
    currency = Column(
        SQLEnum(CurrencyEnum, name="expense_currency", values_callable=_enum_values),
        nullable=False,
    )
    category = Column(String, nullable=False, default="Uncategorized", index=True)
    date = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    description = Column(Text, nullable=True)
    status = Column(
        SQLEnum(ExpenseStatusEnum, name="expense_status", values_callable=_enum_values),
        default=ExpenseStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    budget = Column(Float, nullable=True)  # Budget snapshot sent with the submission
    converted_amount = Column(Float, nullable=False)  # USD, fixed at creation
    policy_compliant = Column(Boolean, default=True, nullable=False)

    # Client supplied key so a retried submission does not create a duplicate
    idempotency_key = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_expenses_username_category", "username", "category"),
        Index("ix_expenses_username_date", "username", "date"),
        UniqueConstraint("username", "idempotency_key", name="uq_expenses_username_idempotency_key"),
    )
