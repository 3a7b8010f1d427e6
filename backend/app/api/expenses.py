from fastapi import APIRouter, Depends, Header, Query, status
from typing import List, Optional
from datetime import datetime
from sqlalchemy.orm import Session
import logging
from app.models.schemas import (
    CategoryAnalytics, CategoryReport, EnrichedExpense, Expense, ExpenseDecided,
    ExpenseDecision, ExpenseStatus, ExpenseSubmit, ExpenseSubmitted, Identity,
    MonthlyBudgetSummary, Role
)
from app.api.auth import get_current_identity, require_roles
from app.database.postgres_db import get_db as get_session
from app.database.db_service import get_db_service
from app.exceptions import ValidationError
from app.services.analytics import ExpenseAnalytics
from app.services.approval import ApprovalWorkflow, authorize_decision
from app.services.exchange_rate_client import get_rate_oracle
from app.services.ledger import ExpenseLedger, to_naive_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/expenses", tags=["expenses"])

queue_guard = require_roles(Role.MANAGER, Role.ADMIN)


@router.post("/submit", response_model=ExpenseSubmitted, status_code=status.HTTP_201_CREATED)
def submit_expense(
    expense: ExpenseSubmit,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    identity: Identity = Depends(get_current_identity),
    session: Session = Depends(get_session),
    rate_oracle=Depends(get_rate_oracle),
):
    ledger = ExpenseLedger(get_db_service(session), rate_oracle)
    created = ledger.submit(
        owner=expense.username,
        amount=expense.amount,
        currency=expense.currency,
        category=expense.category,
        date=expense.date,
        description=expense.description,
        budget=expense.budget,
        identity=identity,
        idempotency_key=idempotency_key,
    )
    return ExpenseSubmitted(message="Expense submitted", expense=created)


@router.get("/my", response_model=List[EnrichedExpense])
async def get_my_expenses(
    identity: Identity = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    ledger = ExpenseLedger(get_db_service(session), rate_oracle=None)
    return ledger.list_mine(identity.username)


@router.get("/report", response_model=List[CategoryReport])
async def get_report(
    status_filter: Optional[ExpenseStatus] = Query(default=None, alias="status"),
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    identity: Identity = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    start_date = to_naive_utc(start_date)
    end_date = to_naive_utc(end_date)
    if start_date and end_date and start_date > end_date:
        raise ValidationError("startDate must not be after endDate")

    analytics = ExpenseAnalytics(get_db_service(session))
    return analytics.report_by_category(identity.username, status_filter, start_date, end_date)


@router.get("", response_model=List[Expense])
async def get_expense_queue(
    status_filter: ExpenseStatus = Query(default=ExpenseStatus.PENDING, alias="status"),
    identity: Identity = Depends(queue_guard),
    session: Session = Depends(get_session),
):
    """Pending expenses across all owners, for managers and admins."""
    if status_filter != ExpenseStatus.PENDING:
        raise ValidationError("Only the Pending queue can be listed")
    return ApprovalWorkflow(get_db_service(session)).list_pending()


def _decide(expense_id: str, target: ExpenseStatus, identity: Identity, session: Session) -> Expense:
    workflow = ApprovalWorkflow(get_db_service(session))
    authorize_decision(identity, workflow.get(expense_id), target)
    if target == ExpenseStatus.APPROVED:
        return workflow.approve(expense_id)
    if target == ExpenseStatus.REJECTED:
        return workflow.reject(expense_id)
    return workflow.reimburse(expense_id)


@router.post("/approve", response_model=ExpenseDecided)
async def approve_expense(
    decision: ExpenseDecision,
    identity: Identity = Depends(queue_guard),
    session: Session = Depends(get_session),
):
    expense = _decide(decision.expense_id, ExpenseStatus.APPROVED, identity, session)
    return ExpenseDecided(message="Expense approved", expense=expense)


@router.post("/reject", response_model=ExpenseDecided)
async def reject_expense(
    decision: ExpenseDecision,
    identity: Identity = Depends(queue_guard),
    session: Session = Depends(get_session),
):
    expense = _decide(decision.expense_id, ExpenseStatus.REJECTED, identity, session)
    return ExpenseDecided(message="Expense rejected", expense=expense)


@router.post("/reimburse", response_model=ExpenseDecided)
async def reimburse_expense(
    decision: ExpenseDecision,
    identity: Identity = Depends(require_roles(Role.ADMIN)),
    session: Session = Depends(get_session),
):
    expense = _decide(decision.expense_id, ExpenseStatus.REIMBURSED, identity, session)
    return ExpenseDecided(message="Expense reimbursed", expense=expense)


@router.get("/analytics", response_model=List[CategoryAnalytics])
async def get_analytics(
    identity: Identity = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    return ExpenseAnalytics(get_db_service(session)).analytics_by_category(identity.username)


@router.get("/analytics/monthly", response_model=MonthlyBudgetSummary)
async def get_monthly_analytics(
    reference_date: Optional[datetime] = Query(default=None, alias="referenceDate"),
    identity: Identity = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    analytics = ExpenseAnalytics(get_db_service(session))
    return analytics.monthly_budget_summary(identity.username, to_naive_utc(reference_date))
