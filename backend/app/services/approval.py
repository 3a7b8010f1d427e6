"""
Approval workflow for submitted expenses.

Transitions:
    Pending  -> Approved | Rejected
    Approved -> Reimbursed

Repeating the decision an expense already carries is a no-op. The transition
methods do not look at who is calling; routes run authorize_decision first.
"""
import logging
from typing import Dict, List, Set

from app.database.db_service import DatabaseService
from app.exceptions import AuthorizationError, InvalidTransitionError, NotFoundError
from app.models.schemas import Expense, ExpenseStatus, Identity, Role

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[ExpenseStatus, Set[ExpenseStatus]] = {
    ExpenseStatus.PENDING: {ExpenseStatus.APPROVED, ExpenseStatus.REJECTED},
    ExpenseStatus.APPROVED: {ExpenseStatus.REIMBURSED},
    ExpenseStatus.REJECTED: set(),
    ExpenseStatus.REIMBURSED: set(),
}

DECISION_ROLES = {Role.MANAGER, Role.ADMIN}
REIMBURSE_ROLES = {Role.ADMIN}


def authorize_decision(identity: Identity, expense: Expense, target: ExpenseStatus) -> None:
    """Raise AuthorizationError unless identity may move expense to target."""
    allowed_roles = REIMBURSE_ROLES if target == ExpenseStatus.REIMBURSED else DECISION_ROLES
    if identity.role not in allowed_roles:
        raise AuthorizationError(f"Role {identity.role.value} cannot mark expenses {target.value}")
    if identity.username == expense.username:
        raise AuthorizationError("Cannot decide on your own expense")


class ApprovalWorkflow:
    def __init__(self, db: DatabaseService):
        self.db = db

    def get(self, expense_id: str) -> Expense:
        expense_doc = self.db.find_one("expenses", {"id": expense_id})
        if not expense_doc:
            raise NotFoundError("Expense not found")
        return Expense(**expense_doc)

    def _transition(self, expense_id: str, target: ExpenseStatus) -> Expense:
        expense = self.get(expense_id)
        if expense.status == target:
            return expense
        if target not in ALLOWED_TRANSITIONS[expense.status]:
            raise InvalidTransitionError(
                f"Cannot change expense from {expense.status.value} to {target.value}"
            )

        # Guard on the current status so a concurrent decision is not overwritten
        updated = self.db.update(
            "expenses",
            {"id": expense_id, "status": expense.status},
            {"status": target},
        )
        if not updated:
            self.db.session.rollback()
            raise InvalidTransitionError("Expense status changed concurrently")
        self.db.commit()

        logger.info("Expense %s moved from %s to %s", expense_id, expense.status.value, target.value)
        return self.get(expense_id)

    def approve(self, expense_id: str) -> Expense:
        return self._transition(expense_id, ExpenseStatus.APPROVED)

    def reject(self, expense_id: str) -> Expense:
        return self._transition(expense_id, ExpenseStatus.REJECTED)

    def reimburse(self, expense_id: str) -> Expense:
        return self._transition(expense_id, ExpenseStatus.REIMBURSED)

    def list_pending(self) -> List[Expense]:
        expenses = self.db.find(
            "expenses",
            {"status": ExpenseStatus.PENDING},
            order_by=["date", "created_at"],
        )
        return [Expense(**expense) for expense in expenses]
