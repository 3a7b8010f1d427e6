"""
Expense ledger: submission with currency conversion, and the owner's expense list.
"""
import logging
import math
from datetime import datetime, timezone
from typing import List, Optional

from app.config import settings
from app.database.db_service import DatabaseService
from app.exceptions import AuthorizationError, IntegrityConflictError, ValidationError
from app.models.schemas import EnrichedExpense, Expense, ExpenseStatus, Identity

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Uncategorized"


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored dates are naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def is_policy_compliant(amount: float) -> bool:
    return amount <= settings.POLICY_AMOUNT_LIMIT


class ExpenseLedger:
    def __init__(self, db: DatabaseService, rate_oracle):
        self.db = db
        self.rate_oracle = rate_oracle

    def submit(
        self,
        owner: str,
        amount: float,
        currency: str,
        category: Optional[str],
        date: Optional[datetime],
        description: Optional[str],
        budget: Optional[float],
        identity: Identity,
        idempotency_key: Optional[str] = None,
    ) -> Expense:
        """
        Convert, persist and return a new Pending expense.

        The expense insert and the owner's budget upsert are committed together.
        A repeated idempotency_key returns the expense created the first time.
        """
        if identity.username != owner:
            logger.warning("User %s tried to submit an expense for %s", identity.username, owner)
            raise AuthorizationError("Username mismatch")

        currency = str(getattr(currency, "value", currency)).upper()
        if currency not in settings.supported_currencies:
            raise ValidationError(f"Unsupported currency: {currency}")
        if amount is None or not math.isfinite(amount) or amount < 0:
            raise ValidationError("Amount must be a non-negative number")
        if budget is not None and not math.isfinite(budget):
            raise ValidationError("Budget must be a number")

        replay = self._find_replay(owner, idempotency_key)
        if replay:
            return replay

        converted_amount = self.rate_oracle.convert(amount, currency, settings.BASE_CURRENCY)

        expense_doc = {
            "username": owner,
            "amount": amount,
            "currency": currency,
            "category": (category or "").strip() or DEFAULT_CATEGORY,
            "date": to_naive_utc(date) or datetime.utcnow(),
            "description": description,
            "status": ExpenseStatus.PENDING.value,
            "budget": budget,
            "converted_amount": converted_amount,
            "policy_compliant": is_policy_compliant(amount),
            "idempotency_key": idempotency_key,
        }
        try:
            created = self.db.insert("expenses", expense_doc)
        except IntegrityConflictError:
            # A concurrent request with the same key committed first
            replay = self._find_replay(owner, idempotency_key)
            if replay:
                return replay
            raise

        if budget is not None:
            self._update_user_budget(owner, budget)

        self.db.commit()
        logger.info(
            "Expense %s submitted by %s: %s %s -> %.2f %s",
            created["id"], owner, amount, currency, converted_amount, settings.BASE_CURRENCY
        )
        return Expense(**created)

    def _find_replay(self, owner: str, idempotency_key: Optional[str]) -> Optional[Expense]:
        if not idempotency_key:
            return None
        existing = self.db.find_one("expenses", {"username": owner, "idempotency_key": idempotency_key})
        if not existing:
            return None
        logger.info("Replayed submission %s for %s", idempotency_key, owner)
        return Expense(**existing)

    def _update_user_budget(self, username: str, budget: float):
        user_doc = self.db.find_one("users", {"username": username})
        if user_doc and user_doc.get("budget") == budget:
            return
        self.db.upsert("users", {"username": username}, {"budget": budget})
        logger.info("Budget for %s set to %s", username, budget)

    def category_totals(self, owner: str) -> dict:
        rows = self.db.aggregate(
            "expenses",
            {"total": ("sum", "converted_amount")},
            group_by="category",
            query={"username": owner},
        )
        return {row["_id"]: row["total"] or 0.0 for row in rows}

    def list_mine(self, owner: str) -> List[EnrichedExpense]:
        expenses = self.db.find("expenses", {"username": owner}, order_by=["date", "created_at"])
        if not expenses:
            return []

        user_doc = self.db.find_one("users", {"username": owner})
        user_budget = (user_doc or {}).get("budget")
        totals = self.category_totals(owner)

        enriched = []
        for expense in expenses:
            if expense.get("budget") is not None:
                budget = expense["budget"]
            elif user_budget is not None:
                budget = user_budget
            else:
                budget = 0.0
            enriched.append(EnrichedExpense(**{
                **expense,
                "budget": budget,
                "total_expenses": totals.get(expense["category"], 0.0),
            }))
        return enriched
