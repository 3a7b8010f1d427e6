"""
Category and monthly aggregations over a user's expenses.
"""
import calendar
import logging
from collections import Counter
from datetime import datetime
from typing import List, Optional, Tuple

from app.database.db_service import DatabaseService
from app.models.schemas import (
    CategoryAnalytics, CategoryReport, ExpenseStatus, MonthlyBudgetSummary, MonthlyCategory
)

logger = logging.getLogger(__name__)


def month_window(reference_date: datetime) -> Tuple[datetime, datetime]:
    """First day 00:00:00 through last day 23:59:59 of the reference month."""
    last_day = calendar.monthrange(reference_date.year, reference_date.month)[1]
    start = datetime(reference_date.year, reference_date.month, 1)
    end = datetime(reference_date.year, reference_date.month, last_day, 23, 59, 59)
    return start, end


class ExpenseAnalytics:
    def __init__(self, db: DatabaseService):
        self.db = db

    def analytics_by_category(self, username: str) -> List[CategoryAnalytics]:
        rows = self.db.aggregate(
            "expenses",
            {
                "total_amount": ("sum", "amount"),
                "total_converted_amount": ("sum", "converted_amount"),
                "average_converted_amount": ("avg", "converted_amount"),
                "expense_count": ("count", None),
            },
            group_by="category",
            query={"username": username},
            order_by="total_converted_amount",
        )
        return [
            CategoryAnalytics(
                category=row["_id"],
                total_amount=row["total_amount"] or 0.0,
                total_converted_amount=row["total_converted_amount"] or 0.0,
                average_converted_amount=row["average_converted_amount"] or 0.0,
                expense_count=row["expense_count"],
            )
            for row in rows
        ]

    def monthly_budget_summary(self, username: str, reference_date: Optional[datetime] = None) -> MonthlyBudgetSummary:
        start, end = month_window(reference_date or datetime.utcnow())
        date_range = ("date", start, end)
        query = {"username": username}

        overall = self.db.aggregate(
            "expenses",
            {
                "total_expenses": ("sum", "converted_amount"),
                "total_budget": ("sum", "budget"),
                "expense_count": ("count", None),
            },
            query=query,
            date_range=date_range,
        )
        stats = overall[0] if overall else {}
        if not stats.get("expense_count"):
            logger.debug("No expenses for %s between %s and %s", username, start, end)
            return MonthlyBudgetSummary(
                total_expenses=0.0,
                budget=None,
                categories=[],
                has_data=False,
                period_start=start,
                period_end=end,
            )

        category_rows = self.db.aggregate(
            "expenses",
            {
                "category_expenses": ("sum", "converted_amount"),
                "category_budget": ("sum", "budget"),
            },
            group_by="category",
            query=query,
            date_range=date_range,
            order_by="category_expenses",
        )

        return MonthlyBudgetSummary(
            total_expenses=stats["total_expenses"] or 0.0,
            budget=stats["total_budget"] or 0.0,
            categories=[
                MonthlyCategory(
                    category=row["_id"],
                    expenses=row["category_expenses"] or 0.0,
                    budget=row["category_budget"] or 0.0,
                )
                for row in category_rows
            ],
            has_data=True,
            period_start=start,
            period_end=end,
        )

    def report_by_category(
        self,
        username: str,
        status: Optional[ExpenseStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[CategoryReport]:
        query = {"username": username}
        if status is not None:
            query["status"] = status
        date_range = ("date", start_date, end_date) if (start_date or end_date) else None

        rows = self.db.aggregate(
            "expenses",
            {
                "total_amount": ("sum", "amount"),
                "converted_total": ("sum", "converted_amount"),
            },
            group_by="category",
            query=query,
            date_range=date_range,
            order_by="converted_total",
        )
        if not rows:
            return []

        # Oldest first, so the last status seen per category is the most recent one
        latest_status = {}
        status_counts = {}
        for expense in self.db.find("expenses", query, date_range=date_range, order_by=["date", "created_at"]):
            category = expense["category"]
            latest_status[category] = expense["status"]
            status_counts.setdefault(category, Counter())[expense["status"]] += 1

        return [
            CategoryReport(
                category=row["_id"],
                total_amount=row["total_amount"] or 0.0,
                converted_total=row["converted_total"] or 0.0,
                status=latest_status[row["_id"]],
                status_counts=dict(status_counts[row["_id"]]),
            )
            for row in rows
        ]
