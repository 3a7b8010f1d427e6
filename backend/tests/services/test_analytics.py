import random
from datetime import datetime

import pytest

from app.models.schemas import ExpenseStatus
from app.services.analytics import ExpenseAnalytics, month_window
from app.services.approval import ApprovalWorkflow
from app.services.ledger import ExpenseLedger


@pytest.fixture
def submit(db, rate_oracle, identity):
    ledger = ExpenseLedger(db, rate_oracle)

    def _submit(amount, category, currency="USD", date=None, budget=None, owner="alice"):
        return ledger.submit(
            owner=owner,
            amount=amount,
            currency=currency,
            category=category,
            date=date,
            description=None,
            budget=budget,
            identity=identity(owner),
        )
    return _submit


def test_month_window_bounds():
    assert month_window(datetime(2024, 2, 14, 9, 30)) == (
        datetime(2024, 2, 1), datetime(2024, 2, 29, 23, 59, 59)
    )
    assert month_window(datetime(2023, 12, 31)) == (
        datetime(2023, 12, 1), datetime(2023, 12, 31, 23, 59, 59)
    )


def test_analytics_totals_match_partition(db, submit):
    rng = random.Random(7)
    categories = ["Travel", "Meals", "Lodging", "Fuel"]
    expected = {}
    for _ in range(40):
        category = rng.choice(categories)
        currency = rng.choice(["USD", "EUR", "GBP", "JPY"])
        expense = submit(round(rng.uniform(1, 900), 2), category, currency=currency)
        expected.setdefault(category, []).append(expense.converted_amount)
    submit(10_000, "Travel", owner="bob")

    rows = ExpenseAnalytics(db).analytics_by_category("alice")

    assert {row.category for row in rows} == set(expected)
    for row in rows:
        assert row.total_converted_amount == pytest.approx(sum(expected[row.category]))
        assert row.expense_count == len(expected[row.category])
        assert row.average_converted_amount == pytest.approx(
            sum(expected[row.category]) / len(expected[row.category])
        )
    totals = [row.total_converted_amount for row in rows]
    assert totals == sorted(totals, reverse=True)


def test_analytics_sums_source_amounts_and_breaks_ties_by_category(db, submit):
    submit(100, "Meals", currency="GBP")
    submit(125, "Lodging")

    rows = ExpenseAnalytics(db).analytics_by_category("alice")

    assert [row.category for row in rows] == ["Lodging", "Meals"]
    assert rows[1].total_amount == 100
    assert rows[1].total_converted_amount == 125.0


def test_monthly_summary_excludes_days_outside_month(db, submit):
    submit(1, "Travel", date=datetime(2024, 3, 31, 23, 59, 59), budget=10)
    submit(20, "Travel", date=datetime(2024, 4, 1, 0, 0, 0), budget=300)
    submit(40, "Meals", date=datetime(2024, 4, 30, 23, 59, 59), budget=200)
    submit(8, "Travel", date=datetime(2024, 5, 1, 0, 0, 0), budget=10)

    summary = ExpenseAnalytics(db).monthly_budget_summary("alice", datetime(2024, 4, 15))

    assert summary.has_data is True
    assert summary.total_expenses == pytest.approx(60.0)
    assert summary.budget == pytest.approx(500.0)
    assert [(c.category, c.expenses, c.budget) for c in summary.categories] == [
        ("Meals", 40.0, 200.0),
        ("Travel", 20.0, 300.0),
    ]
    assert summary.period_start == datetime(2024, 4, 1)
    assert summary.period_end == datetime(2024, 4, 30, 23, 59, 59)


def test_monthly_summary_without_data_is_explicit(db, submit):
    submit(25, "Travel", date=datetime(2024, 1, 5))

    summary = ExpenseAnalytics(db).monthly_budget_summary("alice", datetime(2024, 2, 10))

    assert summary.has_data is False
    assert summary.budget is None
    assert summary.total_expenses == 0.0
    assert summary.categories == []


def test_monthly_summary_budget_ignores_missing_snapshots(db, submit):
    submit(25, "Travel", date=datetime(2024, 6, 5))

    summary = ExpenseAnalytics(db).monthly_budget_summary("alice", datetime(2024, 6, 20))

    assert summary.has_data is True
    assert summary.budget == 0.0
    assert summary.categories[0].budget == 0.0


def test_report_reports_latest_status_and_counts(db, submit):
    older = submit(100, "Travel", date=datetime(2024, 5, 1))
    submit(50, "Travel", date=datetime(2024, 5, 20))
    submit(30, "Meals", date=datetime(2024, 5, 3))
    ApprovalWorkflow(db).approve(older.id)

    rows = ExpenseAnalytics(db).report_by_category("alice")

    assert [row.category for row in rows] == ["Travel", "Meals"]
    travel = rows[0]
    assert travel.total_amount == 150
    assert travel.converted_total == pytest.approx(150.0)
    assert travel.status == ExpenseStatus.PENDING
    assert travel.status_counts == {ExpenseStatus.APPROVED: 1, ExpenseStatus.PENDING: 1}


def test_report_filters_by_status_and_date_range(db, submit):
    approved = submit(100, "Travel", date=datetime(2024, 5, 1))
    submit(50, "Travel", date=datetime(2024, 5, 20))
    submit(70, "Meals", date=datetime(2024, 7, 1))
    ApprovalWorkflow(db).approve(approved.id)
    analytics = ExpenseAnalytics(db)

    pending = analytics.report_by_category("alice", status=ExpenseStatus.PENDING)
    assert {(row.category, row.total_amount) for row in pending} == {("Travel", 50), ("Meals", 70)}

    may = analytics.report_by_category(
        "alice", start_date=datetime(2024, 5, 1), end_date=datetime(2024, 5, 31, 23, 59, 59)
    )
    assert [(row.category, row.total_amount) for row in may] == [("Travel", 150)]

    assert analytics.report_by_category("alice", status=ExpenseStatus.REIMBURSED) == []
