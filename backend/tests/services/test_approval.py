import pytest

from app.exceptions import AuthorizationError, InvalidTransitionError, NotFoundError
from app.models.schemas import ExpenseStatus, Role
from app.services.approval import ApprovalWorkflow, authorize_decision
from app.services.ledger import ExpenseLedger


@pytest.fixture
def expense(db, rate_oracle, identity):
    return ExpenseLedger(db, rate_oracle).submit(
        owner="alice",
        amount=120,
        currency="USD",
        category="Travel",
        date=None,
        description="train",
        budget=None,
        identity=identity("alice"),
    )


def test_approve_moves_pending_to_approved(db, expense):
    approved = ApprovalWorkflow(db).approve(expense.id)

    assert approved.status == ExpenseStatus.APPROVED
    assert approved.updated_at is not None
    assert db.find_one("expenses", {"id": expense.id})["status"] == "Approved"


def test_reject_moves_pending_to_rejected(db, expense):
    assert ApprovalWorkflow(db).reject(expense.id).status == ExpenseStatus.REJECTED


def test_repeating_a_decision_is_a_no_op(db, expense):
    workflow = ApprovalWorkflow(db)

    first = workflow.approve(expense.id)
    second = workflow.approve(expense.id)

    assert first.status == second.status == ExpenseStatus.APPROVED
    assert second.updated_at == first.updated_at


def test_decisions_are_terminal(db, expense):
    workflow = ApprovalWorkflow(db)
    workflow.reject(expense.id)

    with pytest.raises(InvalidTransitionError):
        workflow.approve(expense.id)
    with pytest.raises(InvalidTransitionError):
        workflow.reimburse(expense.id)


def test_reimburse_requires_approval_first(db, expense):
    workflow = ApprovalWorkflow(db)

    with pytest.raises(InvalidTransitionError):
        workflow.reimburse(expense.id)

    workflow.approve(expense.id)
    assert workflow.reimburse(expense.id).status == ExpenseStatus.REIMBURSED


def test_unknown_expense_is_not_found(db):
    workflow = ApprovalWorkflow(db)

    with pytest.raises(NotFoundError):
        workflow.approve("missing")
    with pytest.raises(NotFoundError):
        workflow.reject("missing")


def test_list_pending_spans_all_owners(db, rate_oracle, identity, expense):
    bob_expense = ExpenseLedger(db, rate_oracle).submit(
        owner="bob", amount=40, currency="EUR", category="Meals", date=None,
        description=None, budget=None, identity=identity("bob"),
    )
    workflow = ApprovalWorkflow(db)

    assert {e.id for e in workflow.list_pending()} == {expense.id, bob_expense.id}

    workflow.reject(bob_expense.id)
    assert [e.id for e in workflow.list_pending()] == [expense.id]


@pytest.mark.parametrize("role, target, allowed", [
    (Role.EMPLOYEE, ExpenseStatus.APPROVED, False),
    (Role.MANAGER, ExpenseStatus.APPROVED, True),
    (Role.MANAGER, ExpenseStatus.REJECTED, True),
    (Role.ADMIN, ExpenseStatus.REJECTED, True),
    (Role.MANAGER, ExpenseStatus.REIMBURSED, False),
    (Role.ADMIN, ExpenseStatus.REIMBURSED, True),
])
def test_authorize_decision_by_role(expense, identity, role, target, allowed):
    if allowed:
        authorize_decision(identity("carol", role), expense, target)
    else:
        with pytest.raises(AuthorizationError):
            authorize_decision(identity("carol", role), expense, target)


def test_authorize_decision_denies_own_expense(expense, identity):
    with pytest.raises(AuthorizationError):
        authorize_decision(identity("alice", Role.MANAGER), expense, ExpenseStatus.APPROVED)


def test_concurrent_decision_is_a_conflict(db, expense, monkeypatch):
    workflow = ApprovalWorkflow(db)
    # Another request moved the expense between the read and the guarded update
    monkeypatch.setattr(db, "update", lambda *_args, **_kwargs: 0)

    with pytest.raises(InvalidTransitionError) as excinfo:
        workflow.approve(expense.id)

    assert excinfo.value.status_code == 409
    assert db.find_one("expenses", {"id": expense.id})["status"] == "Pending"
