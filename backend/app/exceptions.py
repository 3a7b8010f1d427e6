"""
Domain errors raised by the ledger, analytics and approval services.

Each error carries the HTTP status it maps to at the API boundary.
"""
from fastapi import status


class ExpenseError(Exception):
    """Base class for expense domain errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthorizationError(ExpenseError):
    """Identity does not match the owner, or lacks the role for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ExpenseError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTransitionError(ExpenseError):
    """Requested status change is not allowed from the expense's current status."""

    status_code = status.HTTP_409_CONFLICT


class ValidationError(ExpenseError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ConversionError(ExpenseError):
    """Currency conversion provider was unreachable or returned an unusable result."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class PersistenceError(ExpenseError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class IntegrityConflictError(PersistenceError):
    """A write collided with a unique or foreign key constraint."""
