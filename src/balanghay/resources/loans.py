"""
Loan resources.

- library://loans/list - every loan, newest first
- library://loans/active - loans not yet returned
- library://loans/overdue - open loans whose due date has passed
- library://loans/due-soon - open loans due within the next 3 days
- library://loans/due-soon/{days} - the same with a chosen horizon
- library://loans/transactions - loans grouped by borrow transaction

Overdue is computed when the resource is read; it is never stored.
"""

import logging
from typing import Any

from fastmcp.exceptions import ResourceError

from ..database.loan_repository import LoanRepository
from ..database.session import session_scope
from ..models.loan import LoanFilters
from .common import JSON, resource_errors

logger = logging.getLogger(__name__)


def _loan_listing(filters: LoanFilters, what: str) -> dict[str, Any]:
    with resource_errors(what):
        with session_scope() as session:
            loans = LoanRepository(session).list_loans(filters)
            logger.debug("%s: %d loan(s)", what, len(loans))
            return {"loans": [loan.model_dump(mode="json") for loan in loans], "total": len(loans)}


async def list_loans_handler() -> dict[str, Any]:
    return _loan_listing(LoanFilters(), "loan list")


async def list_active_loans_handler() -> dict[str, Any]:
    return _loan_listing(LoanFilters(active_only=True), "active loans")


async def list_overdue_loans_handler() -> dict[str, Any]:
    return _loan_listing(LoanFilters(overdue_only=True), "overdue loans")


DUE_SOON_DAYS = 3
MAX_DUE_SOON_DAYS = 365


async def list_due_soon_handler() -> dict[str, Any]:
    return {
        "days": DUE_SOON_DAYS,
        **_loan_listing(LoanFilters(due_within_days=DUE_SOON_DAYS), "loans due soon"),
    }


async def list_due_within_handler(days: str) -> dict[str, Any]:
    try:
        horizon = int(days)
    except ValueError as e:
        raise ResourceError(f"Invalid number of days: {days!r}") from e
    if not 0 <= horizon <= MAX_DUE_SOON_DAYS:
        raise ResourceError(f"Days must be between 0 and {MAX_DUE_SOON_DAYS}")
    return {
        "days": horizon,
        **_loan_listing(LoanFilters(due_within_days=horizon), "loans due soon"),
    }


async def list_transactions_handler() -> dict[str, Any]:
    with resource_errors("loan transactions"):
        with session_scope() as session:
            transactions = LoanRepository(session).list_transactions()
            return {
                "transactions": [t.model_dump(mode="json") for t in transactions],
                "total": len(transactions),
            }


loan_resources: list[dict[str, Any]] = [
    {
        "uri": "library://loans/list",
        "name": "All Loans",
        "description": "Every loan with book, copy and member details, newest first.",
        "mime_type": JSON,
        "handler": list_loans_handler,
    },
    {
        "uri": "library://loans/active",
        "name": "Active Loans",
        "description": "Loans that have not been returned yet, overdue ones included.",
        "mime_type": JSON,
        "handler": list_active_loans_handler,
    },
    {
        "uri": "library://loans/overdue",
        "name": "Overdue Loans",
        "description": "Open loans whose due date is before today.",
        "mime_type": JSON,
        "handler": list_overdue_loans_handler,
    },
    {
        "uri": "library://loans/due-soon",
        "name": "Loans Due Soon",
        "description": "Open loans due today or within the next 3 days.",
        "mime_type": JSON,
        "handler": list_due_soon_handler,
    },
    {
        "uri": "library://loans/due-soon/{days}",
        "name": "Loans Due Within",
        "description": "Open loans due between today and the given number of days ahead.",
        "mime_type": JSON,
        "handler": list_due_within_handler,
    },
    {
        "uri": "library://loans/transactions",
        "name": "Loan Transactions",
        "description": (
            "Loans grouped by borrow transaction with a short title, book count and the "
            "most urgent status of the group."
        ),
        "mime_type": JSON,
        "handler": list_transactions_handler,
    },
]
