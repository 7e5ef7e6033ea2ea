"""
Report resources: dashboard figures and circulation statistics.

- library://reports/dashboard
- library://reports/popular-books/{limit}
- library://reports/popular-categories/{limit}
- library://reports/monthly-checkouts/{year}
- library://reports/loan-statistics
"""

import logging
from datetime import date
from typing import Any

from fastmcp.exceptions import ResourceError

from ..database.report_repository import ReportRepository
from ..database.session import session_scope
from .common import JSON, parse_id, resource_errors

logger = logging.getLogger(__name__)

MAX_RANKING = 50


def _parse_limit(limit: str) -> int:
    value = parse_id(limit, "limit")
    if value > MAX_RANKING:
        raise ResourceError(f"Limit must be between 1 and {MAX_RANKING}")
    return value


async def dashboard_handler() -> dict[str, Any]:
    with resource_errors("dashboard statistics"):
        with session_scope() as session:
            return ReportRepository(session).dashboard_stats().model_dump(mode="json")


async def popular_books_handler(limit: str) -> dict[str, Any]:
    with resource_errors("popular books"):
        with session_scope() as session:
            books = ReportRepository(session).popular_books(_parse_limit(limit))
            return {"books": [book.model_dump(mode="json") for book in books]}


async def popular_categories_handler(limit: str) -> dict[str, Any]:
    with resource_errors("popular categories"):
        with session_scope() as session:
            categories = ReportRepository(session).popular_categories(_parse_limit(limit))
            return {"categories": [c.model_dump(mode="json") for c in categories]}


async def monthly_checkouts_handler(year: str) -> dict[str, Any]:
    """Twelve entries, January first, zero for months without checkouts."""
    with resource_errors("monthly checkouts"):
        year_value = parse_id(year, "year")
        if not 1900 <= year_value <= date.today().year + 1:
            raise ResourceError(f"Invalid year: {year}")
        with session_scope() as session:
            months = ReportRepository(session).monthly_checkouts(year_value)
            return {"year": year_value, "months": [m.model_dump(mode="json") for m in months]}


async def loan_statistics_handler() -> dict[str, Any]:
    with resource_errors("loan statistics"):
        with session_scope() as session:
            return ReportRepository(session).loan_statistics().model_dump(mode="json")


report_resources: list[dict[str, Any]] = [
    {
        "uri": "library://reports/dashboard",
        "name": "Dashboard",
        "description": (
            "Headline figures: books in the catalog, active members, copies checked out, "
            "active and overdue loans."
        ),
        "mime_type": JSON,
        "handler": dashboard_handler,
    },
    {
        "uri": "library://reports/popular-books/{limit}",
        "name": "Popular Books",
        "description": f"Most borrowed books, at most {MAX_RANKING}.",
        "mime_type": JSON,
        "handler": popular_books_handler,
    },
    {
        "uri": "library://reports/popular-categories/{limit}",
        "name": "Popular Categories",
        "description": f"Most borrowed categories, at most {MAX_RANKING}.",
        "mime_type": JSON,
        "handler": popular_categories_handler,
    },
    {
        "uri": "library://reports/monthly-checkouts/{year}",
        "name": "Monthly Checkouts",
        "description": "Number of loans started in each month of a year.",
        "mime_type": JSON,
        "handler": monthly_checkouts_handler,
    },
    {
        "uri": "library://reports/loan-statistics",
        "name": "Loan Statistics",
        "description": "Active and overdue loans with checkouts and returns this month.",
        "mime_type": JSON,
        "handler": loan_statistics_handler,
    },
]
