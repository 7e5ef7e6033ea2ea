"""
Report aggregations for the dashboard and the reports screen.

All figures are computed from the tables on each call. Overdue counts use
the same rule as ``derive_loan_status``: an open loan whose due date is
before today.
"""

import logging
from datetime import date

from sqlalchemy import extract, func, select
from sqlalchemy.orm import Session

from ..database.schema import Book as BookDB
from ..database.schema import BookCopy as CopyDB
from ..database.schema import CopyStatusEnum, MemberStatusEnum
from ..database.schema import Loan as LoanDB
from ..database.schema import Member as MemberDB
from ..database.session import safe_query
from ..models.report import (
    DashboardStats,
    LoanStatistics,
    MonthlyCount,
    PopularBook,
    PopularCategory,
)
from .loan_repository import open_loan_clause

logger = logging.getLogger(__name__)

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class ReportRepository:
    """Read-only aggregation queries."""

    def __init__(self, session: Session):
        self.session = session

    def _scalar(self, stmt, error_msg: str) -> int:
        return safe_query(self.session, lambda s: s.execute(stmt).scalar(), error_msg) or 0

    def _count_loans(self, *conditions) -> int:
        return self._scalar(
            select(func.count()).select_from(LoanDB).where(*conditions), "Failed to count loans"
        )

    def dashboard_stats(self, today: date | None = None) -> DashboardStats:
        today = today or date.today()
        return DashboardStats(
            total_books=self._scalar(
                select(func.count()).select_from(BookDB), "Failed to count books"
            ),
            active_members=self._scalar(
                select(func.count())
                .select_from(MemberDB)
                .where(MemberDB.status == MemberStatusEnum.ACTIVE.value),
                "Failed to count members",
            ),
            books_checked_out=self._scalar(
                select(func.count())
                .select_from(CopyDB)
                .where(CopyDB.status == CopyStatusEnum.CHECKED_OUT.value),
                "Failed to count checked out copies",
            ),
            overdue_loans=self._count_loans(open_loan_clause(), LoanDB.due_date < today),
            active_loans=self._count_loans(open_loan_clause()),
        )

    def popular_books(self, limit: int = 5) -> list[PopularBook]:
        """Books by number of loans ever made on their copies, most first."""
        borrow_count = func.count(LoanDB.id).label("borrow_count")
        stmt = (
            select(BookDB.id, BookDB.title, BookDB.author, borrow_count)
            .select_from(LoanDB)
            .join(CopyDB, LoanDB.book_copy_id == CopyDB.id)
            .join(BookDB, CopyDB.book_id == BookDB.id)
            .group_by(BookDB.id, BookDB.title, BookDB.author)
            .order_by(borrow_count.desc(), BookDB.title)
            .limit(limit)
        )
        rows = safe_query(
            self.session, lambda s: s.execute(stmt).all(), "Failed to get popular books"
        )
        return [
            PopularBook(
                book_id=row.id, title=row.title, author=row.author, borrow_count=row.borrow_count
            )
            for row in rows
        ]

    def popular_categories(self, limit: int = 5) -> list[PopularCategory]:
        """Categories by number of loans, most first. Uncategorized books are left out."""
        borrow_count = func.count(LoanDB.id).label("borrow_count")
        stmt = (
            select(BookDB.category, borrow_count)
            .select_from(LoanDB)
            .join(CopyDB, LoanDB.book_copy_id == CopyDB.id)
            .join(BookDB, CopyDB.book_id == BookDB.id)
            .where(BookDB.category.is_not(None), BookDB.category != "")
            .group_by(BookDB.category)
            .order_by(borrow_count.desc(), BookDB.category)
            .limit(limit)
        )
        rows = safe_query(
            self.session, lambda s: s.execute(stmt).all(), "Failed to get popular categories"
        )
        return [
            PopularCategory(category=row.category, borrow_count=row.borrow_count) for row in rows
        ]

    def monthly_checkouts(self, year: int | None = None) -> list[MonthlyCount]:
        """Twelve entries, Jan to Dec, counting loans by checkout month."""
        year = year or date.today().year
        month = extract("month", LoanDB.checkout_date)
        stmt = (
            select(month.label("month"), func.count(LoanDB.id).label("count"))
            .where(extract("year", LoanDB.checkout_date) == year)
            .group_by(month)
        )
        rows = safe_query(
            self.session, lambda s: s.execute(stmt).all(), "Failed to get monthly checkouts"
        )
        counts = {int(row.month): row.count for row in rows}
        logger.debug("Monthly checkouts for %d: %s", year, counts)
        return [
            MonthlyCount(month=name, count=counts.get(i, 0)) for i, name in enumerate(MONTHS, 1)
        ]

    def loan_statistics(self, today: date | None = None) -> LoanStatistics:
        today = today or date.today()
        month_start = today.replace(day=1)
        return LoanStatistics(
            active_loans=self._count_loans(open_loan_clause()),
            overdue_loans=self._count_loans(open_loan_clause(), LoanDB.due_date < today),
            checkouts_this_month=self._count_loans(
                LoanDB.checkout_date >= month_start, LoanDB.checkout_date <= today
            ),
            returns_this_month=self._count_loans(
                LoanDB.return_date.is_not(None),
                func.date(LoanDB.return_date) >= month_start.isoformat(),
            ),
        )
