"""Shapes returned by the report resources."""

from pydantic import BaseModel, Field


class DashboardStats(BaseModel):
    total_books: int
    active_members: int
    books_checked_out: int = Field(..., description="Copies currently Checked Out")
    overdue_loans: int
    active_loans: int


class PopularBook(BaseModel):
    book_id: int
    title: str
    author: str | None = None
    borrow_count: int


class PopularCategory(BaseModel):
    category: str
    borrow_count: int


class MonthlyCount(BaseModel):
    month: str = Field(..., examples=["Jan"])
    count: int


class LoanStatistics(BaseModel):
    active_loans: int
    overdue_loans: int
    checkouts_this_month: int
    returns_this_month: int
