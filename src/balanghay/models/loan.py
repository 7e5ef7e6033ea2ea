"""
Loan models for the Balanghay library backend.

These shapes carry the loan lifecycle across the tool boundary:

- BorrowRequest / BorrowResult: the borrow_books tool
- ReturnItem / ReturnOutcome / BatchReturnResult: the return tools
- RenewRequest: the renew_loan tool
- ClearLoansResult: the clear_all_loans administrative tool
- LoanRecord / TransactionSummary: loan listings and receipts

Overdue is never stored. ``derive_loan_status`` computes it whenever a loan
is shown, from the stored status and the due date.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..enums import LoanStatusEnum, ReturnConditionEnum


class LoanStatus(str, Enum):
    """Status of a loan as displayed."""

    BORROWED = "Borrowed"
    RETURNED = "Returned"
    OVERDUE = "Overdue"


def derive_loan_status(
    status: str, due_date: date | datetime | None, now: date | datetime | None = None
) -> LoanStatus:
    """
    Compute the display status of a loan.

    A loan that is not Returned and whose due date is strictly before today
    is Overdue. Anything that is not Returned otherwise shows as Borrowed.

    Args:
        status: The stored status (Borrowed or Returned)
        due_date: The loan's due date
        now: Reference time, defaults to the current local time
    """
    if status == LoanStatusEnum.RETURNED.value:
        return LoanStatus.RETURNED

    if due_date is None:
        return LoanStatus.BORROWED

    now = now or datetime.now()
    today = now.date() if isinstance(now, datetime) else now
    due = due_date.date() if isinstance(due_date, datetime) else due_date

    return LoanStatus.OVERDUE if due < today else LoanStatus.BORROWED


class LoanRecord(BaseModel):
    """A loan joined with the copy, book and member it refers to."""

    id: int
    book_copy_id: int
    member_id: int
    checkout_date: date
    due_date: date
    return_date: datetime | None = None
    status: LoanStatusEnum = Field(..., description="Stored status")
    display_status: LoanStatus = Field(..., description="Stored status with Overdue derived")
    return_condition: str | None = None
    notes: str | None = None
    rating: int | None = None
    review: str | None = None
    transaction_id: str | None = None
    renewal_count: int = 0

    book_id: int | None = None
    book_title: str | None = None
    book_author: str | None = None
    barcode: str | None = None
    location_code: str | None = None
    shelf_name: str | None = None
    member_name: str | None = None

    model_config = ConfigDict(use_enum_values=True)

    @property
    def is_open(self) -> bool:
        return self.return_date is None and self.status != LoanStatusEnum.RETURNED.value


class BorrowRequest(BaseModel):
    """
    One borrow action: a member takes one or more copies.

    Everything needed is in the request; no earlier call has to "stage" a
    pending borrow.
    """

    member_id: int = Field(..., description="Borrowing member", examples=[1])
    book_copy_ids: list[int] = Field(
        ...,
        description="Copies to lend, in order; duplicates are ignored",
        min_length=1,
        examples=[[3, 7]],
    )
    checkout_date: date | None = Field(None, description="Defaults to today")
    due_date: date | None = Field(None, description="Defaults to checkout + loan period")

    @field_validator("book_copy_ids")
    @classmethod
    def collapse_duplicates(cls, v: list[int]) -> list[int]:
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def validate_dates(self) -> "BorrowRequest":
        if self.checkout_date and self.due_date and self.due_date < self.checkout_date:
            raise ValueError("Due date must be on or after the checkout date")
        return self


class BorrowFailure(BaseModel):
    """A copy that could not be lent."""

    book_copy_id: int
    reason: str = Field(..., examples=["not_found", "conflict", "error"])
    message: str


class BorrowResult(BaseModel):
    transaction_id: str
    member_id: int
    checkout_date: date
    due_date: date
    loans: list[LoanRecord] = Field(default_factory=list)
    failures: list[BorrowFailure] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.loans)

    @property
    def message(self) -> str:
        if not self.failures:
            return f"Borrowed {len(self.loans)} book(s) under {self.transaction_id}"
        if not self.loans:
            return "No books were borrowed: " + "; ".join(f.message for f in self.failures)
        return (
            f"Borrowed {len(self.loans)} book(s) under {self.transaction_id}; "
            f"{len(self.failures)} failed: " + "; ".join(f.message for f in self.failures)
        )


class ReturnItem(BaseModel):
    """One loan to close, with the condition the copy came back in."""

    loan_id: int
    condition: ReturnConditionEnum = ReturnConditionEnum.GOOD
    note: str | None = Field(None, max_length=2000)
    rating: int | None = Field(None, ge=1, le=5)
    review: str | None = Field(None, max_length=5000)

    model_config = ConfigDict(use_enum_values=True)


class ReturnOutcome(BaseModel):
    loan_id: int
    returned: bool = Field(..., description="True when this call closed the loan")
    already_returned: bool = False
    condition: str | None = None
    copy_status: str | None = None
    message: str
    loan: LoanRecord | None = None


class ReturnFailure(BaseModel):
    """A loan in a batch that was skipped or failed."""

    loan_id: int | None = None
    message: str


class BatchReturnResult(BaseModel):
    returned_count: int = 0
    outcomes: list[ReturnOutcome] = Field(default_factory=list)
    failures: list[ReturnFailure] = Field(default_factory=list)
    transaction_id: str | None = None
    member_id: int | None = None

    @property
    def success(self) -> bool:
        return self.returned_count > 0 or any(o.already_returned for o in self.outcomes)

    @property
    def message(self) -> str:
        if self.returned_count:
            text = f"Returned {self.returned_count} book(s)"
        elif self.outcomes and all(o.already_returned for o in self.outcomes):
            text = "All books already returned"
        else:
            text = "No books were returned"
        if self.failures:
            text += f"; {len(self.failures)} skipped"
        return text


class RenewRequest(BaseModel):
    """Push the due date of an open loan back."""

    loan_id: int = Field(..., description="Loan to renew", examples=[12])
    days: int = Field(7, ge=1, le=90, description="Days added to the current due date")


class ClearLoansResult(BaseModel):
    deleted_loans: int
    reset_copies: int

    @property
    def message(self) -> str:
        return (
            f"Deleted {self.deleted_loans} loan(s) and reset "
            f"{self.reset_copies} checked-out copy(ies) to Available"
        )


class LoanFilters(BaseModel):
    """Filters for loan listings. All are optional and combine with AND."""

    status: LoanStatus | None = Field(
        None, description="Display status; Overdue is matched by due date"
    )
    member_id: int | None = None
    book_id: int | None = None
    transaction_id: str | None = None
    active_only: bool = False
    overdue_only: bool = False
    due_within_days: int | None = Field(
        None, ge=0, le=365, description="Open loans due between today and this many days ahead"
    )
    limit: int | None = Field(None, ge=1, le=1000)


class TransactionSummary(BaseModel):
    """Loans created by one borrow action, presented as a single row."""

    transaction_id: str
    member_id: int
    member_name: str | None = None
    checkout_date: date
    due_date: date
    loan_ids: list[int]
    book_count: int
    title: str = Field(..., examples=["3 books: Noli Me Tangere, El Filibusterismo..."])
    display_status: LoanStatus

    model_config = ConfigDict(use_enum_values=True)
