"""
Balanghay library models.

Pydantic v2 models for every entity and every request/response shape that
crosses the tool and resource boundary:

- Book, Shelf, BookCopy, Member, User: catalog and account rows
- BookAvailability: per-book copy counts
- Loan models: borrow and return requests and their results
- Report models: dashboard and aggregation views
"""

from .book import Book, BookCreate, BookInput
from .copy import (
    AvailableCopyDetail,
    BookAvailability,
    BookCopy,
    CopyCreate,
    CopyInput,
    CopyTemplate,
    ShelfRef,
)
from .loan import (
    BatchReturnResult,
    BorrowFailure,
    BorrowRequest,
    BorrowResult,
    ClearLoansResult,
    LoanFilters,
    LoanRecord,
    LoanStatus,
    RenewRequest,
    ReturnFailure,
    ReturnItem,
    ReturnOutcome,
    TransactionSummary,
    derive_loan_status,
)
from .member import Member, MemberCreate, MemberInput
from .report import DashboardStats, LoanStatistics, MonthlyCount, PopularBook, PopularCategory
from .shelf import Shelf, ShelfContents, ShelfCopy, ShelfCreate, ShelfInput
from .user import AuthenticatedAccount, User, UserCreate, UserInput

__all__ = [
    "AuthenticatedAccount",
    "AvailableCopyDetail",
    "BatchReturnResult",
    "Book",
    "BookAvailability",
    "BookCopy",
    "BookCreate",
    "BookInput",
    "BorrowFailure",
    "BorrowRequest",
    "BorrowResult",
    "ClearLoansResult",
    "CopyCreate",
    "CopyInput",
    "CopyTemplate",
    "DashboardStats",
    "LoanFilters",
    "LoanRecord",
    "LoanStatistics",
    "LoanStatus",
    "Member",
    "MemberCreate",
    "MemberInput",
    "MonthlyCount",
    "PopularBook",
    "PopularCategory",
    "RenewRequest",
    "ReturnFailure",
    "ReturnItem",
    "ReturnOutcome",
    "Shelf",
    "ShelfContents",
    "ShelfCopy",
    "ShelfCreate",
    "ShelfInput",
    "ShelfRef",
    "TransactionSummary",
    "User",
    "UserCreate",
    "UserInput",
    "derive_loan_status",
]
