"""
Database package for the Balanghay library backend.

- schema.py: the six SQLAlchemy tables
- session.py: engine, sessions and safe commit/query helpers
- migration.py: idempotent create/upgrade/seed run at startup
- *_repository.py: data access used by tools and resources
"""

from .book_repository import BookRepository
from .copy_repository import CopyRepository
from .loan_repository import LoanRepository
from .member_repository import MemberRepository
from .migration import MigrationResult, initialize, migrate
from .report_repository import ReportRepository
from .repository import (
    BaseRepository,
    ConflictError,
    DuplicateError,
    InvalidRequestError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
    RepositoryException,
)
from .schema import (
    Base,
    Book,
    BookCopy,
    CopyConditionEnum,
    CopyStatusEnum,
    Loan,
    LoanStatusEnum,
    Member,
    MemberStatusEnum,
    ReturnConditionEnum,
    Shelf,
    User,
    UserRoleEnum,
    UserStatusEnum,
)
from .session import (
    DatabaseManager,
    get_db_manager,
    get_session,
    reset_db_manager,
    safe_commit,
    safe_query,
    session_scope,
)
from .shelf_repository import ShelfRepository
from .user_repository import AuthenticationError, UserRepository

__all__ = [
    "AuthenticationError",
    "Base",
    "BaseRepository",
    "Book",
    "BookCopy",
    "BookRepository",
    "ConflictError",
    "CopyConditionEnum",
    "CopyRepository",
    "CopyStatusEnum",
    "DatabaseManager",
    "DuplicateError",
    "InvalidRequestError",
    "Loan",
    "LoanRepository",
    "LoanStatusEnum",
    "Member",
    "MemberRepository",
    "MemberStatusEnum",
    "MigrationResult",
    "NotFoundError",
    "PaginatedResponse",
    "PaginationParams",
    "ReportRepository",
    "RepositoryException",
    "ReturnConditionEnum",
    "Shelf",
    "ShelfRepository",
    "User",
    "UserRepository",
    "UserRoleEnum",
    "UserStatusEnum",
    "get_db_manager",
    "get_session",
    "initialize",
    "migrate",
    "reset_db_manager",
    "safe_commit",
    "safe_query",
    "session_scope",
]
