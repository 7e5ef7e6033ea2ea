"""
SQLAlchemy database schema for the Balanghay library backend.

Six tables live in the one SQLite file owned by this process:

1. books - catalog entries
2. shelves - physical storage locations
3. book_copies - individually tracked copies of a book
4. members - borrowers
5. loans - one row per copy lent to a member
6. users - operator accounts

Tools modify these tables through the repositories; resources read them.
Loan status is stored as Borrowed or Returned only. Overdue is derived at
read time (see ``balanghay.models.loan.derive_loan_status``).
"""

import enum
from datetime import date

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship, validates
from sqlalchemy.sql import func

from ..enums import (
    CopyConditionEnum,
    CopyStatusEnum,
    LoanStatusEnum,
    MemberStatusEnum,
    ReturnConditionEnum,
    UserRoleEnum,
    UserStatusEnum,
)

Base = declarative_base()


# Statuses are stored as their labels; CHECK constraints list the allowed ones
def _enum_values(enum_cls: type[enum.Enum]) -> str:
    return ", ".join(f"'{member.value}'" for member in enum_cls)


class Book(Base):
    """
    Books table - the catalog.

    Usage:
    - Resources: library://books/list, library://books/{book_id}
    - Tools: create_book, update_book, delete_book
    - Deleting a book removes its copies and, through them, their loans
    """

    __tablename__ = "books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(500), nullable=False, index=True)
    author = Column(String(300), nullable=True)
    isbn = Column(String(20), nullable=True, unique=True)
    category = Column(String(100), nullable=True)
    publisher = Column(String(300), nullable=True)
    publish_year = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)

    # Cover assets are base64 data or URLs supplied by the UI
    front_cover = Column(Text, nullable=True)
    back_cover = Column(Text, nullable=True)
    spine_cover = Column(Text, nullable=True)
    cover_color = Column(String(20), nullable=False, default="#6B4226")

    status = Column(String(30), nullable=False, default="Available")

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    copies = relationship(
        "BookCopy",
        back_populates="book",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_book_author", "author"),
        Index("idx_book_category", "category"),
    )


class Shelf(Base):
    """
    Shelves table - where copies are stored.

    A copy may be "not shelved" (null shelf_id); deleting a shelf un-shelves
    its copies instead of deleting them.
    """

    __tablename__ = "shelves"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    code = Column(String(50), nullable=True)
    location = Column(String(200), nullable=True)
    section = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    capacity = Column(Integer, nullable=False, default=100)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    copies = relationship("BookCopy", back_populates="shelf")

    __table_args__ = (CheckConstraint("capacity >= 0", name="check_shelf_capacity_non_negative"),)


class BookCopy(Base):
    """
    Book copies table - one row per circulating item.

    The status column drives the loan lifecycle:
    Available -> Checked Out -> Available | Damaged | Lost.
    A copy is Checked Out exactly when it has one loan without a return date.
    """

    __tablename__ = "book_copies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    shelf_id = Column(Integer, ForeignKey("shelves.id", ondelete="SET NULL"), nullable=True)
    barcode = Column(String(100), nullable=False, unique=True)
    location_code = Column(String(100), nullable=True)
    copy_number = Column(Integer, nullable=True)
    status = Column(String(30), nullable=False, default=CopyStatusEnum.AVAILABLE.value)
    condition = Column(String(30), nullable=True)
    acquisition_date = Column(Date, nullable=True, default=date.today)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    book = relationship("Book", back_populates="copies")
    shelf = relationship("Shelf", back_populates="copies")
    loans = relationship(
        "Loan",
        back_populates="book_copy",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_copy_book", "book_id"),
        Index("idx_copy_shelf", "shelf_id"),
        Index("idx_copy_status", "status"),
        CheckConstraint(
            f"status IN ({_enum_values(CopyStatusEnum)})", name="check_copy_status_valid"
        ),
    )

    @validates("status")
    def validate_status(self, key, value):  # noqa: ARG002
        """Accept enum members or their labels, store the label."""
        return CopyStatusEnum(value).value


class Member(Base):
    """
    Members table - people who borrow books.

    Only Active members may borrow; the schema does not enforce it, the loan
    repository does.
    """

    __tablename__ = "members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False, index=True)
    email = Column(String(255), nullable=True, unique=True)
    phone = Column(String(50), nullable=True)
    membership_type = Column(String(50), nullable=False, default="Standard")
    status = Column(String(20), nullable=False, default=MemberStatusEnum.ACTIVE.value)
    pin = Column(String(20), nullable=True)
    qr_code = Column(String(100), nullable=True, unique=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    loans = relationship(
        "Loan",
        back_populates="member",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (Index("idx_member_status", "status"),)

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatusEnum.ACTIVE.value


class Loan(Base):
    """
    Loans table - one row per copy lent out.

    Rows created by the same borrow action share a transaction_id. The row changes
    when it is renewed and when it is returned, and is never deleted except by the
    clear-all-loans administrative action (or by cascade).
    """

    __tablename__ = "loans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_copy_id = Column(
        Integer, ForeignKey("book_copies.id", ondelete="CASCADE"), nullable=False
    )
    member_id = Column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    checkout_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    return_date = Column(DateTime, nullable=True)
    status = Column(String(20), nullable=False, default=LoanStatusEnum.BORROWED.value)
    return_condition = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)
    rating = Column(Integer, nullable=True)
    review = Column(Text, nullable=True)
    transaction_id = Column(String(64), nullable=True)
    renewal_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    book_copy = relationship("BookCopy", back_populates="loans")
    member = relationship("Member", back_populates="loans")

    __table_args__ = (
        Index("idx_loan_copy", "book_copy_id"),
        Index("idx_loan_member", "member_id"),
        Index("idx_loan_due_date", "due_date"),
        Index("idx_loan_transaction", "transaction_id"),
        CheckConstraint(
            f"status IN ({_enum_values(LoanStatusEnum)})", name="check_loan_status_stored"
        ),
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="check_rating"),
        CheckConstraint("due_date >= checkout_date", name="check_due_after_checkout"),
    )

    @property
    def is_open(self) -> bool:
        """True while the copy has not come back."""
        return self.return_date is None and self.status != LoanStatusEnum.RETURNED.value


class User(Base):
    """
    Users table - operator accounts.

    Seeded once with the default administrator by the migration step.
    Passwords are stored as werkzeug hashes.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False, unique=True)
    email = Column(String(255), nullable=True, unique=True)
    password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRoleEnum.LIBRARIAN.value)
    status = Column(String(20), nullable=False, default=UserStatusEnum.ACTIVE.value)
    pin_code = Column(String(20), nullable=True)
    qr_auth_key = Column(String(100), nullable=True)
    member_id = Column(Integer, ForeignKey("members.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    member = relationship("Member")

    __table_args__ = (
        CheckConstraint(f"role IN ({_enum_values(UserRoleEnum)})", name="check_user_role"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == UserStatusEnum.ACTIVE.value


__all__ = [
    "Base",
    "Book",
    "BookCopy",
    "CopyConditionEnum",
    "CopyStatusEnum",
    "Loan",
    "LoanStatusEnum",
    "Member",
    "MemberStatusEnum",
    "ReturnConditionEnum",
    "Shelf",
    "User",
    "UserRoleEnum",
    "UserStatusEnum",
]
