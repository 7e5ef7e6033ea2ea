"""
Book copy repository for the Balanghay backend.

Copies are what circulate. This repository owns:

1. **Availability**: per-book counts by copy status, plus the Available
   copies with their shelf, for the borrow screen
2. **Bulk generation**: numbered copies with generated barcodes and
   location codes
3. **Shelving**: moving a copy between shelves regenerates its location code
4. **Copy CRUD**, refusing anything that would detach a Checked Out copy
   from its open loan

Copy status only becomes Checked Out through the loan repository.
"""

import logging
import time

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from ..database.schema import Book as BookDB
from ..database.schema import BookCopy as CopyDB
from ..database.schema import CopyStatusEnum
from ..database.schema import Shelf as ShelfDB
from ..database.session import safe_commit, safe_query
from ..models.copy import (
    AvailableCopyDetail,
    BookAvailability,
    BookCopy,
    CopyCreate,
    CopyInput,
    CopyTemplate,
    ShelfRef,
)
from .repository import (
    BaseRepository,
    ConflictError,
    DuplicateError,
    InvalidRequestError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

MAX_BULK_COPIES = 100


def make_barcode(book_id: int, copy_number: int, clock_ms: int | None = None) -> str:
    """``B<book id, 4 digits>-<last 6 digits of the ms clock>-<copy number>``."""
    clock_ms = int(time.time() * 1000) if clock_ms is None else clock_ms
    return f"B{book_id:04d}-{str(clock_ms)[-6:]}-{copy_number}"


def make_location_code(section: str | None, book_id: int, copy_number: int) -> str:
    """``<first 3 letters of the shelf section, or GEN>-<book id>-<copy number>``."""
    prefix = (section or "").strip()[:3].upper() or "GEN"
    return f"{prefix}-{book_id:04d}-{copy_number}"


class CopyRepository(BaseRepository[CopyDB, CopyCreate, CopyInput, BookCopy]):
    @property
    def model_class(self):
        return CopyDB

    @property
    def response_schema(self):
        return BookCopy

    def _require_book(self, book_id: int) -> BookDB:
        book = safe_query(
            self.session,
            lambda s: s.get(BookDB, book_id),
            "Failed to get book",
        )
        if book is None:
            raise NotFoundError(f"Book {book_id} not found")
        return book

    def _require_shelf(self, shelf_id: int) -> ShelfDB:
        shelf = safe_query(
            self.session,
            lambda s: s.get(ShelfDB, shelf_id),
            "Failed to get shelf",
        )
        if shelf is None:
            raise NotFoundError(f"Shelf {shelf_id} not found")
        return shelf

    def _copy_count(self, book_id: int) -> int:
        return (
            safe_query(
                self.session,
                lambda s: s.execute(
                    select(func.count()).select_from(CopyDB).where(CopyDB.book_id == book_id)
                ).scalar(),
                "Failed to count copies",
            )
            or 0
        )

    def get_availability(self, book_id: int) -> BookAvailability:
        """
        Count a book's copies by status.

        Damaged means status Damaged. Lost, Processing and On Hold copies are
        counted in ``other_copies`` so the four counts always add up to the
        total.

        Raises:
            NotFoundError: If the book does not exist
        """
        book = self._require_book(book_id)

        copies = safe_query(
            self.session,
            lambda s: s.execute(
                select(CopyDB)
                .options(joinedload(CopyDB.shelf))
                .where(CopyDB.book_id == book_id)
                .order_by(CopyDB.copy_number, CopyDB.id)
            )
            .scalars()
            .all(),
            "Failed to get copies for availability",
        )

        availability = BookAvailability(
            book_id=book.id, title=book.title, author=book.author, isbn=book.isbn
        )
        for copy in copies:
            availability.total_copies += 1
            if copy.status == CopyStatusEnum.AVAILABLE.value:
                availability.available_copies += 1
                availability.available_copies_details.append(
                    AvailableCopyDetail(
                        id=copy.id,
                        barcode=copy.barcode,
                        location_code=copy.location_code,
                        condition=copy.condition,
                        call_number=copy.location_code,
                        shelf=ShelfRef(
                            id=copy.shelf.id, name=copy.shelf.name, location=copy.shelf.location
                        )
                        if copy.shelf
                        else None,
                    )
                )
            elif copy.status == CopyStatusEnum.CHECKED_OUT.value:
                availability.checked_out_copies += 1
            elif copy.status == CopyStatusEnum.DAMAGED.value:
                availability.damaged_copies += 1
            else:
                availability.other_copies += 1

        logger.debug(
            "Availability for book %d: %d/%d available",
            book_id,
            availability.available_copies,
            availability.total_copies,
        )
        return availability

    def get(self, copy_id: int) -> BookCopy:
        return self._to_response_model(self._require_db_object(copy_id))

    def list_by_book(self, book_id: int) -> list[BookCopy]:
        self._require_book(book_id)
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(CopyDB)
                .where(CopyDB.book_id == book_id)
                .order_by(CopyDB.copy_number, CopyDB.id)
            )
            .scalars()
            .all(),
            "Failed to list copies",
        )
        return [self._to_response_model(row) for row in rows]

    def add_copy(self, data: CopyCreate) -> BookCopy:
        """
        Add one copy.

        The copy number defaults to the next number for the book, and a
        shelved copy without a location code gets a generated one.
        """
        self._require_book(data.book_id)
        values = data.model_dump(exclude_none=True)

        if "copy_number" not in values:
            values["copy_number"] = self._copy_count(data.book_id) + 1
        if data.shelf_id is not None and "location_code" not in values:
            shelf = self._require_shelf(data.shelf_id)
            values["location_code"] = make_location_code(
                shelf.section, data.book_id, values["copy_number"]
            )

        copy = CopyDB(**values)
        self._commit_new([copy], "add book copy")
        logger.info("Added copy %s of book %d", copy.barcode, data.book_id)
        return self._to_response_model(copy)

    def generate_copies(
        self, book_id: int, count: int, template: CopyTemplate | None = None
    ) -> list[BookCopy]:
        """
        Create ``count`` numbered copies of a book in one commit.

        Copy numbers continue from the number of copies the book already
        has. Barcodes and (for shelved copies) location codes are generated.

        Raises:
            NotFoundError: Unknown book or shelf
            InvalidRequestError: Count outside 1..100
        """
        if count < 1 or count > MAX_BULK_COPIES:
            raise InvalidRequestError(f"Copy count must be between 1 and {MAX_BULK_COPIES}")

        template = template or CopyTemplate()
        if template.status == CopyStatusEnum.CHECKED_OUT.value:
            raise InvalidRequestError("New copies cannot start out Checked Out")
        self._require_book(book_id)
        shelf = self._require_shelf(template.shelf_id) if template.shelf_id is not None else None

        existing = self._copy_count(book_id)
        clock_ms = int(time.time() * 1000)

        copies = []
        for i in range(count):
            copy_number = existing + 1 + i
            copies.append(
                CopyDB(
                    book_id=book_id,
                    shelf_id=template.shelf_id,
                    barcode=make_barcode(book_id, copy_number, clock_ms),
                    location_code=make_location_code(shelf.section, book_id, copy_number)
                    if shelf
                    else None,
                    copy_number=copy_number,
                    status=template.status,
                    condition=template.condition,
                    acquisition_date=template.acquisition_date,
                )
            )

        self._commit_new(copies, "generate book copies")
        logger.info("Generated %d copies of book %d", count, book_id)
        return [self._to_response_model(copy) for copy in copies]

    def _commit_new(self, copies: list[CopyDB], operation: str) -> None:
        try:
            self.session.add_all(copies)
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateError(f"Barcode already in use: {e.orig}") from e
        safe_commit(self.session, operation)

    def update_copy(self, copy_id: int, data: CopyInput) -> BookCopy:
        """
        Update a copy's fields.

        Raises:
            ConflictError: Changing the status of a Checked Out copy; that
                happens only by returning its loan
        """
        copy = self._require_db_object(copy_id)
        changes = data.model_dump(exclude_unset=True)

        if (
            copy.status == CopyStatusEnum.CHECKED_OUT.value
            and "status" in changes
            and changes["status"] != copy.status
        ):
            raise ConflictError(
                f"Copy {copy.barcode} is checked out; return its loan to change its status"
            )

        updated = self.update(copy_id, data)
        logger.info("Updated copy %d", copy_id)
        return updated

    def move_copy(self, copy_id: int, shelf_id: int | None) -> BookCopy:
        """
        Put a copy on another shelf, or take it off shelves with ``None``.

        The location code is regenerated from the new shelf's section.
        """
        copy = self._require_db_object(copy_id)

        if shelf_id is None:
            copy.shelf_id = None
            copy.location_code = None
            target = "no shelf"
        else:
            shelf = self._require_shelf(shelf_id)
            copy_number = copy.copy_number or self._copy_count(copy.book_id)
            copy.shelf_id = shelf.id
            copy.location_code = make_location_code(shelf.section, copy.book_id, copy_number)
            target = shelf.name

        safe_commit(self.session, "move book copy")
        self.session.refresh(copy)
        logger.info("Moved copy %d to %s", copy_id, target)
        return self._to_response_model(copy)

    def delete_copy(self, copy_id: int) -> None:
        """
        Delete a copy and its loan history.

        Raises:
            NotFoundError: Unknown copy
            ConflictError: The copy is checked out
        """
        copy = self._require_db_object(copy_id)
        if copy.status == CopyStatusEnum.CHECKED_OUT.value:
            raise ConflictError(f"Copy {copy.barcode} is checked out and cannot be deleted")

        self.delete(copy_id)
        logger.info("Deleted copy %d", copy_id)
