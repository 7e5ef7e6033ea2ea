"""
Book repository for the Balanghay backend.

Backs the ``library://books/*`` resources and the book CRUD tools. Deleting
a book removes its copies and their loans through the ORM cascade.
"""

import logging

from sqlalchemy import func, or_, select

from ..database.schema import Book as BookDB
from ..database.session import safe_query
from ..models.book import Book as BookModel
from ..models.book import BookCreate, BookInput
from .repository import BaseRepository, NotFoundError, PaginatedResponse, PaginationParams

logger = logging.getLogger(__name__)


class BookRepository(BaseRepository[BookDB, BookCreate, BookInput, BookModel]):
    """Data access for the catalog."""

    @property
    def model_class(self):
        return BookDB

    @property
    def response_schema(self):
        return BookModel

    def get(self, book_id: int) -> BookModel:
        """Get a book or raise NotFoundError."""
        return self._to_response_model(self._require_db_object(book_id))

    def search(
        self,
        query: str | None = None,
        category: str | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[BookModel]:
        """
        List books, optionally filtered.

        Args:
            query: Case-insensitive match against title, author or ISBN
            category: Exact category match
            pagination: Defaults to the first page of 20
        """
        pagination = pagination or PaginationParams()
        pagination.validate_params()

        stmt = select(BookDB)
        if query:
            pattern = f"%{query.strip()}%"
            stmt = stmt.where(
                or_(
                    BookDB.title.ilike(pattern),
                    BookDB.author.ilike(pattern),
                    BookDB.isbn.ilike(pattern.replace("-", "")),
                )
            )
        if category:
            stmt = stmt.where(BookDB.category == category)

        total = safe_query(
            self.session,
            lambda s: s.execute(select(func.count()).select_from(stmt.subquery())).scalar(),
            "Failed to count books",
        )
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                stmt.order_by(BookDB.title, BookDB.id)
                .offset(pagination.offset)
                .limit(pagination.page_size)
            )
            .scalars()
            .all(),
            "Failed to search books",
        )

        logger.debug("Book search query=%r category=%r -> %d", query, category, total)
        return PaginatedResponse.build(
            [self._to_response_model(row) for row in rows], total or 0, pagination
        )

    def create_book(self, data: BookCreate) -> BookModel:
        book = self.create(data)
        logger.info("Created book %d: %s", book.id, book.title)
        return book

    def update_book(self, book_id: int, data: BookInput) -> BookModel:
        book = self.update(book_id, data)
        logger.info("Updated book %d", book_id)
        return book

    def delete_book(self, book_id: int) -> None:
        """Delete a book with its copies and their loans."""
        if not self.delete(book_id):
            raise NotFoundError(f"Book {book_id} not found")
        logger.info("Deleted book %d", book_id)
