"""
Book resources: the catalog, single books, copies and availability.

Resources:
- library://books/list - first 100 books by title with paging metadata
- library://books/page/{page} - later pages of the same listing
- library://books/search/{query} - books whose title, author or ISBN
  contains the query
- library://books/category/{category} - books in one category
- library://books/{book_id} - one book
- library://books/{book_id}/availability - copy counts by status plus
  the copies that can be lent right now
- library://books/{book_id}/copies - every copy of the book
"""

import logging
from typing import Any
from urllib.parse import unquote

from fastmcp.exceptions import ResourceError

from ..database.book_repository import BookRepository
from ..database.copy_repository import CopyRepository
from ..database.repository import PaginatedResponse, PaginationParams
from ..database.session import session_scope
from ..models.book import Book as BookModel
from .common import JSON, parse_id, resource_errors

logger = logging.getLogger(__name__)

CATALOG_PAGE_SIZE = 100


def _page_payload(page: PaginatedResponse[BookModel]) -> dict[str, Any]:
    return {
        "books": [book.model_dump(mode="json") for book in page.items],
        "total": page.total,
        "page": page.page,
        "total_pages": page.total_pages,
        "has_more": page.has_next,
    }


def _catalog_page(
    what: str, page: int = 1, query: str | None = None, category: str | None = None
) -> dict[str, Any]:
    with resource_errors(what):
        with session_scope() as session:
            result = BookRepository(session).search(
                query=query,
                category=category,
                pagination=PaginationParams(page=page, page_size=CATALOG_PAGE_SIZE),
            )
            logger.debug("%s: %d of %d", what, len(result.items), result.total)
            return _page_payload(result)


def _path_text(value: str, label: str) -> str:
    text = unquote(value).strip()
    if not text:
        raise ResourceError(f"Empty {label}")
    return text


async def list_books_handler() -> dict[str, Any]:
    return _catalog_page("book list")


async def list_books_page_handler(page: str) -> dict[str, Any]:
    return _catalog_page("book list", page=parse_id(page, "page number"))


async def search_books_handler(query: str) -> dict[str, Any]:
    text = _path_text(query, "search text")
    return {"query": text, **_catalog_page("book search", query=text)}


async def books_by_category_handler(category: str) -> dict[str, Any]:
    name = _path_text(category, "category")
    return {"category": name, **_catalog_page("books by category", category=name)}


async def get_book_handler(book_id: str) -> dict[str, Any]:
    with resource_errors("book details"):
        with session_scope() as session:
            book = BookRepository(session).get(parse_id(book_id, "book id"))
            return book.model_dump(mode="json")


async def get_book_availability_handler(book_id: str) -> dict[str, Any]:
    """
    Counts always add up: total = available + checked out + damaged + other.
    """
    with resource_errors("book availability"):
        with session_scope() as session:
            availability = CopyRepository(session).get_availability(parse_id(book_id, "book id"))
            data = availability.model_dump(mode="json")
            data["is_available"] = availability.is_available
            return data


async def list_book_copies_handler(book_id: str) -> dict[str, Any]:
    with resource_errors("book copies"):
        with session_scope() as session:
            book_id_value = parse_id(book_id, "book id")
            copies = CopyRepository(session).list_by_book(book_id_value)
            return {
                "book_id": book_id_value,
                "copies": [copy.model_dump(mode="json") for copy in copies],
                "total": len(copies),
            }


book_resources: list[dict[str, Any]] = [
    {
        "uri": "library://books/list",
        "name": "Book Catalog",
        "description": "Books in the catalog ordered by title, with the total count.",
        "mime_type": JSON,
        "handler": list_books_handler,
    },
    {
        "uri": "library://books/page/{page}",
        "name": "Book Catalog Page",
        "description": "One page of the catalog, 100 books per page, ordered by title.",
        "mime_type": JSON,
        "handler": list_books_page_handler,
    },
    {
        "uri": "library://books/search/{query}",
        "name": "Book Search",
        "description": "Books whose title, author or ISBN contains the text, case-insensitive.",
        "mime_type": JSON,
        "handler": search_books_handler,
    },
    {
        "uri": "library://books/category/{category}",
        "name": "Books by Category",
        "description": "Books in exactly the given category, ordered by title.",
        "mime_type": JSON,
        "handler": books_by_category_handler,
    },
    {
        "uri": "library://books/{book_id}",
        "name": "Book Details",
        "description": "Catalog details of one book by id.",
        "mime_type": JSON,
        "handler": get_book_handler,
    },
    {
        "uri": "library://books/{book_id}/availability",
        "name": "Book Availability",
        "description": (
            "How many copies of a book are available, checked out, damaged or otherwise "
            "unavailable, with shelf locations of the available ones."
        ),
        "mime_type": JSON,
        "handler": get_book_availability_handler,
    },
    {
        "uri": "library://books/{book_id}/copies",
        "name": "Book Copies",
        "description": "Every copy of a book with barcode, shelf, status and condition.",
        "mime_type": JSON,
        "handler": list_book_copies_handler,
    },
]
