"""
Catalog tools: books, shelves and book copies.

Update tools take the record id plus only the fields to change; fields
left out keep their current value. Copy status can be edited here except
for Checked Out, which only a loan sets or clears.
"""

import logging
from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from ..database.book_repository import BookRepository
from ..database.copy_repository import MAX_BULK_COPIES, CopyRepository
from ..database.session import get_session
from ..database.shelf_repository import ShelfRepository
from ..enums import CopyConditionEnum, CopyStatusEnum
from ..models.book import BookCreate, BookInput
from ..models.copy import CopyCreate, CopyInput, CopyTemplate
from ..models.shelf import ShelfCreate, ShelfInput
from .common import tool_handler, tool_response

logger = logging.getLogger(__name__)


def _changes(params: BaseModel, id_field: str) -> dict[str, Any]:
    """Fields the caller actually sent, without the record id."""
    return params.model_dump(exclude_unset=True, exclude={id_field})


# =============================================================================
# BOOKS
# =============================================================================


class UpdateBookInput(BookInput):
    book_id: int = Field(..., description="Book to update")


class BookIdInput(BaseModel):
    book_id: int = Field(..., description="Book ID", examples=[1])


@tool_handler("create_book")
async def create_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    data = BookCreate.model_validate(arguments)
    with get_session() as session:
        book = BookRepository(session).create_book(data)
    return tool_response(True, f"Created book '{book.title}' (id {book.id})", book)


@tool_handler("update_book")
async def update_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = UpdateBookInput.model_validate(arguments)
    changes = BookInput.model_validate(_changes(params, "book_id"))
    with get_session() as session:
        book = BookRepository(session).update_book(params.book_id, changes)
    return tool_response(True, f"Updated book {book.id}", book)


@tool_handler("delete_book")
async def delete_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Delete a book together with its copies and their loan history."""
    params = BookIdInput.model_validate(arguments)
    with get_session() as session:
        BookRepository(session).delete_book(params.book_id)
    return tool_response(True, f"Deleted book {params.book_id}", {"book_id": params.book_id})


# =============================================================================
# SHELVES
# =============================================================================


class UpdateShelfInput(ShelfInput):
    shelf_id: int = Field(..., description="Shelf to update")


class ShelfIdInput(BaseModel):
    shelf_id: int = Field(..., description="Shelf ID", examples=[1])


@tool_handler("create_shelf")
async def create_shelf_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    data = ShelfCreate.model_validate(arguments)
    with get_session() as session:
        shelf = ShelfRepository(session).create_shelf(data)
    return tool_response(True, f"Created shelf '{shelf.name}' (id {shelf.id})", shelf)


@tool_handler("update_shelf")
async def update_shelf_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = UpdateShelfInput.model_validate(arguments)
    changes = ShelfInput.model_validate(_changes(params, "shelf_id"))
    with get_session() as session:
        shelf = ShelfRepository(session).update_shelf(params.shelf_id, changes)
    return tool_response(True, f"Updated shelf {shelf.id}", shelf)


@tool_handler("delete_shelf")
async def delete_shelf_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Delete a shelf. Copies on it stay in the catalog, unshelved."""
    params = ShelfIdInput.model_validate(arguments)
    with get_session() as session:
        ShelfRepository(session).delete_shelf(params.shelf_id)
    return tool_response(True, f"Deleted shelf {params.shelf_id}", {"shelf_id": params.shelf_id})


# =============================================================================
# COPIES
# =============================================================================


class GenerateCopiesInput(BaseModel):
    book_id: int = Field(..., description="Book to add copies to")
    count: int = Field(..., ge=1, le=MAX_BULK_COPIES, description="Number of copies to create")
    shelf_id: int | None = Field(None, description="Shelf for every new copy")
    status: CopyStatusEnum = CopyStatusEnum.AVAILABLE
    condition: CopyConditionEnum = CopyConditionEnum.GOOD
    acquisition_date: date | None = None


class UpdateCopyInput(CopyInput):
    copy_id: int = Field(..., description="Copy to update")


class MoveCopyInput(BaseModel):
    copy_id: int = Field(..., description="Copy to move")
    shelf_id: int | None = Field(..., description="Target shelf, or null to unshelve")


class CopyIdInput(BaseModel):
    copy_id: int = Field(..., description="Copy ID", examples=[1])


@tool_handler("add_book_copy")
async def add_book_copy_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    data = CopyCreate.model_validate(arguments)
    with get_session() as session:
        copy = CopyRepository(session).add_copy(data)
    return tool_response(True, f"Added copy {copy.barcode} of book {copy.book_id}", copy)


@tool_handler("generate_book_copies")
async def generate_book_copies_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Create numbered copies with generated barcodes and location codes."""
    params = GenerateCopiesInput.model_validate(arguments)
    template = CopyTemplate.model_validate(params.model_dump(exclude={"book_id", "count"}))
    with get_session() as session:
        copies = CopyRepository(session).generate_copies(params.book_id, params.count, template)
    return tool_response(
        True, f"Generated {len(copies)} copies of book {params.book_id}", copies
    )


@tool_handler("update_book_copy")
async def update_book_copy_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = UpdateCopyInput.model_validate(arguments)
    changes = CopyInput.model_validate(_changes(params, "copy_id"))
    with get_session() as session:
        copy = CopyRepository(session).update_copy(params.copy_id, changes)
    return tool_response(True, f"Updated copy {copy.barcode}", copy)


@tool_handler("move_book_copy")
async def move_book_copy_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = MoveCopyInput.model_validate(arguments)
    with get_session() as session:
        copy = CopyRepository(session).move_copy(params.copy_id, params.shelf_id)
    where = f"shelf {copy.shelf_id}" if copy.shelf_id is not None else "no shelf"
    return tool_response(True, f"Moved copy {copy.barcode} to {where}", copy)


@tool_handler("delete_book_copy")
async def delete_book_copy_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = CopyIdInput.model_validate(arguments)
    with get_session() as session:
        CopyRepository(session).delete_copy(params.copy_id)
    return tool_response(True, f"Deleted copy {params.copy_id}", {"copy_id": params.copy_id})


# =============================================================================
# TOOL REGISTRATION
# =============================================================================

create_book = {
    "name": "create_book",
    "description": "Add a book to the catalog. Only the title is required.",
    "inputSchema": BookCreate.model_json_schema(),
    "handler": create_book_handler,
}

update_book = {
    "name": "update_book",
    "description": "Change catalog fields of a book. Omitted fields are left as they are.",
    "inputSchema": UpdateBookInput.model_json_schema(),
    "handler": update_book_handler,
}

delete_book = {
    "name": "delete_book",
    "description": "Delete a book with all of its copies and their loans.",
    "inputSchema": BookIdInput.model_json_schema(),
    "handler": delete_book_handler,
}

create_shelf = {
    "name": "create_shelf",
    "description": "Create a shelf. The section prefixes generated location codes.",
    "inputSchema": ShelfCreate.model_json_schema(),
    "handler": create_shelf_handler,
}

update_shelf = {
    "name": "update_shelf",
    "description": "Change fields of a shelf. Omitted fields are left as they are.",
    "inputSchema": UpdateShelfInput.model_json_schema(),
    "handler": update_shelf_handler,
}

delete_shelf = {
    "name": "delete_shelf",
    "description": "Delete a shelf. Its copies are kept and become unshelved.",
    "inputSchema": ShelfIdInput.model_json_schema(),
    "handler": delete_shelf_handler,
}

add_book_copy = {
    "name": "add_book_copy",
    "description": "Add one copy of a book with a given barcode.",
    "inputSchema": CopyCreate.model_json_schema(),
    "handler": add_book_copy_handler,
}

generate_book_copies = {
    "name": "generate_book_copies",
    "description": (
        f"Create between 1 and {MAX_BULK_COPIES} copies of a book with generated barcodes."
    ),
    "inputSchema": GenerateCopiesInput.model_json_schema(),
    "handler": generate_book_copies_handler,
}

update_book_copy = {
    "name": "update_book_copy",
    "description": (
        "Change a copy's barcode, condition or status. Checked Out copies keep their "
        "status until returned."
    ),
    "inputSchema": UpdateCopyInput.model_json_schema(),
    "handler": update_book_copy_handler,
}

move_book_copy = {
    "name": "move_book_copy",
    "description": "Move a copy to another shelf, or off all shelves with shelf_id null.",
    "inputSchema": MoveCopyInput.model_json_schema(),
    "handler": move_book_copy_handler,
}

delete_book_copy = {
    "name": "delete_book_copy",
    "description": "Delete a copy that is not checked out.",
    "inputSchema": CopyIdInput.model_json_schema(),
    "handler": delete_book_copy_handler,
}

catalog_tools = [
    create_book,
    update_book,
    delete_book,
    create_shelf,
    update_shelf,
    delete_shelf,
    add_book_copy,
    generate_book_copies,
    update_book_copy,
    move_book_copy,
    delete_book_copy,
]
