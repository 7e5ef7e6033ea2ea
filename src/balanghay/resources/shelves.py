"""
Shelf resources.

- library://shelves/list - every shelf
- library://shelves/{shelf_id}/contents - the copies assigned to a shelf
"""

import logging
from typing import Any

from ..database.session import session_scope
from ..database.shelf_repository import ShelfRepository
from .common import JSON, parse_id, resource_errors

logger = logging.getLogger(__name__)


async def list_shelves_handler() -> dict[str, Any]:
    with resource_errors("shelf list"):
        with session_scope() as session:
            shelves = ShelfRepository(session).list_shelves()
            return {"shelves": [shelf.model_dump(mode="json") for shelf in shelves]}


async def get_shelf_contents_handler(shelf_id: str) -> dict[str, Any]:
    with resource_errors("shelf contents"):
        with session_scope() as session:
            contents = ShelfRepository(session).get_contents(parse_id(shelf_id, "shelf id"))
            return contents.model_dump(mode="json")


shelf_resources: list[dict[str, Any]] = [
    {
        "uri": "library://shelves/list",
        "name": "Shelves",
        "description": "All shelves with code, section, location and capacity.",
        "mime_type": JSON,
        "handler": list_shelves_handler,
    },
    {
        "uri": "library://shelves/{shelf_id}/contents",
        "name": "Shelf Contents",
        "description": "The copies on a shelf with title, barcode, location code and status.",
        "mime_type": JSON,
        "handler": get_shelf_contents_handler,
    },
]
