"""Database maintenance tool."""

import logging
from typing import Any

from pydantic import BaseModel

from ..database.migration import migrate
from ..database.session import get_db_manager
from .common import tool_handler, tool_response

logger = logging.getLogger(__name__)


class MigrateDatabaseInput(BaseModel):
    pass


@tool_handler("migrate_database")
async def migrate_database_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Run the startup migration again; reports what, if anything, changed."""
    MigrateDatabaseInput.model_validate(arguments)
    result = migrate(get_db_manager())
    message = "Database migrated" if result.changed else "Database already up to date"
    return tool_response(True, message, result)


migrate_database = {
    "name": "migrate_database",
    "description": (
        "Create missing tables and columns, back-fill loan transaction ids and seed the "
        "default administrator. Safe to run repeatedly."
    ),
    "inputSchema": MigrateDatabaseInput.model_json_schema(),
    "handler": migrate_database_handler,
}

admin_tools = [migrate_database]
