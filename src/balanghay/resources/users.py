"""Operator account resource: library://users/list (no passwords or PINs)."""

import logging
from typing import Any

from ..database.session import session_scope
from ..database.user_repository import UserRepository
from .common import JSON, resource_errors

logger = logging.getLogger(__name__)


async def list_users_handler() -> dict[str, Any]:
    with resource_errors("user list"):
        with session_scope() as session:
            users = UserRepository(session).list_users()
            return {"users": [user.model_dump(mode="json") for user in users]}


user_resources: list[dict[str, Any]] = [
    {
        "uri": "library://users/list",
        "name": "Operator Accounts",
        "description": "Admin, librarian and staff accounts with role and status.",
        "mime_type": JSON,
        "handler": list_users_handler,
    },
]
