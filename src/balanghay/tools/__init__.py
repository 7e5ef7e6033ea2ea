"""
Tools: every operation that changes library state, plus sign-in.

Each tool is a dict (name, description, inputSchema, handler) and every
handler answers with ``{"success", "message", "data"}``.
"""

from .accounts import account_tools
from .admin import admin_tools
from .catalog import catalog_tools
from .circulation import circulation_tools
from .members import member_tools

all_tools = [
    *circulation_tools,
    *catalog_tools,
    *member_tools,
    *account_tools,
    *admin_tools,
]

__all__ = ["all_tools"]
