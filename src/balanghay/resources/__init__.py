"""
Read-only resources under the ``library://`` scheme.

Each module exposes a list of resource dicts (uri, name, description,
mime_type, handler) that the server registers with FastMCP. URIs with a
``{param}`` part are registered as templates.
"""

from .books import book_resources
from .loans import loan_resources
from .members import member_resources
from .reports import report_resources
from .shelves import shelf_resources
from .users import user_resources

all_resources = [
    *book_resources,
    *shelf_resources,
    *member_resources,
    *loan_resources,
    *user_resources,
    *report_resources,
]

__all__ = ["all_resources"]
