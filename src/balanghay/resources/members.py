"""
Member resources.

- library://members/list - every member, PINs never included
- library://members/search/{query} - members whose name or email contains
  the query
- library://members/status/{status} - Active or Inactive members
- library://members/{member_id}/loans - a member's loans, newest first,
  with Overdue derived for open loans past their due date
"""

import logging
from typing import Any
from urllib.parse import unquote

from fastmcp.exceptions import ResourceError

from ..database.loan_repository import LoanRepository
from ..database.member_repository import MemberRepository
from ..database.session import session_scope
from ..enums import MemberStatusEnum
from ..models.loan import LoanFilters
from .common import JSON, parse_id, resource_errors

logger = logging.getLogger(__name__)


def _member_list(
    what: str, query: str | None = None, status: str | None = None
) -> dict[str, Any]:
    with resource_errors(what):
        with session_scope() as session:
            members = MemberRepository(session).list_members(query=query, status=status)
            return {
                "members": [member.model_dump(mode="json") for member in members],
                "total": len(members),
            }


async def list_members_handler() -> dict[str, Any]:
    return _member_list("member list")


async def search_members_handler(query: str) -> dict[str, Any]:
    text = unquote(query).strip()
    if not text:
        raise ResourceError("Empty search text")
    return {"query": text, **_member_list("member search", query=text)}


async def members_by_status_handler(status: str) -> dict[str, Any]:
    wanted = unquote(status).strip().lower()
    match = next((s for s in MemberStatusEnum if s.value.lower() == wanted), None)
    if match is None:
        allowed = ", ".join(s.value for s in MemberStatusEnum)
        raise ResourceError(f"Invalid member status: {status!r} (expected {allowed})")
    return {"status": match.value, **_member_list("members by status", status=match.value)}


async def get_member_loans_handler(member_id: str) -> dict[str, Any]:
    with resource_errors("member loans"):
        with session_scope() as session:
            member = MemberRepository(session).get(parse_id(member_id, "member id"))
            loans = LoanRepository(session).list_loans(LoanFilters(member_id=member.id))
            return {
                "member": member.model_dump(mode="json"),
                "loans": [loan.model_dump(mode="json") for loan in loans],
                "open_loans": sum(1 for loan in loans if loan.is_open),
            }


member_resources: list[dict[str, Any]] = [
    {
        "uri": "library://members/list",
        "name": "Members",
        "description": "All library members with contact details, status and card code.",
        "mime_type": JSON,
        "handler": list_members_handler,
    },
    {
        "uri": "library://members/search/{query}",
        "name": "Member Search",
        "description": "Members whose name or email contains the text, case-insensitive.",
        "mime_type": JSON,
        "handler": search_members_handler,
    },
    {
        "uri": "library://members/status/{status}",
        "name": "Members by Status",
        "description": "Members that are Active or Inactive.",
        "mime_type": JSON,
        "handler": members_by_status_handler,
    },
    {
        "uri": "library://members/{member_id}/loans",
        "name": "Member Loans",
        "description": "Borrowing history of one member, newest first, including open loans.",
        "mime_type": JSON,
        "handler": get_member_loans_handler,
    },
]
