"""Member tools: register, edit and remove borrowers."""

import logging
from typing import Any

from pydantic import BaseModel, Field

from ..database.member_repository import MemberRepository
from ..database.session import get_session
from ..models.member import MemberCreate, MemberInput
from .common import tool_handler, tool_response

logger = logging.getLogger(__name__)


class UpdateMemberInput(MemberInput):
    member_id: int = Field(..., description="Member to update")


class MemberIdInput(BaseModel):
    member_id: int = Field(..., description="Member ID", examples=[1])


class FindMemberInput(BaseModel):
    credential: str = Field(
        ...,
        min_length=1,
        description="Member PIN or library card QR code",
        examples=["MEM-1A2B3C4D5E6F"],
    )


@tool_handler("create_member")
async def create_member_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Register a member. A library card QR code is generated when none is given."""
    data = MemberCreate.model_validate(arguments)
    with get_session() as session:
        member = MemberRepository(session).create_member(data)
    return tool_response(True, f"Registered member '{member.name}' (id {member.id})", member)


@tool_handler("update_member")
async def update_member_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = UpdateMemberInput.model_validate(arguments)
    changes = MemberInput.model_validate(
        params.model_dump(exclude_unset=True, exclude={"member_id"})
    )
    with get_session() as session:
        member = MemberRepository(session).update_member(params.member_id, changes)
    return tool_response(True, f"Updated member {member.id}", member)


@tool_handler("delete_member")
async def delete_member_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = MemberIdInput.model_validate(arguments)
    with get_session() as session:
        MemberRepository(session).delete_member(params.member_id)
    return tool_response(
        True, f"Deleted member {params.member_id}", {"member_id": params.member_id}
    )


@tool_handler("find_member_by_credential")
async def find_member_by_credential_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Look up the member at the desk from a scanned card or typed PIN."""
    params = FindMemberInput.model_validate(arguments)
    with get_session() as session:
        member = MemberRepository(session).find_by_credential(params.credential.strip())
    return tool_response(True, f"Found member '{member.name}' (id {member.id})", member)


create_member = {
    "name": "create_member",
    "description": (
        "Register a library member. Email must be unique; the optional PIN is 4 to 6 digits."
    ),
    "inputSchema": MemberCreate.model_json_schema(),
    "handler": create_member_handler,
}

update_member = {
    "name": "update_member",
    "description": (
        "Change a member's details or status. Inactive members cannot borrow or sign in."
    ),
    "inputSchema": UpdateMemberInput.model_json_schema(),
    "handler": update_member_handler,
}

delete_member = {
    "name": "delete_member",
    "description": (
        "Delete a member together with their loan history. Books they still have out "
        "are made Available."
    ),
    "inputSchema": MemberIdInput.model_json_schema(),
    "handler": delete_member_handler,
}

find_member_by_credential = {
    "name": "find_member_by_credential",
    "description": "Find a member by PIN or library card QR code before borrowing.",
    "inputSchema": FindMemberInput.model_json_schema(),
    "handler": find_member_by_credential_handler,
}

member_tools = [create_member, update_member, delete_member, find_member_by_credential]
