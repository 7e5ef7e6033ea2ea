"""
Operator account tools and sign-in.

The three sign-in tools check operator accounts first and then members.
A failed sign-in answers ``success: false`` with the reason; the data of
a successful one is the signed-in account, never a password or PIN.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field

from ..database.session import get_session
from ..database.user_repository import UserRepository
from ..models.user import UserCreate, UserInput
from .common import tool_handler, tool_response

logger = logging.getLogger(__name__)


class UpdateUserInput(UserInput):
    user_id: int = Field(..., description="User to update")


class UserIdInput(BaseModel):
    user_id: int = Field(..., description="User ID", examples=[1])


class AuthenticateInput(BaseModel):
    identifier: str = Field(..., description="Username or email", examples=["admin"])
    password: str = Field(..., description="Password, or a member's PIN", repr=False)


class PinInput(BaseModel):
    pin: str = Field(..., description="4 to 6 digit PIN", repr=False)


class QRInput(BaseModel):
    qr_code: str = Field(..., description="Scanned user QR key or member card code")
    pin: str | None = Field(None, description="Checked as well when given", repr=False)


# =============================================================================
# ACCOUNTS
# =============================================================================


@tool_handler("create_user")
async def create_user_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    data = UserCreate.model_validate(arguments)
    with get_session() as session:
        user = UserRepository(session).create_user(data)
    return tool_response(True, f"Created {user.role} account '{user.username}'", user)


@tool_handler("update_user")
async def update_user_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = UpdateUserInput.model_validate(arguments)
    changes = UserInput.model_validate(params.model_dump(exclude_unset=True, exclude={"user_id"}))
    with get_session() as session:
        user = UserRepository(session).update_user(params.user_id, changes)
    return tool_response(True, f"Updated account '{user.username}'", user)


@tool_handler("delete_user")
async def delete_user_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = UserIdInput.model_validate(arguments)
    with get_session() as session:
        UserRepository(session).delete_user(params.user_id)
    return tool_response(True, f"Deleted user {params.user_id}", {"user_id": params.user_id})


# =============================================================================
# SIGN-IN
# =============================================================================


def _signed_in(account) -> dict[str, Any]:
    return tool_response(True, f"Signed in as {account.name} ({account.role})", account)


@tool_handler("authenticate")
async def authenticate_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = AuthenticateInput.model_validate(arguments)
    with get_session() as session:
        account = UserRepository(session).authenticate(params.identifier.strip(), params.password)
    return _signed_in(account)


@tool_handler("authenticate_with_pin")
async def authenticate_with_pin_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = PinInput.model_validate(arguments)
    with get_session() as session:
        account = UserRepository(session).authenticate_with_pin(params.pin.strip())
    return _signed_in(account)


@tool_handler("authenticate_with_qr")
async def authenticate_with_qr_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = QRInput.model_validate(arguments)
    with get_session() as session:
        account = UserRepository(session).authenticate_with_qr(params.qr_code.strip(), params.pin)
    return _signed_in(account)


# =============================================================================
# TOOL REGISTRATION
# =============================================================================

create_user = {
    "name": "create_user",
    "description": "Create an operator account (admin, librarian or staff).",
    "inputSchema": UserCreate.model_json_schema(),
    "handler": create_user_handler,
}

update_user = {
    "name": "update_user",
    "description": "Change an operator account. A new password is stored hashed.",
    "inputSchema": UpdateUserInput.model_json_schema(),
    "handler": update_user_handler,
}

delete_user = {
    "name": "delete_user",
    "description": "Delete an operator account.",
    "inputSchema": UserIdInput.model_json_schema(),
    "handler": delete_user_handler,
}

authenticate = {
    "name": "authenticate",
    "description": (
        "Sign in with username or email and password. Members sign in with email and PIN."
    ),
    "inputSchema": AuthenticateInput.model_json_schema(),
    "handler": authenticate_handler,
}

authenticate_with_pin = {
    "name": "authenticate_with_pin",
    "description": "Sign in with a PIN alone, checking operator PINs before member PINs.",
    "inputSchema": PinInput.model_json_schema(),
    "handler": authenticate_with_pin_handler,
}

authenticate_with_qr = {
    "name": "authenticate_with_qr",
    "description": "Sign in by scanning a user QR key or member card, optionally with a PIN.",
    "inputSchema": QRInput.model_json_schema(),
    "handler": authenticate_with_qr_handler,
}

account_tools = [
    create_user,
    update_user,
    delete_user,
    authenticate,
    authenticate_with_pin,
    authenticate_with_qr,
]
