"""Operator account and authentication models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from ..enums import UserRoleEnum, UserStatusEnum


class User(BaseModel):
    """An operator account. The password hash never leaves the repository."""

    id: int
    username: str
    email: str | None = None
    role: UserRoleEnum = UserRoleEnum.LIBRARIAN
    status: UserStatusEnum = UserStatusEnum.ACTIVE
    member_id: int | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class UserInput(BaseModel):
    username: str | None = Field(None, min_length=1, max_length=100)
    email: str | None = Field(None, max_length=255)
    password: str | None = Field(None, min_length=1, repr=False)
    role: UserRoleEnum | None = None
    status: UserStatusEnum | None = None
    pin_code: str | None = Field(None, pattern=r"^\d{4,6}$", repr=False)
    qr_auth_key: str | None = Field(None, max_length=100, repr=False)
    member_id: int | None = None

    model_config = ConfigDict(use_enum_values=True)


class UserCreate(UserInput):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, repr=False)
    role: UserRoleEnum = UserRoleEnum.LIBRARIAN
    status: UserStatusEnum = UserStatusEnum.ACTIVE


class AuthenticatedAccount(BaseModel):
    """Who just signed in: an operator account or a member."""

    account_type: Literal["user", "member"]
    id: int
    name: str
    email: str | None = None
    role: str = Field(..., examples=["admin", "librarian", "member"])
    member_id: int | None = None
