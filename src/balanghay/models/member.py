"""Member models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..enums import MemberStatusEnum


class Member(BaseModel):
    """
    A borrower.

    The PIN is a credential and is never part of the response shape.
    """

    id: int
    name: str = Field(..., examples=["Juan dela Cruz"])
    email: str | None = Field(None, examples=["juan@example.com"])
    phone: str | None = None
    membership_type: str = "Standard"
    status: MemberStatusEnum = MemberStatusEnum.ACTIVE
    qr_code: str | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class MemberInput(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    membership_type: str | None = Field(None, max_length=50)
    status: MemberStatusEnum | None = None
    pin: str | None = Field(None, pattern=r"^\d{4,6}$")
    qr_code: str | None = Field(None, max_length=100)

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().lower()
        if not v:
            return None
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class MemberCreate(MemberInput):
    name: str = Field(..., min_length=1, max_length=200)
    membership_type: str = "Standard"
    status: MemberStatusEnum = MemberStatusEnum.ACTIVE
