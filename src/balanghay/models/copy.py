"""
Book copy models.

A copy is the unit of circulation: loans point at copies, and the copy's
status is what the availability view counts.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..enums import CopyConditionEnum, CopyStatusEnum


class BookCopy(BaseModel):
    """One circulating copy of a book."""

    id: int
    book_id: int
    shelf_id: int | None = None
    barcode: str = Field(..., examples=["B0001-123456-1"])
    location_code: str | None = Field(None, examples=["FIL-0001-1"])
    copy_number: int | None = None
    status: CopyStatusEnum = CopyStatusEnum.AVAILABLE
    condition: CopyConditionEnum | None = None
    acquisition_date: date | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class CopyInput(BaseModel):
    shelf_id: int | None = None
    barcode: str | None = Field(None, min_length=1, max_length=100)
    location_code: str | None = Field(None, max_length=100)
    copy_number: int | None = Field(None, ge=1)
    status: CopyStatusEnum | None = None
    condition: CopyConditionEnum | None = None
    acquisition_date: date | None = None

    model_config = ConfigDict(use_enum_values=True)

    @model_validator(mode="after")
    def no_manual_checkout(self) -> "CopyInput":
        """Checked Out is reached only through a loan."""
        if self.status == CopyStatusEnum.CHECKED_OUT.value:
            raise ValueError("Copies are checked out by borrowing them, not by editing status")
        return self


class CopyCreate(CopyInput):
    book_id: int
    barcode: str = Field(..., min_length=1, max_length=100)
    status: CopyStatusEnum = CopyStatusEnum.AVAILABLE


class CopyTemplate(BaseModel):
    """Shared values for copies generated in bulk."""

    shelf_id: int | None = None
    status: CopyStatusEnum = CopyStatusEnum.AVAILABLE
    condition: CopyConditionEnum = CopyConditionEnum.GOOD
    acquisition_date: date | None = None

    model_config = ConfigDict(use_enum_values=True)


class ShelfRef(BaseModel):
    id: int
    name: str
    location: str | None = None


class AvailableCopyDetail(BaseModel):
    """An Available copy as shown to someone about to borrow it."""

    id: int
    barcode: str
    location_code: str | None = None
    condition: str | None = None
    call_number: str | None = Field(
        None, description="Shelf call number; the copy's location code"
    )
    shelf: ShelfRef | None = None


class BookAvailability(BaseModel):
    """
    Copy counts for one book.

    ``total_copies`` always equals available + checked out + damaged + other.
    """

    book_id: int
    title: str
    author: str | None = None
    isbn: str | None = None
    total_copies: int = 0
    available_copies: int = 0
    checked_out_copies: int = 0
    damaged_copies: int = 0
    other_copies: int = Field(0, description="Lost, Processing and On Hold copies")
    available_copies_details: list[AvailableCopyDetail] = Field(default_factory=list)

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0
