"""Shelf models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Shelf(BaseModel):
    """A physical storage location for copies."""

    id: int
    name: str = Field(..., examples=["Filipiniana A"])
    code: str | None = Field(None, examples=["FIL-A"])
    location: str | None = Field(None, examples=["Ground floor, east wing"])
    section: str | None = Field(None, examples=["Filipiniana"])
    description: str | None = None
    capacity: int = 100

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ShelfInput(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    code: str | None = Field(None, max_length=50)
    location: str | None = Field(None, max_length=200)
    section: str | None = Field(None, max_length=100)
    description: str | None = None
    capacity: int | None = Field(None, ge=0)


class ShelfCreate(ShelfInput):
    name: str = Field(..., min_length=1, max_length=200)
    capacity: int = Field(default=100, ge=0)


class ShelfCopy(BaseModel):
    """One copy as listed on a shelf."""

    copy_id: int
    book_id: int
    title: str
    author: str | None = None
    barcode: str
    location_code: str | None = None
    status: str
    condition: str | None = None


class ShelfContents(BaseModel):
    """A shelf and everything currently assigned to it."""

    shelf: Shelf
    copy_count: int
    copies: list[ShelfCopy]
