"""
Book model for the Balanghay library backend.

Books are exposed read-only through resources such as
``library://books/list`` and ``library://books/{book_id}``, and changed
through the create/update/delete book tools.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Book(BaseModel):
    """A catalog entry. Circulation happens on its copies, not on the book."""

    id: int = Field(..., description="Book ID", examples=[1, 42])

    title: str = Field(
        ...,
        description="The title of the book",
        min_length=1,
        max_length=500,
        examples=["Noli Me Tangere", "Florante at Laura"],
    )

    author: str | None = Field(None, description="Author name", examples=["Jose Rizal"])

    isbn: str | None = Field(
        None,
        description="ISBN, stored without hyphens",
        examples=["9789712731235"],
    )

    category: str | None = Field(None, description="Category or genre", examples=["Fiction"])
    publisher: str | None = None
    publish_year: int | None = Field(None, examples=[1887])
    description: str | None = None

    front_cover: str | None = None
    back_cover: str | None = None
    spine_cover: str | None = None
    cover_color: str = Field(default="#6B4226", examples=["#6B4226"])

    status: str = Field(default="Available", description="Catalog status label")

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class BookInput(BaseModel):
    """Writable book fields. Shared by the create and update paths."""

    title: str | None = Field(None, min_length=1, max_length=500)
    author: str | None = Field(None, max_length=300)
    isbn: str | None = Field(None, max_length=20)
    category: str | None = Field(None, max_length=100)
    publisher: str | None = Field(None, max_length=300)
    publish_year: int | None = Field(None, ge=0, le=datetime.now().year + 1)
    description: str | None = None
    front_cover: str | None = None
    back_cover: str | None = None
    spine_cover: str | None = None
    cover_color: str | None = Field(None, pattern=r"^#[0-9A-Fa-f]{3,8}$")
    status: str | None = None

    @field_validator("isbn")
    @classmethod
    def normalize_isbn(cls, v: str | None) -> str | None:
        """Drop hyphens and spaces; an empty ISBN is stored as NULL."""
        if v is None:
            return None
        normalized = v.replace("-", "").replace(" ", "").strip()
        return normalized or None

    @field_validator("category")
    @classmethod
    def normalize_category(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class BookCreate(BookInput):
    """Fields for a new book. Only the title is required."""

    title: str = Field(..., min_length=1, max_length=500)
