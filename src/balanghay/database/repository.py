"""
Repository base classes and errors for the Balanghay backend.

Tool and resource handlers never touch SQLAlchemy directly. They build a
repository around a session and get pydantic models back, which serialize
straight into the JSON the UI expects. The errors below are the vocabulary
handlers translate into ``success: false`` messages.
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..database.schema import Base
from ..database.session import safe_commit, safe_query

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)
ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)


class RepositoryException(Exception):
    """Base exception for repository operations."""


class NotFoundError(RepositoryException):
    """Raised when an entity is not found."""


class DuplicateError(RepositoryException):
    """Raised when attempting to create a duplicate entity."""


class ConflictError(RepositoryException):
    """Raised when a row is not in the state an operation requires."""


class InvalidRequestError(RepositoryException):
    """Raised when a request fails a rule only the repository can check."""


class PaginationParams(BaseModel):
    """Standard pagination parameters for list operations."""

    page: int = 1
    page_size: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def validate_params(self) -> None:
        if self.page < 1:
            raise ValueError("Page must be >= 1")
        if self.page_size < 1 or self.page_size > 100:
            raise ValueError("Page size must be between 1 and 100")


class PaginatedResponse(BaseModel, Generic[ResponseSchemaType]):
    """One page of a list resource."""

    items: list[ResponseSchemaType]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(
        cls, items: list, total: int, pagination: PaginationParams
    ) -> "PaginatedResponse":
        return cls(
            items=items,
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=(total + pagination.page_size - 1) // pagination.page_size,
            has_next=pagination.page * pagination.page_size < total,
            has_previous=pagination.page > 1,
        )


class BaseRepository(
    ABC, Generic[ModelType, CreateSchemaType, UpdateSchemaType, ResponseSchemaType]
):
    """
    Common CRUD operations over one table.

    Subclasses name the ORM class and the pydantic response schema; every
    read goes through ``safe_query`` and every write through ``safe_commit``.
    """

    def __init__(self, session: Session):
        self.session = session

    @property
    @abstractmethod
    def model_class(self) -> type[ModelType]:
        """Return the SQLAlchemy model class."""

    @property
    @abstractmethod
    def response_schema(self) -> type[ResponseSchemaType]:
        """Return the Pydantic response schema."""

    @property
    def entity_name(self) -> str:
        return self.model_class.__name__

    def _to_response_model(self, db_obj: ModelType) -> ResponseSchemaType:
        return self.response_schema.model_validate(db_obj, from_attributes=True)

    def _get_db_object(self, id: int) -> ModelType | None:
        query = select(self.model_class).where(self.model_class.id == id)
        return safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            f"Failed to get {self.entity_name} by ID",
        )

    def _require_db_object(self, id: int) -> ModelType:
        db_obj = self._get_db_object(id)
        if db_obj is None:
            raise NotFoundError(f"{self.entity_name} {id} not found")
        return db_obj

    def get_all(self, order_by: str | None = None) -> list[ResponseSchemaType]:
        """Every entity, sorted by ``order_by`` when the column exists, else by id."""
        query = select(self.model_class)

        if order_by and hasattr(self.model_class, order_by):
            order_field = getattr(self.model_class, order_by)
            query = query.order_by(order_field)
        else:
            query = query.order_by(self.model_class.id)

        results = safe_query(
            self.session, lambda s: s.execute(query).scalars().all(), "Failed to get all results"
        )
        return [self._to_response_model(item) for item in results]

    def create(self, data: CreateSchemaType) -> ResponseSchemaType:
        """
        Create new entity.

        Raises:
            DuplicateError: If a unique column already holds the value
            RepositoryException: On other database errors
        """
        try:
            db_obj = self.model_class(**data.model_dump(exclude_none=True))
            self.session.add(db_obj)
            self.session.flush()
            safe_commit(self.session, f"create {self.entity_name}")
            self.session.refresh(db_obj)
            return self._to_response_model(db_obj)
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateError(f"{self.entity_name} already exists: {e.orig}") from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RepositoryException(f"Database error: {e!s}") from e

    def update(self, id: int, data: UpdateSchemaType) -> ResponseSchemaType:
        """
        Update the fields that were explicitly set on ``data``.

        Raises:
            NotFoundError: If no row has this ID
            DuplicateError: If the change collides with a unique column
        """
        db_obj = self._require_db_object(id)

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(db_obj, field, value)

        try:
            self.session.flush()
            safe_commit(self.session, f"update {self.entity_name}")
            self.session.refresh(db_obj)
            return self._to_response_model(db_obj)
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateError(f"{self.entity_name} update collides: {e.orig}") from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RepositoryException(f"Update failed: {e!s}") from e

    def delete(self, id: int) -> bool:
        """
        Delete entity by ID.

        Returns:
            True if deleted, False if not found
        """
        db_obj = self._get_db_object(id)
        if db_obj is None:
            return False

        try:
            self.session.delete(db_obj)
            safe_commit(self.session, f"delete {self.entity_name}")
            return True
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RepositoryException(f"Delete failed: {e!s}") from e
