"""Shelf repository: shelf CRUD and the shelf contents view."""

import logging

from sqlalchemy import select
from sqlalchemy.orm import joinedload

from ..database.schema import BookCopy as CopyDB
from ..database.schema import Shelf as ShelfDB
from ..database.session import safe_query
from ..models.shelf import Shelf as ShelfModel
from ..models.shelf import ShelfContents, ShelfCopy, ShelfCreate, ShelfInput
from .repository import BaseRepository, NotFoundError

logger = logging.getLogger(__name__)


class ShelfRepository(BaseRepository[ShelfDB, ShelfCreate, ShelfInput, ShelfModel]):
    @property
    def model_class(self):
        return ShelfDB

    @property
    def response_schema(self):
        return ShelfModel

    def get(self, shelf_id: int) -> ShelfModel:
        return self._to_response_model(self._require_db_object(shelf_id))

    def list_shelves(self) -> list[ShelfModel]:
        return self.get_all(order_by="name")

    def create_shelf(self, data: ShelfCreate) -> ShelfModel:
        shelf = self.create(data)
        logger.info("Created shelf %d: %s", shelf.id, shelf.name)
        return shelf

    def update_shelf(self, shelf_id: int, data: ShelfInput) -> ShelfModel:
        shelf = self.update(shelf_id, data)
        logger.info("Updated shelf %d", shelf_id)
        return shelf

    def delete_shelf(self, shelf_id: int) -> None:
        """Delete a shelf. Its copies stay in the catalog, unshelved."""
        if not self.delete(shelf_id):
            raise NotFoundError(f"Shelf {shelf_id} not found")
        logger.info("Deleted shelf %d", shelf_id)

    def get_contents(self, shelf_id: int) -> ShelfContents:
        """
        List the copies assigned to a shelf.

        Raises:
            NotFoundError: If the shelf does not exist
        """
        shelf = self._require_db_object(shelf_id)

        copies = safe_query(
            self.session,
            lambda s: s.execute(
                select(CopyDB)
                .options(joinedload(CopyDB.book))
                .where(CopyDB.shelf_id == shelf_id)
                .order_by(CopyDB.location_code, CopyDB.id)
            )
            .scalars()
            .all(),
            "Failed to get shelf contents",
        )

        items = [
            ShelfCopy(
                copy_id=copy.id,
                book_id=copy.book_id,
                title=copy.book.title,
                author=copy.book.author,
                barcode=copy.barcode,
                location_code=copy.location_code,
                status=copy.status,
                condition=copy.condition,
            )
            for copy in copies
        ]
        return ShelfContents(
            shelf=self._to_response_model(shelf), copy_count=len(items), copies=items
        )
