"""
Member repository for the Balanghay backend.

Members borrow books. A member gets a QR code on creation when none is
supplied; the code is printed on the member card and accepted at sign-in.
"""

import logging
import uuid

from sqlalchemy import or_, select

from ..database.schema import CopyStatusEnum
from ..database.schema import Member as MemberDB
from ..database.session import safe_query
from ..models.member import Member as MemberModel
from ..models.member import MemberCreate, MemberInput
from .repository import BaseRepository, NotFoundError

logger = logging.getLogger(__name__)


def generate_member_qr_code() -> str:
    return f"MEM-{uuid.uuid4().hex[:12].upper()}"


class MemberRepository(BaseRepository[MemberDB, MemberCreate, MemberInput, MemberModel]):
    @property
    def model_class(self):
        return MemberDB

    @property
    def response_schema(self):
        return MemberModel

    def get(self, member_id: int) -> MemberModel:
        return self._to_response_model(self._require_db_object(member_id))

    def list_members(
        self, query: str | None = None, status: str | None = None
    ) -> list[MemberModel]:
        """List members, optionally matching name or email and status."""
        stmt = select(MemberDB).order_by(MemberDB.name, MemberDB.id)
        if query:
            pattern = f"%{query.strip()}%"
            stmt = stmt.where(or_(MemberDB.name.ilike(pattern), MemberDB.email.ilike(pattern)))
        if status:
            stmt = stmt.where(MemberDB.status == status)

        rows = safe_query(
            self.session, lambda s: s.execute(stmt).scalars().all(), "Failed to list members"
        )
        return [self._to_response_model(row) for row in rows]

    def create_member(self, data: MemberCreate) -> MemberModel:
        if not data.qr_code:
            data = data.model_copy(update={"qr_code": generate_member_qr_code()})
        member = self.create(data)
        logger.info("Created member %d: %s", member.id, member.name)
        return member

    def update_member(self, member_id: int, data: MemberInput) -> MemberModel:
        member = self.update(member_id, data)
        logger.info("Updated member %d", member_id)
        return member

    def delete_member(self, member_id: int) -> None:
        """
        Delete a member together with their loan history.

        Copies the member still has out go back to Available, so no copy is
        left Checked Out without a loan.
        """
        member = self._require_db_object(member_id)
        released = 0
        for loan in member.loans:
            if loan.is_open and loan.book_copy.status == CopyStatusEnum.CHECKED_OUT.value:
                loan.book_copy.status = CopyStatusEnum.AVAILABLE.value
                released += 1

        self.delete(member_id)
        logger.info("Deleted member %d, released %d copies", member_id, released)

    def find_by_credential(self, credential: str) -> MemberModel:
        """
        Find a member by PIN or by member-card QR code.

        Raises:
            NotFoundError: No member uses this credential
        """
        member = safe_query(
            self.session,
            lambda s: s.execute(
                select(MemberDB)
                .where(or_(MemberDB.pin == credential, MemberDB.qr_code == credential))
                .order_by(MemberDB.id)
                .limit(1)
            ).scalar_one_or_none(),
            "Failed to look up member credential",
        )
        if member is None:
            raise NotFoundError("Member not found with the provided credentials")
        return self._to_response_model(member)
