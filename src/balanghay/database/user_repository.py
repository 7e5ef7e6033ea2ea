"""
User repository: operator accounts and sign-in.

Passwords are hashed with werkzeug. Rows written before hashing was
introduced hold the plain password; those still sign in by direct
comparison.

Sign-in looks at operator accounts first and falls back to members:

- ``authenticate``: username or email plus password, then member email
  plus member PIN
- ``authenticate_with_pin``: user PIN, then member PIN
- ``authenticate_with_qr``: user QR key, then member card code, with an
  optional PIN check
"""

import hmac
import logging

from sqlalchemy import or_, select
from werkzeug.security import check_password_hash, generate_password_hash

from ..database.schema import Member as MemberDB
from ..database.schema import MemberStatusEnum, UserStatusEnum
from ..database.schema import User as UserDB
from ..database.session import safe_query
from ..models.user import AuthenticatedAccount, UserCreate, UserInput
from ..models.user import User as UserModel
from .repository import BaseRepository, NotFoundError, RepositoryException

logger = logging.getLogger(__name__)

MEMBER_ROLE = "member"


class AuthenticationError(RepositoryException):
    """Raised when credentials do not identify an active account."""


def hash_password(password: str) -> str:
    return generate_password_hash(password)


WERKZEUG_HASH_PREFIXES = ("scrypt:", "pbkdf2:")


def is_password_hash(stored: str) -> bool:
    return stored.startswith(WERKZEUG_HASH_PREFIXES) or "$" in stored


def verify_password(stored: str, password: str) -> bool:
    """Check a password against a werkzeug hash, or a legacy plain value."""
    if is_password_hash(stored):
        return check_password_hash(stored, password)
    return hmac.compare_digest(stored.encode(), password.encode())


class UserRepository(BaseRepository[UserDB, UserCreate, UserInput, UserModel]):
    @property
    def model_class(self):
        return UserDB

    @property
    def response_schema(self):
        return UserModel

    def get(self, user_id: int) -> UserModel:
        return self._to_response_model(self._require_db_object(user_id))

    def list_users(self) -> list[UserModel]:
        return self.get_all(order_by="username")

    def create_user(self, data: UserCreate) -> UserModel:
        data = data.model_copy(update={"password": hash_password(data.password)})
        user = self.create(data)
        logger.info("Created user %d: %s (%s)", user.id, user.username, user.role)
        return user

    def update_user(self, user_id: int, data: UserInput) -> UserModel:
        if data.password is not None:
            data = data.model_copy(update={"password": hash_password(data.password)})
        user = self.update(user_id, data)
        logger.info("Updated user %d", user_id)
        return user

    def delete_user(self, user_id: int) -> None:
        if not self.delete(user_id):
            raise NotFoundError(f"User {user_id} not found")
        logger.info("Deleted user %d", user_id)

    # === Sign-in ===

    def _first_user(self, *conditions) -> UserDB | None:
        return safe_query(
            self.session,
            lambda s: s.execute(
                select(UserDB).where(*conditions).order_by(UserDB.id).limit(1)
            ).scalar_one_or_none(),
            "Failed to look up user",
        )

    def _first_member(self, *conditions) -> MemberDB | None:
        return safe_query(
            self.session,
            lambda s: s.execute(
                select(MemberDB).where(*conditions).order_by(MemberDB.id).limit(1)
            ).scalar_one_or_none(),
            "Failed to look up member",
        )

    @staticmethod
    def _user_account(user: UserDB) -> AuthenticatedAccount:
        if user.status != UserStatusEnum.ACTIVE.value:
            raise AuthenticationError("User account is inactive")
        return AuthenticatedAccount(
            account_type="user",
            id=user.id,
            name=user.username,
            email=user.email,
            role=user.role,
            member_id=user.member_id,
        )

    @staticmethod
    def _member_account(member: MemberDB) -> AuthenticatedAccount:
        if member.status != MemberStatusEnum.ACTIVE.value:
            raise AuthenticationError("Member account is inactive")
        return AuthenticatedAccount(
            account_type="member",
            id=member.id,
            name=member.name,
            email=member.email,
            role=MEMBER_ROLE,
            member_id=member.id,
        )

    def authenticate(self, identifier: str, password: str) -> AuthenticatedAccount:
        """
        Sign in with username or email and a password.

        A member can sign in with their email and PIN.

        Raises:
            AuthenticationError: Unknown identifier, wrong secret, inactive account
        """
        if not identifier or not password:
            raise AuthenticationError("Both identifier and password are required")

        user = self._first_user(or_(UserDB.username == identifier, UserDB.email == identifier))
        if user is not None:
            if not verify_password(user.password, password):
                logger.info("Sign-in refused for %s: wrong password", identifier)
                raise AuthenticationError("Invalid password")
            account = self._user_account(user)
            logger.info("User %s signed in", user.username)
            return account

        member = self._first_member(MemberDB.email == identifier.strip().lower())
        if member is None:
            raise AuthenticationError("User not found")
        if not member.pin or member.pin != password:
            raise AuthenticationError("Invalid PIN")

        account = self._member_account(member)
        logger.info("Member %d signed in", member.id)
        return account

    def authenticate_with_pin(self, pin: str) -> AuthenticatedAccount:
        if not pin:
            raise AuthenticationError("PIN code is required")

        user = self._first_user(UserDB.pin_code == pin)
        if user is not None:
            return self._user_account(user)

        member = self._first_member(MemberDB.pin == pin)
        if member is not None:
            return self._member_account(member)

        raise AuthenticationError("Invalid PIN code")

    def authenticate_with_qr(
        self, qr_auth_key: str, pin: str | None = None
    ) -> AuthenticatedAccount:
        """
        Sign in by scanning a QR key; when ``pin`` is given it must match too.
        """
        if not qr_auth_key:
            raise AuthenticationError("QR code is required")

        user = self._first_user(UserDB.qr_auth_key == qr_auth_key)
        if user is not None:
            if pin and user.pin_code != pin:
                raise AuthenticationError("Invalid PIN code")
            return self._user_account(user)

        member = self._first_member(MemberDB.qr_code == qr_auth_key)
        if member is not None:
            if pin and member.pin != pin:
                raise AuthenticationError("Invalid PIN code")
            return self._member_account(member)

        raise AuthenticationError("Invalid QR code")
