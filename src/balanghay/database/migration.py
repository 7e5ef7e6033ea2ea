"""
Schema creation and in-place upgrades for the library database.

``migrate`` is safe to run on every start:

1. Creates any of the six tables that do not exist yet
2. Adds columns that older database files are missing
3. Rewrites loan statuses older releases stored (Overdue, Checked Out) to
   Borrowed or Returned, depending on whether the loan has a return date
4. Gives every loan without a transaction id one, grouping loans that share
   a member and a checkout date
5. Seeds the default administrator when no account with that name exists
"""

import logging
import time

from pydantic import BaseModel, Field
from sqlalchemy import inspect, select, text, update
from sqlalchemy.engine import Engine

from ..config import get_config
from ..receipts import generate_transaction_id
from .schema import Base, Loan, LoanStatusEnum, User, UserRoleEnum, UserStatusEnum
from .session import DatabaseManager, get_db_manager
from .user_repository import hash_password

logger = logging.getLogger(__name__)

# Columns added after the first release, by table
ADDED_COLUMNS: dict[str, dict[str, str]] = {
    "loans": {
        "transaction_id": "VARCHAR(64)",
        "return_condition": "VARCHAR(20)",
        "notes": "TEXT",
        "rating": "INTEGER",
        "review": "TEXT",
        "renewal_count": "INTEGER NOT NULL DEFAULT 0",
    },
    "users": {
        "email": "VARCHAR(255)",
        "pin_code": "VARCHAR(20)",
        "qr_auth_key": "VARCHAR(100)",
        "member_id": "INTEGER REFERENCES members(id) ON DELETE SET NULL",
    },
    "members": {
        "pin": "VARCHAR(20)",
        "qr_code": "VARCHAR(100)",
    },
}


class MigrationResult(BaseModel):
    created_tables: list[str] = Field(default_factory=list)
    added_columns: list[str] = Field(default_factory=list)
    normalized_loans: int = 0
    backfilled_loans: int = 0
    admin_created: bool = False

    @property
    def changed(self) -> bool:
        return bool(
            self.created_tables
            or self.added_columns
            or self.normalized_loans
            or self.backfilled_loans
            or self.admin_created
        )


def _create_tables(engine: Engine) -> list[str]:
    existing = set(inspect(engine).get_table_names())
    Base.metadata.create_all(bind=engine)
    created = [name for name in Base.metadata.tables if name not in existing]
    if created:
        logger.info("Created tables: %s", ", ".join(created))
    return created


def _add_missing_columns(engine: Engine, skip_tables: list[str]) -> list[str]:
    inspector = inspect(engine)
    added = []
    with engine.begin() as conn:
        for table, columns in ADDED_COLUMNS.items():
            if table in skip_tables:
                continue
            present = {column["name"] for column in inspector.get_columns(table)}
            for name, ddl in columns.items():
                if name in present:
                    continue
                conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}"))
                added.append(f"{table}.{name}")
                logger.info("Added column %s.%s", table, name)
    return added


LEGACY_LOAN_STATUSES = ("Overdue", "Checked Out")


def _normalize_loan_statuses(db_manager: DatabaseManager) -> int:
    """Only Borrowed and Returned are stored; Overdue is derived when shown."""
    with db_manager.session_scope() as session:
        legacy = Loan.status.in_(LEGACY_LOAN_STATUSES)
        returned = session.execute(
            update(Loan)
            .where(legacy, Loan.return_date.is_not(None))
            .values(status=LoanStatusEnum.RETURNED.value)
        ).rowcount
        borrowed = session.execute(
            update(Loan)
            .where(legacy, Loan.return_date.is_(None))
            .values(status=LoanStatusEnum.BORROWED.value)
        ).rowcount

    total = (returned or 0) + (borrowed or 0)
    if total:
        logger.info(
            "Normalized %d legacy loan status(es): %d Borrowed, %d Returned",
            total,
            borrowed or 0,
            returned or 0,
        )
    return total


def _backfill_transaction_ids(db_manager: DatabaseManager) -> int:
    """Loans from one borrow action share member and checkout date."""
    with db_manager.session_scope() as session:
        loans = (
            session.execute(
                select(Loan)
                .where(Loan.transaction_id.is_(None))
                .order_by(Loan.member_id, Loan.checkout_date, Loan.id)
            )
            .scalars()
            .all()
        )

        assigned: dict[tuple, str] = {}
        used: set[str] = set()
        for loan in loans:
            key = (loan.member_id, loan.checkout_date)
            if key not in assigned:
                transaction_id = generate_transaction_id()
                while transaction_id in used:
                    transaction_id = generate_transaction_id()
                used.add(transaction_id)
                assigned[key] = transaction_id
            loan.transaction_id = assigned[key]

        if loans:
            logger.info(
                "Back-filled transaction ids for %d loan(s) in %d group(s)",
                len(loans),
                len(assigned),
            )
        return len(loans)


def _seed_admin(db_manager: DatabaseManager) -> bool:
    config = get_config()
    with db_manager.session_scope() as session:
        exists = session.execute(
            select(User.id).where(User.username == config.admin_username)
        ).first()
        if exists:
            return False

        session.add(
            User(
                username=config.admin_username,
                email=config.admin_email,
                password=hash_password(config.admin_password),
                pin_code=config.admin_pin,
                qr_auth_key=f"USER-{config.admin_username}-{int(time.time() * 1000)}",
                role=UserRoleEnum.ADMIN.value,
                status=UserStatusEnum.ACTIVE.value,
            )
        )
    logger.info("Seeded administrator account '%s'", config.admin_username)
    return True


def migrate(db_manager: DatabaseManager | None = None) -> MigrationResult:
    """Bring the database file up to the current schema. Idempotent."""
    db_manager = db_manager or get_db_manager()
    engine = db_manager.engine

    result = MigrationResult()
    result.created_tables = _create_tables(engine)
    result.added_columns = _add_missing_columns(engine, result.created_tables)
    result.normalized_loans = _normalize_loan_statuses(db_manager)
    result.backfilled_loans = _backfill_transaction_ids(db_manager)
    result.admin_created = _seed_admin(db_manager)

    if result.changed:
        logger.info("Database migration applied: %s", result.model_dump())
    else:
        logger.debug("Database already up to date")
    return result


def initialize(db_manager: DatabaseManager | None = None) -> MigrationResult:
    """
    Prepare the database at startup.

    Raises:
        RuntimeError: If the database file cannot be opened
    """
    db_manager = db_manager or get_db_manager()
    if not db_manager.verify_connection():
        raise RuntimeError(f"Cannot open database at {db_manager.database_url}")
    return migrate(db_manager)
