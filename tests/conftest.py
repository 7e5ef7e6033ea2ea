"""Shared fixtures for the Balanghay test suite.

Every test gets its own SQLite file under ``tmp_path`` and a fresh
configuration pointing at it, so nothing leaks between tests and nothing
is written to the working directory.
"""

from collections.abc import Generator
from contextlib import contextmanager
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy.orm import Session

from balanghay.config import reset_config
from balanghay.database.book_repository import BookRepository
from balanghay.database.copy_repository import CopyRepository
from balanghay.database.member_repository import MemberRepository
from balanghay.database.session import DatabaseManager, reset_db_manager
from balanghay.database.shelf_repository import ShelfRepository
from balanghay.models import BookCreate, CopyTemplate, MemberCreate, ShelfCreate

TOOL_MODULES = [
    "balanghay.tools.accounts",
    "balanghay.tools.catalog",
    "balanghay.tools.circulation",
    "balanghay.tools.members",
]

RESOURCE_MODULES = [
    "balanghay.resources.books",
    "balanghay.resources.loans",
    "balanghay.resources.members",
    "balanghay.resources.reports",
    "balanghay.resources.shelves",
    "balanghay.resources.users",
]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch) -> Generator[None, None, None]:
    """Point configuration at the test directory and drop cached singletons."""
    for key in ("BALANGHAY_DEBUG", "BALANGHAY_LOG_LEVEL", "BALANGHAY_DEFAULT_LOAN_DAYS"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("BALANGHAY_DATABASE_PATH", str(tmp_path / "config_library.db"))
    reset_config()
    reset_db_manager()
    yield
    reset_db_manager()
    reset_config()


# === Database Fixtures ===


@pytest.fixture
def test_database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'test_library.db'}"


@pytest.fixture
def db_manager(test_database_url: str) -> Generator[DatabaseManager, None, None]:
    manager = DatabaseManager(test_database_url)
    manager.init_database()
    yield manager
    manager.close()


@pytest.fixture
def test_session(db_manager: DatabaseManager) -> Generator[Session, None, None]:
    session = db_manager.create_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def mock_get_session(test_session, monkeypatch):
    """Make tool and resource handlers use the test session.

    Handlers open sessions through ``get_session`` (tools) or
    ``session_scope`` (resources); both are replaced in every handler
    module so the handlers see the rows the test created.
    """

    @contextmanager
    def _mock_get_session():
        yield test_session

    for module in TOOL_MODULES:
        monkeypatch.setattr(f"{module}.get_session", _mock_get_session)
    for module in RESOURCE_MODULES:
        monkeypatch.setattr(f"{module}.session_scope", _mock_get_session)

    return test_session


# === Sample Data ===


@pytest.fixture
def sample_shelf(test_session):
    return ShelfRepository(test_session).create_shelf(
        ShelfCreate(name="Filipiniana A", code="FIL-A", section="Filipiniana", location="East wing")
    )


@pytest.fixture
def sample_book(test_session):
    return BookRepository(test_session).create_book(
        BookCreate(
            title="Noli Me Tangere",
            author="Jose Rizal",
            isbn="978-971-0-12345-6",
            category="Filipiniana",
            publish_year=1887,
        )
    )


@pytest.fixture
def sample_copies(test_session, sample_book, sample_shelf):
    """Three Available copies of the sample book on the sample shelf."""
    return CopyRepository(test_session).generate_copies(
        sample_book.id,
        3,
        CopyTemplate(shelf_id=sample_shelf.id, acquisition_date=date(2024, 1, 15)),
    )


@pytest.fixture
def sample_member(test_session):
    return MemberRepository(test_session).create_member(
        MemberCreate(name="Juan dela Cruz", email="Juan@Example.com", phone="0917", pin="1234")
    )


@pytest.fixture
def other_member(test_session):
    return MemberRepository(test_session).create_member(
        MemberCreate(name="Maria Clara", email="maria@example.com", pin="5678")
    )
