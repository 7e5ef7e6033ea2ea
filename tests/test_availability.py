"""Tests for per-book copy availability and copy bookkeeping."""

import re

import pytest

from balanghay.database.copy_repository import (
    MAX_BULK_COPIES,
    CopyRepository,
    make_barcode,
    make_location_code,
)
from balanghay.database.loan_repository import LoanRepository
from balanghay.database.repository import (
    ConflictError,
    DuplicateError,
    InvalidRequestError,
    NotFoundError,
)
from balanghay.database.shelf_repository import ShelfRepository
from balanghay.models import BorrowRequest, CopyCreate, CopyInput, CopyTemplate, ShelfCreate


@pytest.fixture
def copies(test_session):
    return CopyRepository(test_session)


class TestAvailability:
    def test_all_available(self, copies, sample_book, sample_copies):
        availability = copies.get_availability(sample_book.id)

        assert availability.total_copies == 3
        assert availability.available_copies == 3
        assert availability.is_available
        detail = availability.available_copies_details[0]
        assert detail.shelf.name == "Filipiniana A"
        assert detail.call_number == detail.location_code

    def test_counts_add_up(self, test_session, copies, sample_book, sample_member):
        made = copies.generate_copies(sample_book.id, 5)
        LoanRepository(test_session).borrow_books(
            BorrowRequest(member_id=sample_member.id, book_copy_ids=[made[0].id])
        )
        copies.update_copy(made[1].id, CopyInput(status="Damaged"))
        copies.update_copy(made[2].id, CopyInput(status="Lost"))
        copies.update_copy(made[3].id, CopyInput(status="Processing"))

        availability = copies.get_availability(sample_book.id)

        assert availability.total_copies == 5
        assert availability.available_copies == 1
        assert availability.checked_out_copies == 1
        assert availability.damaged_copies == 1
        assert availability.other_copies == 2
        assert availability.total_copies == (
            availability.available_copies
            + availability.checked_out_copies
            + availability.damaged_copies
            + availability.other_copies
        )

    def test_poor_condition_is_not_damaged(self, copies, sample_book, sample_copies):
        copies.update_copy(sample_copies[0].id, CopyInput(condition="Poor"))

        availability = copies.get_availability(sample_book.id)

        assert availability.damaged_copies == 0
        assert availability.available_copies == 3

    def test_book_without_copies(self, copies, sample_book):
        availability = copies.get_availability(sample_book.id)

        assert availability.total_copies == 0
        assert not availability.is_available
        assert availability.available_copies_details == []

    def test_unknown_book(self, copies):
        with pytest.raises(NotFoundError):
            copies.get_availability(999)


class TestCopyCodes:
    def test_barcode_format(self):
        assert make_barcode(7, 3, clock_ms=1718000123456) == "B0007-123456-3"

    def test_location_code_uses_section(self):
        assert make_location_code("Filipiniana", 12, 2) == "FIL-0012-2"

    def test_location_code_without_section(self):
        assert make_location_code(None, 12, 2) == "GEN-0012-2"


class TestGenerateCopies:
    def test_numbering_continues(self, copies, sample_book, sample_copies):
        more = copies.generate_copies(sample_book.id, 2)

        assert [c.copy_number for c in sample_copies] == [1, 2, 3]
        assert [c.copy_number for c in more] == [4, 5]
        assert all(c.location_code is None for c in more)

    def test_generated_codes(self, sample_book, sample_copies):
        for copy in sample_copies:
            assert re.fullmatch(rf"B{sample_book.id:04d}-\d{{6}}-{copy.copy_number}", copy.barcode)
            assert copy.location_code == f"FIL-{sample_book.id:04d}-{copy.copy_number}"
            assert copy.status == "Available"
            assert copy.condition == "Good"

    @pytest.mark.parametrize("count", [0, MAX_BULK_COPIES + 1])
    def test_count_bounds(self, copies, sample_book, count):
        with pytest.raises(InvalidRequestError):
            copies.generate_copies(sample_book.id, count)

    def test_cannot_start_checked_out(self, copies, sample_book):
        with pytest.raises(InvalidRequestError):
            copies.generate_copies(
                sample_book.id, 1, CopyTemplate.model_construct(status="Checked Out")
            )

    def test_unknown_shelf(self, copies, sample_book):
        with pytest.raises(NotFoundError):
            copies.generate_copies(sample_book.id, 1, CopyTemplate(shelf_id=404))


class TestCopyEdits:
    def test_add_copy(self, copies, sample_book, sample_copies, sample_shelf):
        copy = copies.add_copy(
            CopyCreate(book_id=sample_book.id, barcode="MANUAL-1", shelf_id=sample_shelf.id)
        )

        assert copy.copy_number == 4
        assert copy.location_code == f"FIL-{sample_book.id:04d}-4"

    def test_duplicate_barcode(self, copies, sample_book, sample_copies):
        with pytest.raises(DuplicateError):
            copies.add_copy(CopyCreate(book_id=sample_book.id, barcode=sample_copies[0].barcode))

    def test_manual_checkout_refused(self):
        with pytest.raises(ValueError):
            CopyInput(status="Checked Out")

    def test_checked_out_copy_status_is_locked(
        self, test_session, copies, sample_member, sample_copies
    ):
        copy_id = sample_copies[0].id
        LoanRepository(test_session).borrow_books(
            BorrowRequest(member_id=sample_member.id, book_copy_ids=[copy_id])
        )

        with pytest.raises(ConflictError):
            copies.update_copy(copy_id, CopyInput(status="Available"))
        with pytest.raises(ConflictError):
            copies.delete_copy(copy_id)

    def test_move_copy(self, test_session, copies, sample_copies):
        science = ShelfRepository(test_session).create_shelf(
            ShelfCreate(name="Science A", section="Science")
        )
        copy = sample_copies[0]

        moved = copies.move_copy(copy.id, science.id)
        assert moved.shelf_id == science.id
        assert moved.location_code == f"SCI-{copy.book_id:04d}-{copy.copy_number}"

        unshelved = copies.move_copy(copy.id, None)
        assert unshelved.shelf_id is None
        assert unshelved.location_code is None

    def test_delete_copy(self, copies, sample_book, sample_copies):
        copies.delete_copy(sample_copies[2].id)

        assert len(copies.list_by_book(sample_book.id)) == 2
        with pytest.raises(NotFoundError):
            copies.delete_copy(sample_copies[2].id)
