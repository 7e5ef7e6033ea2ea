"""
Borrow and return flows through LoanRepository.

After every step a copy must be Checked Out exactly when it has one open
loan; ``assert_copies_consistent`` checks that over the whole table.
"""

from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from balanghay.database.copy_repository import CopyRepository
from balanghay.database.loan_repository import LoanRepository, open_loan_clause
from balanghay.database.member_repository import MemberRepository
from balanghay.database.repository import ConflictError, InvalidRequestError, NotFoundError
from balanghay.database.schema import BookCopy as CopyDB
from balanghay.database.schema import Loan as LoanDB
from balanghay.enums import CopyStatusEnum, MemberStatusEnum
from balanghay.models import BorrowRequest, CopyInput, LoanFilters, MemberInput, ReturnItem
from balanghay.models.loan import LoanStatus


def assert_copies_consistent(session):
    session.expire_all()
    for copy in session.execute(select(CopyDB)).scalars():
        open_loans = session.execute(
            select(func.count())
            .select_from(LoanDB)
            .where(LoanDB.book_copy_id == copy.id, open_loan_clause())
        ).scalar()
        assert open_loans <= 1
        assert (copy.status == CopyStatusEnum.CHECKED_OUT.value) == (open_loans == 1), copy.barcode


def copy_status(session, copy_id):
    session.expire_all()
    return session.get(CopyDB, copy_id).status


@pytest.fixture
def loans(test_session):
    return LoanRepository(test_session)


class TestBorrow:
    def test_two_copies_share_a_transaction(
        self, test_session, loans, sample_member, sample_copies
    ):
        first, second = sample_copies[0].id, sample_copies[1].id

        result = loans.borrow_books(
            BorrowRequest(member_id=sample_member.id, book_copy_ids=[first, second])
        )

        assert result.success
        assert not result.failures
        assert len(result.loans) == 2
        assert {loan.transaction_id for loan in result.loans} == {result.transaction_id}
        assert result.transaction_id.startswith("LOAN-")
        assert result.due_date == date.today() + timedelta(days=14)
        assert copy_status(test_session, first) == "Checked Out"
        assert copy_status(test_session, second) == "Checked Out"
        assert copy_status(test_session, sample_copies[2].id) == "Available"
        assert_copies_consistent(test_session)

    def test_borrowed_loan_carries_display_details(self, loans, sample_member, sample_copies):
        result = loans.borrow_books(
            BorrowRequest(member_id=sample_member.id, book_copy_ids=[sample_copies[0].id])
        )
        loan = result.loans[0]

        assert loan.status == "Borrowed"
        assert loan.display_status == LoanStatus.BORROWED.value
        assert loan.book_title == "Noli Me Tangere"
        assert loan.barcode == sample_copies[0].barcode
        assert loan.shelf_name == "Filipiniana A"
        assert loan.member_name == "Juan dela Cruz"

    def test_lost_copy_cannot_be_borrowed(
        self, test_session, loans, sample_member, sample_copies
    ):
        lost = sample_copies[0]
        CopyRepository(test_session).update_copy(lost.id, CopyInput(status="Lost"))
        before = test_session.execute(select(func.count()).select_from(LoanDB)).scalar()

        result = loans.borrow_books(
            BorrowRequest(member_id=sample_member.id, book_copy_ids=[lost.id])
        )

        assert not result.success
        assert result.loans == []
        assert result.failures[0].reason == "conflict"
        assert "Lost" in result.failures[0].message
        assert test_session.execute(select(func.count()).select_from(LoanDB)).scalar() == before
        assert copy_status(test_session, lost.id) == "Lost"
        assert_copies_consistent(test_session)

    def test_checked_out_copy_cannot_be_borrowed_again(
        self, loans, sample_member, other_member, sample_copies
    ):
        copy_id = sample_copies[0].id
        loans.borrow_books(BorrowRequest(member_id=sample_member.id, book_copy_ids=[copy_id]))

        result = loans.borrow_books(
            BorrowRequest(member_id=other_member.id, book_copy_ids=[copy_id])
        )

        assert not result.success
        assert result.failures[0].reason == "conflict"

    def test_partial_batch(self, test_session, loans, sample_member, sample_copies):
        result = loans.borrow_books(
            BorrowRequest(member_id=sample_member.id, book_copy_ids=[sample_copies[0].id, 9999])
        )

        assert result.success
        assert len(result.loans) == 1
        assert result.failures[0].book_copy_id == 9999
        assert result.failures[0].reason == "not_found"
        assert "1 failed" in result.message
        assert_copies_consistent(test_session)

    def test_duplicate_ids_collapse(self, loans, sample_member, sample_copies):
        copy_id = sample_copies[0].id
        result = loans.borrow_books(
            BorrowRequest(member_id=sample_member.id, book_copy_ids=[copy_id, copy_id])
        )
        assert len(result.loans) == 1
        assert not result.failures

    def test_unknown_member(self, loans, sample_copies):
        with pytest.raises(NotFoundError):
            loans.borrow_books(BorrowRequest(member_id=424242, book_copy_ids=[sample_copies[0].id]))

    def test_inactive_member_refused(self, test_session, loans, sample_member, sample_copies):
        MemberRepository(test_session).update_member(
            sample_member.id, MemberInput(status=MemberStatusEnum.INACTIVE)
        )

        with pytest.raises(InvalidRequestError):
            loans.borrow_books(
                BorrowRequest(member_id=sample_member.id, book_copy_ids=[sample_copies[0].id])
            )
        assert copy_status(test_session, sample_copies[0].id) == "Available"

    def test_configured_loan_period(self, test_session, sample_member, sample_copies):
        repo = LoanRepository(test_session, loan_days=7)
        result = repo.borrow_books(
            BorrowRequest(
                member_id=sample_member.id,
                book_copy_ids=[sample_copies[0].id],
                checkout_date=date(2025, 3, 1),
            )
        )
        assert result.due_date == date(2025, 3, 8)


class TestReturn:
    @pytest.fixture
    def borrowed(self, loans, sample_member, sample_copies):
        return loans.borrow_books(
            BorrowRequest(
                member_id=sample_member.id,
                book_copy_ids=[sample_copies[0].id, sample_copies[1].id],
            )
        )

    def test_return_good_makes_copy_available(self, test_session, loans, borrowed):
        loan = borrowed.loans[0]

        outcome = loans.return_loan(loan.id, note="Slightly worn", rating=5, review="Classic")

        assert outcome.returned
        assert outcome.copy_status == "Available"
        assert outcome.loan.status == "Returned"
        assert outcome.loan.return_date is not None
        assert outcome.loan.notes == "Slightly worn"
        assert outcome.loan.rating == 5
        assert copy_status(test_session, loan.book_copy_id) == "Available"
        assert_copies_consistent(test_session)

    @pytest.mark.parametrize("condition,expected", [("Damaged", "Damaged"), ("Lost", "Lost")])
    def test_return_condition_sets_copy_status(
        self, test_session, loans, borrowed, condition, expected
    ):
        loan = borrowed.loans[0]

        outcome = loans.return_loan(loan.id, condition=condition)

        assert outcome.copy_status == expected
        assert outcome.loan.return_condition == condition
        assert copy_status(test_session, loan.book_copy_id) == expected
        assert_copies_consistent(test_session)

    def test_damaged_return_marks_condition(self, test_session, loans, borrowed):
        loan = borrowed.loans[0]
        loans.return_loan(loan.id, condition="Damaged")

        test_session.expire_all()
        assert test_session.get(CopyDB, loan.book_copy_id).condition == "Damaged"

    def test_second_return_is_a_no_op(self, test_session, loans, borrowed):
        loan = borrowed.loans[0]
        first = loans.return_loan(loan.id, condition="Damaged")

        second = loans.return_loan(loan.id, condition="Good")

        assert not second.returned
        assert second.already_returned
        assert second.loan.return_date == first.loan.return_date
        assert copy_status(test_session, loan.book_copy_id) == "Damaged"

    def test_unknown_loan(self, loans):
        with pytest.raises(NotFoundError):
            loans.return_loan(123456)

    def test_unknown_condition(self, loans, borrowed):
        with pytest.raises(InvalidRequestError):
            loans.return_loan(borrowed.loans[0].id, condition="Soggy")

    def test_two_copy_borrow_and_return(self, test_session, loans, borrowed):
        result = loans.return_loans(
            [
                ReturnItem(loan_id=borrowed.loans[0].id, condition="Good"),
                ReturnItem(loan_id=borrowed.loans[1].id, condition="Good"),
            ]
        )

        assert result.returned_count == 2
        assert result.success
        for loan in borrowed.loans:
            assert copy_status(test_session, loan.book_copy_id) == "Available"
        assert loans.list_loans(LoanFilters(active_only=True)) == []
        assert_copies_consistent(test_session)

    def test_batch_continues_past_failures(self, loans, borrowed):
        result = loans.return_loans(
            [ReturnItem(loan_id=777777), ReturnItem(loan_id=borrowed.loans[0].id)]
        )

        assert result.returned_count == 1
        assert result.failures[0].loan_id == 777777
        assert "1 skipped" in result.message

    def test_batch_of_returned_loans(self, loans, borrowed):
        loans.return_loans([ReturnItem(loan_id=loan.id) for loan in borrowed.loans])

        again = loans.return_loans([ReturnItem(loan_id=loan.id) for loan in borrowed.loans])

        assert again.returned_count == 0
        assert again.success
        assert again.message == "All books already returned"


class TestRenew:
    @pytest.fixture
    def loan(self, loans, sample_member, sample_copies):
        return loans.borrow_books(
            BorrowRequest(member_id=sample_member.id, book_copy_ids=[sample_copies[0].id])
        ).loans[0]

    def test_extends_due_date_and_keeps_copy_out(self, test_session, loans, loan):
        renewed = loans.renew_loan(loan.id, days=10)

        assert renewed.due_date == loan.due_date + timedelta(days=10)
        assert renewed.renewal_count == 1
        assert renewed.display_status == "Borrowed"
        assert copy_status(test_session, loan.book_copy_id) == "Checked Out"
        assert_copies_consistent(test_session)

    def test_at_most_two_renewals(self, loans, loan):
        loans.renew_loan(loan.id)
        loans.renew_loan(loan.id)

        with pytest.raises(ConflictError):
            loans.renew_loan(loan.id)
        assert loans.get_loan(loan.id).renewal_count == 2

    def test_overdue_loan_refused(self, loans, sample_member, sample_copies):
        checkout = date.today() - timedelta(days=20)
        late = loans.borrow_books(
            BorrowRequest(
                member_id=sample_member.id,
                book_copy_ids=[sample_copies[1].id],
                checkout_date=checkout,
                due_date=checkout + timedelta(days=14),
            )
        ).loans[0]

        with pytest.raises(ConflictError):
            loans.renew_loan(late.id)

    def test_returned_loan_refused(self, loans, loan):
        loans.return_loan(loan.id)

        with pytest.raises(InvalidRequestError):
            loans.renew_loan(loan.id)

    def test_unknown_loan(self, loans):
        with pytest.raises(NotFoundError):
            loans.renew_loan(999)


class TestReturnByCode:
    @pytest.fixture
    def borrowed(self, loans, sample_member, sample_copies):
        return loans.borrow_books(
            BorrowRequest(
                member_id=sample_member.id, book_copy_ids=[c.id for c in sample_copies[:2]]
            )
        )

    def test_receipt_payload(self, test_session, loans, borrowed, sample_member):
        payload = {
            "t": borrowed.transaction_id,
            "m": sample_member.id,
            "l": [loan.id for loan in borrowed.loans],
            "type": "receipt",
        }

        result = loans.return_by_code(payload)

        assert result.returned_count == 2
        assert result.transaction_id == borrowed.transaction_id
        assert_copies_consistent(test_session)

    def test_transaction_only_payload(self, loans, borrowed):
        result = loans.return_by_code(f'{{"t":"{borrowed.transaction_id}","type":"receipt"}}')
        assert result.returned_count == 2

    def test_bare_transaction_id(self, loans, borrowed):
        assert loans.return_by_code(borrowed.transaction_id).returned_count == 2

    def test_loans_of_other_member_are_skipped(self, loans, borrowed, other_member):
        payload = {"m": other_member.id, "l": [loan.id for loan in borrowed.loans]}

        result = loans.return_by_code(payload)

        assert result.returned_count == 0
        assert len(result.failures) == 2
        assert not result.success

    def test_unknown_transaction(self, loans, borrowed):
        with pytest.raises(NotFoundError):
            loans.return_by_code("LOAN-1-0000")

    def test_already_returned(self, loans, borrowed):
        ids = ",".join(str(loan.id) for loan in borrowed.loans)
        loans.return_by_code(ids)

        again = loans.return_by_code(ids)

        assert again.returned_count == 0
        assert again.message == "All books already returned"


class TestClearAllLoans:
    def test_clear_five_open_loans(self, test_session, loans, sample_member, sample_book):
        copies = CopyRepository(test_session).generate_copies(sample_book.id, 6)
        loans.borrow_books(
            BorrowRequest(member_id=sample_member.id, book_copy_ids=[c.id for c in copies[:5]])
        )

        result = loans.clear_all_loans()

        assert result.deleted_loans == 5
        assert result.reset_copies == 5
        assert test_session.execute(select(func.count()).select_from(LoanDB)).scalar() == 0
        for copy in copies:
            assert copy_status(test_session, copy.id) == "Available"
        assert_copies_consistent(test_session)

    def test_clear_keeps_lost_and_damaged(self, test_session, loans, sample_member, sample_copies):
        result = loans.borrow_books(
            BorrowRequest(member_id=sample_member.id, book_copy_ids=[sample_copies[0].id])
        )
        loans.return_loan(result.loans[0].id, condition="Lost")

        cleared = loans.clear_all_loans()

        assert cleared.deleted_loans == 1
        assert cleared.reset_copies == 0
        assert copy_status(test_session, sample_copies[0].id) == "Lost"


class TestLoanQueries:
    def test_overdue_is_derived(self, loans, sample_member, sample_copies):
        checkout = date.today() - timedelta(days=30)
        loans.borrow_books(
            BorrowRequest(
                member_id=sample_member.id,
                book_copy_ids=[sample_copies[0].id],
                checkout_date=checkout,
                due_date=checkout + timedelta(days=14),
            )
        )
        loans.borrow_books(
            BorrowRequest(member_id=sample_member.id, book_copy_ids=[sample_copies[1].id])
        )

        overdue = loans.list_loans(LoanFilters(overdue_only=True))
        active = loans.list_loans(LoanFilters(active_only=True))

        assert [loan.book_copy_id for loan in overdue] == [sample_copies[0].id]
        assert overdue[0].status == "Borrowed"
        assert overdue[0].display_status == "Overdue"
        assert len(active) == 2

    def test_list_transactions(self, loans, sample_member, sample_copies):
        borrowed = loans.borrow_books(
            BorrowRequest(member_id=sample_member.id, book_copy_ids=[c.id for c in sample_copies])
        )

        summaries = loans.list_transactions(member_id=sample_member.id)

        assert len(summaries) == 1
        summary = summaries[0]
        assert summary.transaction_id == borrowed.transaction_id
        assert summary.book_count == 3
        assert summary.title.startswith("3 books: Noli Me Tangere")
        assert summary.title.endswith("...")
        assert summary.display_status == "Borrowed"

    def test_get_transaction_loans(self, loans, sample_member, sample_copies):
        borrowed = loans.borrow_books(
            BorrowRequest(member_id=sample_member.id, book_copy_ids=[c.id for c in sample_copies])
        )

        found = loans.get_transaction_loans(borrowed.transaction_id)

        assert [loan.id for loan in found] == [loan.id for loan in borrowed.loans]

    def test_due_soon(self, loans, sample_member, sample_copies):
        today = date.today()
        for copy, due in zip(sample_copies, [1, 3, 10], strict=True):
            loans.borrow_books(
                BorrowRequest(
                    member_id=sample_member.id,
                    book_copy_ids=[copy.id],
                    due_date=today + timedelta(days=due),
                )
            )

        soon = loans.list_loans(LoanFilters(due_within_days=3))
        today_only = loans.list_loans(LoanFilters(due_within_days=0))

        assert {loan.book_copy_id for loan in soon} == {c.id for c in sample_copies[:2]}
        assert today_only == []
