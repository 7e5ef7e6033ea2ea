"""
Tests for the circulation tools.

Handlers run against the per-test database through ``mock_get_session``.
Each one must answer with the ``{success, message, data}`` envelope even
when the arguments or the request are bad.
"""

from datetime import date, timedelta

import pytest

from balanghay.database.loan_repository import LoanRepository
from balanghay.database.schema import BookCopy as CopyDB
from balanghay.database.schema import Loan as LoanDB
from balanghay.models import BorrowRequest
from balanghay.tools.circulation import (
    borrow_books_handler,
    circulation_tools,
    clear_all_loans_handler,
    generate_receipt_handler,
    renew_loan_handler,
    return_by_code_handler,
    return_loan_handler,
    return_loans_handler,
)


def copy_status(session, copy_id):
    session.expire_all()
    return session.get(CopyDB, copy_id).status


@pytest.fixture
def borrowed(test_session, sample_member, sample_copies):
    """Two copies lent to the sample member in one transaction."""
    return LoanRepository(test_session).borrow_books(
        BorrowRequest(
            member_id=sample_member.id,
            book_copy_ids=[sample_copies[0].id, sample_copies[1].id],
        )
    )


class TestRegistration:
    def test_every_tool_has_schema_and_handler(self):
        names = [tool["name"] for tool in circulation_tools]

        assert names == [
            "borrow_books",
            "return_loan",
            "return_loans",
            "return_by_code",
            "renew_loan",
            "generate_receipt",
            "clear_all_loans",
        ]
        for tool in circulation_tools:
            assert tool["inputSchema"]["type"] == "object"
            assert callable(tool["handler"])


@pytest.mark.asyncio
@pytest.mark.circulation
class TestBorrowBooks:
    async def test_borrow(self, mock_get_session, sample_member, sample_copies):
        result = await borrow_books_handler(
            {
                "member_id": sample_member.id,
                "book_copy_ids": [sample_copies[0].id, sample_copies[1].id],
                "checkout_date": "2025-06-01",
            }
        )

        assert result["success"] is True
        data = result["data"]
        assert data["transaction_id"] in result["message"]
        assert data["due_date"] == "2025-06-15"
        assert len(data["loans"]) == 2
        assert copy_status(mock_get_session, sample_copies[0].id) == "Checked Out"

    async def test_partial_failure(self, mock_get_session, sample_member, sample_copies):
        result = await borrow_books_handler(
            {"member_id": sample_member.id, "book_copy_ids": [sample_copies[0].id, 404]}
        )

        assert result["success"] is True
        assert result["data"]["failures"][0]["book_copy_id"] == 404
        assert "1 failed" in result["message"]

    async def test_nothing_borrowable(self, mock_get_session, borrowed, other_member):
        copy_id = borrowed.loans[0].book_copy_id

        result = await borrow_books_handler(
            {"member_id": other_member.id, "book_copy_ids": [copy_id]}
        )

        assert result["success"] is False
        assert result["data"]["loans"] == []

    async def test_unknown_member(self, mock_get_session, sample_copies):
        result = await borrow_books_handler(
            {"member_id": 999, "book_copy_ids": [sample_copies[0].id]}
        )

        assert result["success"] is False
        assert "999" in result["message"]
        assert result["data"] is None

    @pytest.mark.parametrize(
        "arguments",
        [
            {},
            {"member_id": 1, "book_copy_ids": []},
            {"member_id": "someone", "book_copy_ids": [1]},
        ],
    )
    async def test_invalid_arguments(self, mock_get_session, arguments):
        result = await borrow_books_handler(arguments)

        assert result["success"] is False
        assert result["message"].startswith("Invalid parameters")

    async def test_due_before_checkout(self, mock_get_session, sample_member, sample_copies):
        today = date.today()
        result = await borrow_books_handler(
            {
                "member_id": sample_member.id,
                "book_copy_ids": [sample_copies[0].id],
                "checkout_date": today.isoformat(),
                "due_date": (today - timedelta(days=1)).isoformat(),
            }
        )

        assert result["success"] is False
        assert copy_status(mock_get_session, sample_copies[0].id) == "Available"


@pytest.mark.asyncio
@pytest.mark.circulation
class TestReturns:
    async def test_return_loan(self, mock_get_session, borrowed):
        loan = borrowed.loans[0]

        result = await return_loan_handler({"loan_id": loan.id, "rating": 4, "note": "Clean"})

        assert result["success"] is True
        assert result["data"]["returned"] is True
        assert result["data"]["loan"]["rating"] == 4
        assert copy_status(mock_get_session, loan.book_copy_id) == "Available"

    async def test_return_twice_is_a_no_op(self, mock_get_session, borrowed):
        loan_id = borrowed.loans[0].id
        await return_loan_handler({"loan_id": loan_id, "condition": "Lost"})

        result = await return_loan_handler({"loan_id": loan_id})

        assert result["success"] is True
        assert result["data"]["already_returned"] is True
        assert result["data"]["copy_status"] == "Lost"

    async def test_unknown_loan(self, mock_get_session):
        result = await return_loan_handler({"loan_id": 31337})

        assert result["success"] is False
        assert "not found" in result["message"]

    async def test_bad_condition(self, mock_get_session, borrowed):
        result = await return_loan_handler({"loan_id": borrowed.loans[0].id, "condition": "Wet"})

        assert result["success"] is False
        assert result["message"].startswith("Invalid parameters")

    async def test_return_loans(self, mock_get_session, borrowed):
        first, second = borrowed.loans

        result = await return_loans_handler(
            {
                "items": [
                    {"loan_id": first.id, "condition": "Good"},
                    {"loan_id": second.id, "condition": "Damaged"},
                    {"loan_id": 404},
                ]
            }
        )

        assert result["success"] is True
        assert result["message"] == "Returned 2 book(s); 1 skipped"
        assert copy_status(mock_get_session, first.book_copy_id) == "Available"
        assert copy_status(mock_get_session, second.book_copy_id) == "Damaged"

    async def test_return_by_receipt_json(self, mock_get_session, sample_member, borrowed):
        code = {
            "t": borrowed.transaction_id,
            "m": sample_member.id,
            "l": [loan.id for loan in borrowed.loans],
            "type": "receipt",
        }

        result = await return_by_code_handler({"code": code})

        assert result["success"] is True
        assert result["data"]["returned_count"] == 2
        assert result["data"]["transaction_id"] == borrowed.transaction_id

    async def test_return_by_transaction_id(self, mock_get_session, borrowed):
        result = await return_by_code_handler({"code": borrowed.transaction_id})

        assert result["data"]["returned_count"] == 2

    async def test_return_by_code_skips_other_members(
        self, mock_get_session, borrowed, other_member
    ):
        loan_id = borrowed.loans[0].id

        result = await return_by_code_handler(
            {"code": {"m": other_member.id, "l": [loan_id]}}
        )

        assert result["success"] is False
        assert "different member" in result["data"]["failures"][0]["message"]
        assert mock_get_session.get(LoanDB, loan_id).return_date is None

    async def test_undecodable_code(self, mock_get_session):
        result = await return_by_code_handler({"code": "hello there"})

        assert result["success"] is False
        assert result["data"] is None


@pytest.mark.asyncio
@pytest.mark.circulation
class TestRenewLoan:
    async def test_renew_default_week(self, mock_get_session, borrowed):
        loan = borrowed.loans[0]

        result = await renew_loan_handler({"loan_id": loan.id})

        assert result["success"] is True
        assert result["data"]["due_date"] == (loan.due_date + timedelta(days=7)).isoformat()
        assert result["data"]["renewal_count"] == 1
        assert result["message"].endswith("(1 of 2 renewals used)")

    async def test_third_renewal_refused(self, mock_get_session, borrowed):
        loan_id = borrowed.loans[0].id
        await renew_loan_handler({"loan_id": loan_id, "days": 3})
        await renew_loan_handler({"loan_id": loan_id, "days": 3})

        result = await renew_loan_handler({"loan_id": loan_id, "days": 3})

        assert result["success"] is False
        assert "maximum of 2 renewals" in result["message"]

    async def test_returned_loan_refused(self, mock_get_session, borrowed):
        loan_id = borrowed.loans[0].id
        await return_loan_handler({"loan_id": loan_id})

        result = await renew_loan_handler({"loan_id": loan_id})

        assert result["success"] is False
        assert "already been returned" in result["message"]

    async def test_days_must_be_positive(self, mock_get_session, borrowed):
        result = await renew_loan_handler({"loan_id": borrowed.loans[0].id, "days": 0})

        assert result["success"] is False
        assert result["message"].startswith("Invalid parameters")


@pytest.mark.asyncio
class TestGenerateReceipt:
    async def test_by_transaction(self, mock_get_session, sample_member, borrowed):
        result = await generate_receipt_handler({"transaction_id": borrowed.transaction_id})

        assert result["success"] is True
        receipt = result["data"]["receipt"]
        assert receipt["transaction_id"] == borrowed.transaction_id
        assert receipt["member_name"] == sample_member.name
        assert len(receipt["lines"]) == 2
        assert receipt["qr_image"].startswith("data:image/png;base64,")
        assert "Noli Me Tangere" in result["data"]["text"]

    async def test_by_loan_ids(self, mock_get_session, borrowed):
        loan_id = borrowed.loans[1].id

        result = await generate_receipt_handler({"loan_ids": [loan_id]})

        assert result["success"] is True
        assert result["data"]["receipt"]["payload"]["l"] == [loan_id]

    async def test_loans_of_different_members(
        self, mock_get_session, borrowed, other_member, sample_copies
    ):
        theirs = LoanRepository(mock_get_session).borrow_books(
            BorrowRequest(member_id=other_member.id, book_copy_ids=[sample_copies[2].id])
        )

        result = await generate_receipt_handler(
            {"loan_ids": [borrowed.loans[0].id, theirs.loans[0].id]}
        )

        assert result["success"] is False
        assert "different members" in result["message"]

    async def test_needs_a_selector(self, mock_get_session):
        result = await generate_receipt_handler({})

        assert result["success"] is False
        assert "transaction_id or loan_ids" in result["message"]

    async def test_unknown_transaction(self, mock_get_session):
        result = await generate_receipt_handler({"transaction_id": "LOAN-1-2"})

        assert result["success"] is False
        assert "No loans found" in result["message"]


@pytest.mark.asyncio
class TestClearAllLoans:
    async def test_requires_confirmation(self, mock_get_session, borrowed):
        result = await clear_all_loans_handler({})

        assert result["success"] is False
        assert mock_get_session.query(LoanDB).count() == 2

    async def test_clears_and_resets(self, mock_get_session, borrowed):
        result = await clear_all_loans_handler({"confirm": True})

        assert result["success"] is True
        assert result["data"] == {"deleted_loans": 2, "reset_copies": 2}
        assert mock_get_session.query(LoanDB).count() == 0
        assert copy_status(mock_get_session, borrowed.loans[0].book_copy_id) == "Available"
