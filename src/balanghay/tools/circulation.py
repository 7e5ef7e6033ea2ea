"""
Circulation tools: borrowing, returning, receipts and the loan reset.

1. borrow_books: one or more copies for one member under a transaction id
2. return_loan / return_loans: close loans with a return condition
3. return_by_code: close the loans named by a scanned receipt payload
4. renew_loan: push the due date of an open loan back
5. generate_receipt: receipt data, printable text and QR image for a borrow
6. clear_all_loans: administrative reset, requires ``confirm=true``

Batch tools work item by item: one bad copy or loan does not undo the
others, and the response lists what succeeded and what failed.
"""

import logging
from datetime import date
from typing import Any

from pydantic import BaseModel, Field, model_validator

from ..database.loan_repository import MAX_RENEWALS, LoanRepository
from ..database.member_repository import MemberRepository
from ..database.repository import InvalidRequestError
from ..database.session import get_session
from ..enums import ReturnConditionEnum
from ..models.loan import BorrowRequest, RenewRequest, ReturnItem
from ..receipts import build_receipt
from .common import tool_handler, tool_response

logger = logging.getLogger(__name__)


# =============================================================================
# BORROW
# =============================================================================


class BorrowBooksInput(BaseModel):
    """Arguments for borrow_books."""

    member_id: int = Field(..., description="ID of the borrowing member", examples=[1])
    book_copy_ids: list[int] = Field(
        ...,
        min_length=1,
        description="Copies to lend; every copy must be Available",
        examples=[[3], [3, 7, 12]],
    )
    checkout_date: date | None = Field(None, description="Defaults to today")
    due_date: date | None = Field(
        None, description="Defaults to checkout date plus the configured loan period"
    )


@tool_handler("borrow_books")
async def borrow_books_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """
    Lend copies to a member.

    Every created loan shares one transaction id. Copies that cannot be
    lent are reported under ``failures`` with a reason; success is true
    when at least one loan was created.
    """
    params = BorrowBooksInput.model_validate(arguments)
    request = BorrowRequest.model_validate(params.model_dump())

    with get_session() as session:
        result = LoanRepository(session).borrow_books(request)

    return tool_response(result.success, result.message, result)


# =============================================================================
# RETURN
# =============================================================================


class ReturnLoanInput(BaseModel):
    loan_id: int = Field(..., description="Loan to close", examples=[12])
    condition: ReturnConditionEnum = Field(
        ReturnConditionEnum.GOOD,
        description="Good puts the copy back on the shelf; Damaged and Lost take it out",
    )
    note: str | None = Field(None, max_length=2000, description="Appended to the loan notes")
    rating: int | None = Field(None, ge=1, le=5, description="Optional 1-5 rating of the book")
    review: str | None = Field(None, max_length=5000)


@tool_handler("return_loan")
async def return_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = ReturnLoanInput.model_validate(arguments)

    with get_session() as session:
        outcome = LoanRepository(session).return_loan(
            params.loan_id,
            condition=params.condition,
            note=params.note,
            rating=params.rating,
            review=params.review,
        )

    return tool_response(True, outcome.message, outcome)


class ReturnLoansInput(BaseModel):
    items: list[ReturnItem] = Field(
        ...,
        min_length=1,
        description="Loans to close, each with its own condition",
        examples=[[{"loan_id": 1, "condition": "Good"}, {"loan_id": 2, "condition": "Damaged"}]],
    )


@tool_handler("return_loans")
async def return_loans_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = ReturnLoansInput.model_validate(arguments)

    with get_session() as session:
        result = LoanRepository(session).return_loans(params.items)

    return tool_response(result.success, result.message, result)


class ReturnByCodeInput(BaseModel):
    code: str | int | list[int] | dict[str, Any] = Field(
        ...,
        description=(
            "Scanned receipt payload: receipt JSON, a transaction id such as "
            "LOAN-1700000000000-1234, a loan id, or a comma separated list of loan ids"
        ),
        examples=['{"t":"LOAN-1700000000000-1234","m":1,"l":[4,5],"type":"receipt"}', "4,5"],
    )


@tool_handler("return_by_code")
async def return_by_code_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Return everything a receipt names, in Good condition."""
    params = ReturnByCodeInput.model_validate(arguments)

    with get_session() as session:
        result = LoanRepository(session).return_by_code(params.code)

    return tool_response(result.success, result.message, result)


# =============================================================================
# RENEW
# =============================================================================


@tool_handler("renew_loan")
async def renew_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = RenewRequest.model_validate(arguments)

    with get_session() as session:
        loan = LoanRepository(session).renew_loan(params.loan_id, params.days)

    return tool_response(
        True,
        f"Loan {loan.id} renewed until {loan.due_date.isoformat()} "
        f"({loan.renewal_count} of {MAX_RENEWALS} renewals used)",
        loan,
    )


# =============================================================================
# RECEIPT
# =============================================================================


class GenerateReceiptInput(BaseModel):
    transaction_id: str | None = Field(
        None, description="Transaction to print", examples=["LOAN-1700000000000-1234"]
    )
    loan_ids: list[int] | None = Field(
        None, min_length=1, description="Loans to print when no transaction id is given"
    )

    @model_validator(mode="after")
    def one_selector(self) -> "GenerateReceiptInput":
        if not self.transaction_id and not self.loan_ids:
            raise ValueError("Provide transaction_id or loan_ids")
        return self


@tool_handler("generate_receipt")
async def generate_receipt_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """
    Receipt for one borrow action.

    ``data.receipt`` holds the structured receipt (with the QR image as a
    PNG data URL when it could be rendered) and ``data.text`` the
    printable version.
    """
    params = GenerateReceiptInput.model_validate(arguments)

    with get_session() as session:
        loans_repo = LoanRepository(session)
        if params.transaction_id:
            loans = loans_repo.get_transaction_loans(params.transaction_id)
        else:
            loans = [loans_repo.get_loan(loan_id) for loan_id in dict.fromkeys(params.loan_ids)]

        member_ids = {loan.member_id for loan in loans}
        if len(member_ids) > 1:
            raise InvalidRequestError("A receipt cannot cover loans of different members")
        member = MemberRepository(session).get(member_ids.pop())

    receipt = build_receipt(member, loans)
    message = f"Receipt for {receipt.transaction_id} ({len(receipt.lines)} book(s))"
    if receipt.warnings:
        message += "; " + "; ".join(receipt.warnings)
    return tool_response(True, message, {"receipt": receipt, "text": receipt.render_text()})


# =============================================================================
# ADMINISTRATION
# =============================================================================


class ClearAllLoansInput(BaseModel):
    confirm: bool = Field(
        False, description="Must be true; deletes every loan record in the database"
    )


@tool_handler("clear_all_loans")
async def clear_all_loans_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = ClearAllLoansInput.model_validate(arguments)
    if not params.confirm:
        return tool_response(False, "Refusing to clear loans without confirm=true")

    with get_session() as session:
        result = LoanRepository(session).clear_all_loans()

    return tool_response(True, result.message, result)


# =============================================================================
# TOOL REGISTRATION
# =============================================================================

borrow_books = {
    "name": "borrow_books",
    "description": (
        "Borrow one or more book copies for a member. All loans from one call share a "
        "transaction id. Only Available copies can be borrowed."
    ),
    "inputSchema": BorrowBooksInput.model_json_schema(),
    "handler": borrow_books_handler,
}

return_loan = {
    "name": "return_loan",
    "description": (
        "Return a single loan. Condition Good makes the copy Available again; Damaged "
        "and Lost mark the copy accordingly. Returning an already returned loan is a no-op."
    ),
    "inputSchema": ReturnLoanInput.model_json_schema(),
    "handler": return_loan_handler,
}

return_loans = {
    "name": "return_loans",
    "description": "Return several loans at once, each with its own condition, note and rating.",
    "inputSchema": ReturnLoansInput.model_json_schema(),
    "handler": return_loans_handler,
}

return_by_code = {
    "name": "return_by_code",
    "description": (
        "Return the loans named by a scanned receipt QR code or transaction id. Loans of "
        "other members and unknown loans are skipped."
    ),
    "inputSchema": ReturnByCodeInput.model_json_schema(),
    "handler": return_by_code_handler,
}

renew_loan = {
    "name": "renew_loan",
    "description": (
        "Extend the due date of an open loan by a number of days (default 7). Overdue "
        "loans cannot be renewed and a loan can be renewed at most twice."
    ),
    "inputSchema": RenewRequest.model_json_schema(),
    "handler": renew_loan_handler,
}

generate_receipt = {
    "name": "generate_receipt",
    "description": (
        "Build the borrow receipt for a transaction id or a list of loan ids, including a "
        "QR code that return_by_code accepts."
    ),
    "inputSchema": GenerateReceiptInput.model_json_schema(),
    "handler": generate_receipt_handler,
}

clear_all_loans = {
    "name": "clear_all_loans",
    "description": (
        "Delete every loan and reset checked out copies to Available. Requires confirm=true."
    ),
    "inputSchema": ClearAllLoansInput.model_json_schema(),
    "handler": clear_all_loans_handler,
}

circulation_tools = [
    borrow_books,
    return_loan,
    return_loans,
    return_by_code,
    renew_loan,
    generate_receipt,
    clear_all_loans,
]
