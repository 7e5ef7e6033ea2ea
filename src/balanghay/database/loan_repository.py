"""
Loan repository: the loan lifecycle.

A loan moves a copy through this state machine:

    Available --borrow--> Checked Out --return(Good)--> Available
                                      --return(Damaged)--> Damaged
                                      --return(Lost)--> Lost

A copy is Checked Out exactly when it has one loan without a return date.
Every operation here keeps that true: borrowing inserts the loan and flips
the copy in the same commit, returning closes the loan and releases the copy
in the same commit. Renewing only moves the due date of an open loan.

Batch operations (borrowing several copies, returning several loans) are
sequences of single-item operations, each committed on its own. A failure
on one item is reported in the result and does not undo the others.
"""

import logging
import re
from datetime import date, datetime, timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..config import get_config
from ..database.schema import BookCopy as CopyDB
from ..database.schema import CopyConditionEnum, CopyStatusEnum, LoanStatusEnum
from ..database.schema import Loan as LoanDB
from ..database.schema import Member as MemberDB
from ..database.schema import ReturnConditionEnum
from ..database.session import safe_commit, safe_query
from ..models.loan import (
    BatchReturnResult,
    BorrowFailure,
    BorrowRequest,
    BorrowResult,
    ClearLoansResult,
    LoanFilters,
    LoanRecord,
    LoanStatus,
    ReturnFailure,
    ReturnItem,
    ReturnOutcome,
    TransactionSummary,
    derive_loan_status,
)
from ..receipts import TRANSACTION_PREFIX, decode_payload, generate_transaction_id
from .repository import ConflictError, InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)

# Copy status after a return, by the condition it came back in
COPY_STATUS_ON_RETURN = {
    ReturnConditionEnum.GOOD: CopyStatusEnum.AVAILABLE,
    ReturnConditionEnum.DAMAGED: CopyStatusEnum.DAMAGED,
    ReturnConditionEnum.LOST: CopyStatusEnum.LOST,
}

MAX_RENEWALS = 2
DEFAULT_RENEWAL_DAYS = 7

_SINGLE_LOAN_KEY_RE = re.compile(rf"^{TRANSACTION_PREFIX}(\d+)$")


def open_loan_clause():
    return (LoanDB.return_date.is_(None)) & (LoanDB.status != LoanStatusEnum.RETURNED.value)


class LoanRepository:
    """
    Borrowing, returning and listing loans.

    Not a BaseRepository: loans are never created or edited field by field,
    only through the lifecycle operations below.
    """

    def __init__(self, session: Session, loan_days: int | None = None):
        self.session = session
        self.loan_days = loan_days or get_config().default_loan_days

    # === Reads ===

    def _base_query(self):
        return select(LoanDB).options(
            joinedload(LoanDB.book_copy).joinedload(CopyDB.book),
            joinedload(LoanDB.book_copy).joinedload(CopyDB.shelf),
            joinedload(LoanDB.member),
        )

    def _load(self, loan_id: int) -> LoanDB:
        loan = safe_query(
            self.session,
            lambda s: s.execute(self._base_query().where(LoanDB.id == loan_id))
            .unique()
            .scalar_one_or_none(),
            "Failed to get loan",
        )
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan

    @staticmethod
    def _to_record(loan: LoanDB, now: datetime | None = None) -> LoanRecord:
        copy = loan.book_copy
        book = copy.book if copy else None
        return LoanRecord(
            id=loan.id,
            book_copy_id=loan.book_copy_id,
            member_id=loan.member_id,
            checkout_date=loan.checkout_date,
            due_date=loan.due_date,
            return_date=loan.return_date,
            status=loan.status,
            display_status=derive_loan_status(loan.status, loan.due_date, now),
            return_condition=loan.return_condition,
            notes=loan.notes,
            rating=loan.rating,
            review=loan.review,
            transaction_id=loan.transaction_id,
            renewal_count=loan.renewal_count or 0,
            book_id=book.id if book else None,
            book_title=book.title if book else None,
            book_author=book.author if book else None,
            barcode=copy.barcode if copy else None,
            location_code=copy.location_code if copy else None,
            shelf_name=copy.shelf.name if copy and copy.shelf else None,
            member_name=loan.member.name if loan.member else None,
        )

    def get_loan(self, loan_id: int) -> LoanRecord:
        return self._to_record(self._load(loan_id))

    def list_loans(self, filters: LoanFilters | None = None) -> list[LoanRecord]:
        """
        List loans, newest first.

        Overdue and Borrowed filters are evaluated against today's date, the
        same rule ``derive_loan_status`` applies.
        """
        filters = filters or LoanFilters()
        today = date.today()
        stmt = self._base_query()

        if filters.member_id is not None:
            stmt = stmt.where(LoanDB.member_id == filters.member_id)
        if filters.book_id is not None:
            stmt = stmt.join(CopyDB, LoanDB.book_copy_id == CopyDB.id).where(
                CopyDB.book_id == filters.book_id
            )
        if filters.transaction_id:
            stmt = stmt.where(LoanDB.transaction_id == filters.transaction_id)
        if filters.status == LoanStatus.RETURNED:
            stmt = stmt.where(~open_loan_clause())
        elif filters.status == LoanStatus.BORROWED:
            stmt = stmt.where(open_loan_clause(), LoanDB.due_date >= today)
        elif filters.status == LoanStatus.OVERDUE:
            stmt = stmt.where(open_loan_clause(), LoanDB.due_date < today)
        if filters.active_only:
            stmt = stmt.where(open_loan_clause())
        if filters.overdue_only:
            stmt = stmt.where(open_loan_clause(), LoanDB.due_date < today)
        if filters.due_within_days is not None:
            horizon = today + timedelta(days=filters.due_within_days)
            stmt = stmt.where(open_loan_clause(), LoanDB.due_date.between(today, horizon))

        stmt = stmt.order_by(LoanDB.checkout_date.desc(), LoanDB.id.desc())
        if filters.limit:
            stmt = stmt.limit(filters.limit)

        rows = safe_query(
            self.session,
            lambda s: s.execute(stmt).unique().scalars().all(),
            "Failed to list loans",
        )
        now = datetime.now()
        return [self._to_record(row, now) for row in rows]

    def get_transaction_loans(self, transaction_id: str) -> list[LoanRecord]:
        """
        All loans created by one borrow action, oldest first.

        Raises:
            NotFoundError: No loan carries this transaction id
        """
        loans = list(reversed(self.list_loans(LoanFilters(transaction_id=transaction_id))))
        if not loans:
            # Loans without a transaction id are listed under LOAN-<loan id>
            match = _SINGLE_LOAN_KEY_RE.match(transaction_id)
            if match:
                loan = self.session.get(LoanDB, int(match.group(1)))
                if loan is not None and loan.transaction_id is None:
                    return [self.get_loan(loan.id)]
            raise NotFoundError(f"No loans found for transaction {transaction_id}")
        return loans

    def list_transactions(self, member_id: int | None = None) -> list[TransactionSummary]:
        """Group loans by transaction id, newest transaction first."""
        groups: dict[str, list[LoanRecord]] = {}
        for loan in self.list_loans(LoanFilters(member_id=member_id)):
            key = loan.transaction_id or f"{TRANSACTION_PREFIX}{loan.id}"
            groups.setdefault(key, []).append(loan)

        summaries = []
        for transaction_id, loans in groups.items():
            loans.sort(key=lambda loan: loan.id)
            titles = [loan.book_title or f"Copy #{loan.book_copy_id}" for loan in loans]
            if len(titles) == 1:
                title = titles[0]
            else:
                title = f"{len(titles)} books: {', '.join(titles[:2])}"
                if len(titles) > 2:
                    title += "..."

            statuses = {loan.display_status for loan in loans}
            if LoanStatus.OVERDUE.value in statuses:
                display_status = LoanStatus.OVERDUE
            elif LoanStatus.BORROWED.value in statuses:
                display_status = LoanStatus.BORROWED
            else:
                display_status = LoanStatus.RETURNED

            summaries.append(
                TransactionSummary(
                    transaction_id=transaction_id,
                    member_id=loans[0].member_id,
                    member_name=loans[0].member_name,
                    checkout_date=loans[0].checkout_date,
                    due_date=max(loan.due_date for loan in loans),
                    loan_ids=[loan.id for loan in loans],
                    book_count=len(loans),
                    title=title,
                    display_status=display_status,
                )
            )
        return summaries

    # === Borrowing ===

    def borrow_books(self, request: BorrowRequest) -> BorrowResult:
        """
        Lend one or more copies to a member under a new transaction id.

        The member and dates are validated before anything is written. Each
        copy is then handled on its own: a missing copy or a copy that is
        not Available becomes a failure item; every other copy gets a
        Borrowed loan and is marked Checked Out, committed immediately.

        Raises:
            NotFoundError: Unknown member
            InvalidRequestError: Inactive member, no copies, due before checkout
        """
        member = safe_query(
            self.session, lambda s: s.get(MemberDB, request.member_id), "Failed to get member"
        )
        if member is None:
            raise NotFoundError(f"Member {request.member_id} not found")
        if not member.is_active:
            raise InvalidRequestError(f"Member {member.name} is not active")
        if not request.book_copy_ids:
            raise InvalidRequestError("No book copies selected")

        checkout_date = request.checkout_date or date.today()
        due_date = request.due_date or checkout_date + timedelta(days=self.loan_days)
        if due_date < checkout_date:
            raise InvalidRequestError("Due date must be on or after the checkout date")

        result = BorrowResult(
            transaction_id=generate_transaction_id(),
            member_id=member.id,
            checkout_date=checkout_date,
            due_date=due_date,
        )

        for copy_id in request.book_copy_ids:
            failure = self._borrow_one(result, copy_id)
            if failure is not None:
                result.failures.append(failure)

        logger.info(
            "Borrow %s for member %d: %d loan(s), %d failure(s)",
            result.transaction_id,
            member.id,
            len(result.loans),
            len(result.failures),
        )
        return result

    def _borrow_one(self, result: BorrowResult, copy_id: int) -> BorrowFailure | None:
        copy = self.session.get(CopyDB, copy_id)
        if copy is None:
            return BorrowFailure(
                book_copy_id=copy_id, reason="not_found", message=f"Copy {copy_id} not found"
            )
        if copy.status != CopyStatusEnum.AVAILABLE.value:
            return BorrowFailure(
                book_copy_id=copy_id,
                reason="conflict",
                message=f"Copy {copy.barcode} is not available ({copy.status})",
            )

        open_loans = self.session.execute(
            select(func.count()).select_from(LoanDB).where(
                LoanDB.book_copy_id == copy_id, open_loan_clause()
            )
        ).scalar()
        if open_loans:
            return BorrowFailure(
                book_copy_id=copy_id,
                reason="conflict",
                message=f"Copy {copy.barcode} already has an open loan",
            )

        loan = LoanDB(
            book_copy_id=copy.id,
            member_id=result.member_id,
            checkout_date=result.checkout_date,
            due_date=result.due_date,
            status=LoanStatusEnum.BORROWED.value,
            transaction_id=result.transaction_id,
        )
        copy.status = CopyStatusEnum.CHECKED_OUT
        self.session.add(loan)

        try:
            self.session.flush()
            safe_commit(self.session, "borrow book copy")
        except (SQLAlchemyError, ValueError) as e:
            self.session.rollback()
            logger.warning("Borrowing copy %d failed: %s", copy_id, e)
            return BorrowFailure(
                book_copy_id=copy_id, reason="error", message=f"Copy {copy_id} could not be lent"
            )

        result.loans.append(self.get_loan(loan.id))
        return None

    # === Renewing ===

    def renew_loan(self, loan_id: int, days: int = DEFAULT_RENEWAL_DAYS) -> LoanRecord:
        """
        Move the due date of an open loan ``days`` later.

        A loan can be renewed at most MAX_RENEWALS times, and only while it
        is not yet overdue.

        Raises:
            NotFoundError: Unknown loan
            InvalidRequestError: Loan already returned, or days below 1
            ConflictError: Loan overdue or out of renewals
        """
        if days < 1:
            raise InvalidRequestError("Renewal must add at least one day")

        loan = self._load(loan_id)
        if not loan.is_open:
            raise InvalidRequestError(f"Loan {loan_id} has already been returned")
        if loan.due_date < date.today():
            raise ConflictError(f"Loan {loan_id} is overdue and cannot be renewed")
        renewals = loan.renewal_count or 0
        if renewals >= MAX_RENEWALS:
            raise ConflictError(
                f"Loan {loan_id} has reached the maximum of {MAX_RENEWALS} renewals"
            )

        loan.due_date = loan.due_date + timedelta(days=days)
        loan.renewal_count = renewals + 1
        safe_commit(self.session, "renew loan")
        logger.info(
            "Renewed loan %d until %s (renewal %d)", loan_id, loan.due_date, loan.renewal_count
        )
        return self._to_record(loan)

    # === Returning ===

    def return_loan(
        self,
        loan_id: int,
        condition: ReturnConditionEnum | str = ReturnConditionEnum.GOOD,
        note: str | None = None,
        rating: int | None = None,
        review: str | None = None,
    ) -> ReturnOutcome:
        """
        Close a loan and release its copy.

        Returning a loan that is already closed changes nothing and is
        reported with ``already_returned=True``.

        Raises:
            NotFoundError: Unknown loan
            InvalidRequestError: Unknown condition or rating outside 1..5
        """
        try:
            condition = ReturnConditionEnum(condition)
        except ValueError as e:
            raise InvalidRequestError(f"Unknown return condition: {condition}") from e
        if rating is not None and not 1 <= rating <= 5:
            raise InvalidRequestError("Rating must be between 1 and 5")

        loan = self._load(loan_id)

        if not loan.is_open:
            logger.info("Loan %d was already returned; nothing changed", loan_id)
            return ReturnOutcome(
                loan_id=loan_id,
                returned=False,
                already_returned=True,
                condition=loan.return_condition,
                copy_status=loan.book_copy.status if loan.book_copy else None,
                message=f"Loan {loan_id} was already returned",
                loan=self._to_record(loan),
            )

        copy_status = COPY_STATUS_ON_RETURN[condition]

        loan.return_date = datetime.now()
        loan.status = LoanStatusEnum.RETURNED.value
        loan.return_condition = condition.value
        if note:
            loan.notes = f"{loan.notes}\n{note}" if loan.notes else note
        if rating is not None:
            loan.rating = rating
        if review:
            loan.review = review

        copy = loan.book_copy
        copy.status = copy_status
        if condition == ReturnConditionEnum.DAMAGED:
            copy.condition = CopyConditionEnum.DAMAGED.value

        safe_commit(self.session, "return loan")
        logger.info(
            "Returned loan %d (%s); copy %s is now %s",
            loan_id,
            condition.value,
            copy.barcode,
            copy_status.value,
        )

        return ReturnOutcome(
            loan_id=loan_id,
            returned=True,
            condition=condition.value,
            copy_status=copy_status.value,
            message=f"Returned '{copy.book.title}' ({copy_status.value})",
            loan=self._to_record(loan),
        )

    def _return_item(self, result: BatchReturnResult, item: ReturnItem) -> None:
        try:
            outcome = self.return_loan(
                item.loan_id, item.condition, item.note, item.rating, item.review
            )
        except (NotFoundError, InvalidRequestError) as e:
            result.failures.append(ReturnFailure(loan_id=item.loan_id, message=str(e)))
            return
        except ValueError as e:
            # safe_commit already rolled back
            logger.warning("Returning loan %d failed: %s", item.loan_id, e)
            result.failures.append(
                ReturnFailure(
                    loan_id=item.loan_id, message=f"Loan {item.loan_id} could not be returned"
                )
            )
            return

        result.outcomes.append(outcome)
        if outcome.returned:
            result.returned_count += 1

    def return_loans(self, items: list[ReturnItem]) -> BatchReturnResult:
        """Return several loans, each on its own."""
        result = BatchReturnResult()
        for item in items:
            self._return_item(result, item)
        logger.info(
            "Batch return: %d returned, %d skipped", result.returned_count, len(result.failures)
        )
        return result

    def return_by_code(self, payload) -> BatchReturnResult:
        """
        Return the loans named by a scanned receipt payload.

        Loans come from the payload's loan ids, or from its transaction id
        when it carries no ids. Unknown loans and loans owned by a member
        other than the payload's are skipped with a message; loans already
        returned are reported as such. Everything else comes back Good.

        Raises:
            PayloadDecodeError: The payload cannot be decoded
            NotFoundError: A transaction-only payload matches no loans
        """
        decoded = decode_payload(payload)

        if decoded.loan_ids:
            loan_ids = decoded.loan_ids
        else:
            loan_ids = [loan.id for loan in self.get_transaction_loans(decoded.transaction_id)]

        result = BatchReturnResult(
            transaction_id=decoded.transaction_id, member_id=decoded.member_id
        )
        for loan_id in loan_ids:
            loan = self.session.get(LoanDB, loan_id)
            if loan is None:
                result.failures.append(
                    ReturnFailure(loan_id=loan_id, message=f"Loan {loan_id} not found")
                )
                continue
            if decoded.member_id is not None and loan.member_id != decoded.member_id:
                result.failures.append(
                    ReturnFailure(
                        loan_id=loan_id, message=f"Loan {loan_id} belongs to a different member"
                    )
                )
                continue
            self._return_item(result, ReturnItem(loan_id=loan_id))

        logger.info(
            "Return by code (%s): %d returned, %d skipped",
            decoded.transaction_id or ",".join(map(str, loan_ids)),
            result.returned_count,
            len(result.failures),
        )
        return result

    # === Administration ===

    def clear_all_loans(self) -> ClearLoansResult:
        """
        Delete every loan and put every Checked Out copy back to Available.

        Destructive; the tool layer asks for explicit confirmation.
        """
        deleted = self.session.execute(delete(LoanDB)).rowcount
        reset = self.session.execute(
            update(CopyDB)
            .where(CopyDB.status == CopyStatusEnum.CHECKED_OUT.value)
            .values(status=CopyStatusEnum.AVAILABLE.value, updated_at=datetime.now())
        ).rowcount
        safe_commit(self.session, "clear all loans")
        # Bulk statements bypass the identity map
        self.session.expire_all()

        logger.warning("Cleared %d loan(s), reset %d copy(ies) to Available", deleted, reset)
        return ClearLoansResult(deleted_loans=deleted or 0, reset_copies=reset or 0)
