"""
Borrow receipts and their QR codes.

Every borrow action gets a transaction id shared by the loans it created.
The receipt printed for it carries a QR code whose payload lets the return
desk find those loans again:

    {"t": "LOAN-1718000000000-4821", "m": 7, "l": [31, 32], "type": "receipt", "batch": true}

When that payload is too large for a QR code the minimal form
``{"t", "m", "type"}`` is encoded instead, and the return path looks the
loans up by transaction id. Scanners in the field also produce older
payload shapes; ``decode_payload`` accepts all of them.
"""

import base64
import io
import json
import logging
import random
import re
import time
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from urllib.parse import unquote

import qrcode
from pydantic import BaseModel, Field
from qrcode.exceptions import DataOverflowError

from .config import get_config
from .models.loan import LoanRecord
from .models.member import Member

logger = logging.getLogger(__name__)

RECEIPT_TYPE = "receipt"
TRANSACTION_PREFIX = "LOAN-"

_ID_LIST_RE = re.compile(r"^\d+(\s*,\s*\d+)*$")
_TRANSACTION_RE = re.compile(r"^LOAN-[A-Za-z0-9-]+$")


class PayloadDecodeError(ValueError):
    """Raised when a scanned payload names no loans and no transaction."""


def generate_transaction_id() -> str:
    """``LOAN-<epoch milliseconds>-<4 random digits>``."""
    return f"{TRANSACTION_PREFIX}{int(time.time() * 1000)}-{random.randint(1000, 9999)}"


class ReceiptPayload(BaseModel):
    """The compact JSON stored in a receipt QR code."""

    t: str = Field(..., description="Transaction id")
    m: int = Field(..., description="Member id")
    l: list[int] = Field(default_factory=list, description="Loan ids")  # noqa: E741
    type: str = RECEIPT_TYPE
    batch: bool = False

    @classmethod
    def for_loans(
        cls, transaction_id: str, member_id: int, loan_ids: list[int]
    ) -> "ReceiptPayload":
        return cls(t=transaction_id, m=member_id, l=loan_ids, batch=len(loan_ids) > 1)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(), separators=(",", ":"))

    def minimal_json(self) -> str:
        return json.dumps({"t": self.t, "m": self.m, "type": self.type}, separators=(",", ":"))


class QRImage(BaseModel):
    data_url: str | None = Field(None, description="data:image/png;base64,... or None")
    encoded_text: str | None = None
    minimal: bool = Field(False, description="True when the fallback payload was encoded")
    warnings: list[str] = Field(default_factory=list)


def _render_qr_png(text: str, box_size: int, border: int) -> bytes:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=box_size,
        border=border,
    )
    qr.add_data(text)
    qr.make(fit=True)
    buffer = io.BytesIO()
    qr.make_image().save(buffer)
    return buffer.getvalue()


def _to_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def encode_qr(
    payload: ReceiptPayload, box_size: int | None = None, border: int | None = None
) -> QRImage:
    """
    Render a payload as a PNG data URL.

    Falls back to the minimal payload, then to no image at all; each step
    down adds a warning. Never raises for an encoding failure.
    """
    config = get_config()
    box_size = box_size or config.qr_box_size
    border = config.qr_border if border is None else border

    warnings = []
    for text, minimal in ((payload.to_json(), False), (payload.minimal_json(), True)):
        try:
            png = _render_qr_png(text, box_size, border)
        except (DataOverflowError, ValueError, OSError) as e:
            logger.warning(
                "QR encoding failed for %s payload: %s", "minimal" if minimal else "full", e
            )
            warnings.append(
                "Receipt QR code could not be generated"
                if minimal
                else "Full receipt payload too large for a QR code; encoded the transaction only"
            )
            continue
        return QRImage(
            data_url=_to_data_url(png), encoded_text=text, minimal=minimal, warnings=warnings
        )

    return QRImage(warnings=warnings)


class ReceiptLine(BaseModel):
    loan_id: int
    title: str
    author: str | None = None
    barcode: str | None = None
    location_code: str | None = None
    shelf_name: str | None = None


class Receipt(BaseModel):
    """Everything printed on a borrow receipt."""

    transaction_id: str
    member_id: int
    member_name: str
    member_email: str | None = None
    checkout_date: date
    due_date: date
    lines: list[ReceiptLine]
    payload: ReceiptPayload
    qr_image: str | None = None
    warnings: list[str] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=datetime.now)

    def render_text(self) -> str:
        """Plain-text receipt for printers without image support."""
        rows = [
            "BALANGHAY LIBRARY",
            "Borrow Receipt",
            "",
            f"Transaction: {self.transaction_id}",
            f"Member: {self.member_name} (#{self.member_id})",
            f"Checkout date: {self.checkout_date.isoformat()}",
            f"Due date: {self.due_date.isoformat()}",
            "",
            f"Books ({len(self.lines)}):",
        ]
        for index, line in enumerate(self.lines, start=1):
            rows.append(f"{index}. {line.title}")
            details = [
                f"Barcode: {line.barcode}" if line.barcode else None,
                f"Location: {line.location_code}" if line.location_code else None,
                f"Shelf: {line.shelf_name}" if line.shelf_name else None,
            ]
            details = [d for d in details if d]
            if details:
                rows.append("   " + " | ".join(details))
        rows.extend(["", "Please return the books on or before the due date."])
        rows.extend(f"Note: {w}" for w in self.warnings)
        return "\n".join(rows)


def build_receipt(member: Member, loans: list[LoanRecord]) -> Receipt:
    """
    Build the receipt for loans made in one borrow action.

    Raises:
        ValueError: If there are no loans
    """
    if not loans:
        raise ValueError("A receipt needs at least one loan")

    first = loans[0]
    transaction_id = first.transaction_id or f"{TRANSACTION_PREFIX}{first.id}"
    payload = ReceiptPayload.for_loans(transaction_id, member.id, [loan.id for loan in loans])
    image = encode_qr(payload)

    receipt = Receipt(
        transaction_id=transaction_id,
        member_id=member.id,
        member_name=member.name,
        member_email=member.email,
        checkout_date=min(loan.checkout_date for loan in loans),
        due_date=max(loan.due_date for loan in loans),
        lines=[
            ReceiptLine(
                loan_id=loan.id,
                title=loan.book_title or f"Copy #{loan.book_copy_id}",
                author=loan.book_author,
                barcode=loan.barcode,
                location_code=loan.location_code,
                shelf_name=loan.shelf_name,
            )
            for loan in loans
        ],
        payload=payload,
        qr_image=image.data_url,
        warnings=image.warnings,
    )
    logger.info("Built receipt for %s with %d book(s)", transaction_id, len(loans))
    return receipt


class DecodedPayload(BaseModel):
    loan_ids: list[int] = Field(default_factory=list)
    transaction_id: str | None = None
    member_id: int | None = None
    is_batch: bool = False


def _as_id(value) -> int:
    if isinstance(value, bool):
        raise PayloadDecodeError(f"Invalid loan id: {value!r}")
    if isinstance(value, int):
        loan_id = value
    elif isinstance(value, str) and value.strip().isdigit():
        loan_id = int(value.strip())
    else:
        raise PayloadDecodeError(f"Invalid loan id: {value!r}")
    if loan_id < 1:
        raise PayloadDecodeError(f"Invalid loan id: {value!r}")
    return loan_id


def _as_ids(values: Iterable) -> list[int]:
    return list(dict.fromkeys(_as_id(v) for v in values))


def _optional_member(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise PayloadDecodeError(f"Invalid member id: {value!r}") from e


def _decode_mapping(data: Mapping) -> DecodedPayload:
    transaction_id = data.get("t") or data.get("transactionId") or data.get("transaction_id")
    member_id = _optional_member(data.get("m", data.get("memberId", data.get("member_id"))))

    if "l" in data:
        loan_ids = _as_ids(data["l"] or [])
    elif "loansIds" in data:
        loan_ids = _as_ids(data["loansIds"] or [])
    elif "loanId" in data:
        loan_ids = [_as_id(data["loanId"])]
    elif "id" in data and "loan" in str(data.get("type", "")).lower():
        loan_ids = [_as_id(data["id"])]
    else:
        loan_ids = []

    if not loan_ids and not transaction_id:
        raise PayloadDecodeError("Payload names no loans and no transaction")

    return DecodedPayload(
        loan_ids=loan_ids,
        transaction_id=str(transaction_id) if transaction_id else None,
        member_id=member_id,
        is_batch=bool(data.get("batch")) or len(loan_ids) > 1,
    )


def decode_payload(raw: str | int | list | Mapping) -> DecodedPayload:
    """
    Decode a scanned receipt payload into loan ids or a transaction id.

    Accepted inputs:
    - receipt JSON ``{"t", "m", "l", ...}``
    - older JSON with ``loansIds``, ``loanId`` or ``id`` plus a loan ``type``
    - a JSON list of ids, or a list/int passed directly
    - URL-encoded versions of the above
    - ``"12,13,14"`` or ``"12"``
    - a bare transaction id ``LOAN-...``

    Raises:
        PayloadDecodeError: Anything else
    """
    if isinstance(raw, Mapping):
        return _decode_mapping(raw)
    if isinstance(raw, bool):
        raise PayloadDecodeError("Unsupported payload")
    if isinstance(raw, int):
        return DecodedPayload(loan_ids=[_as_id(raw)])
    if isinstance(raw, list):
        ids = _as_ids(raw)
        if not ids:
            raise PayloadDecodeError("Payload names no loans")
        return DecodedPayload(loan_ids=ids, is_batch=len(ids) > 1)
    if not isinstance(raw, str):
        raise PayloadDecodeError(f"Unsupported payload type: {type(raw).__name__}")

    text = raw.strip()
    if "%" in text:
        text = unquote(text).strip()
    if not text:
        raise PayloadDecodeError("Empty payload")

    if text[0] in "{[":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise PayloadDecodeError(f"Malformed JSON payload: {e.msg}") from e
        return decode_payload(data)

    if _ID_LIST_RE.match(text):
        ids = _as_ids(part for part in text.split(","))
        return DecodedPayload(loan_ids=ids, is_batch=len(ids) > 1)

    if _TRANSACTION_RE.match(text):
        return DecodedPayload(transaction_id=text)

    raise PayloadDecodeError("Unrecognized payload")
