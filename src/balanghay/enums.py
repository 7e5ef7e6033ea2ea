"""Status and role vocabularies shared by the ORM schema and the pydantic models."""

import enum


class CopyStatusEnum(str, enum.Enum):
    """Circulation status of a single book copy."""

    AVAILABLE = "Available"
    CHECKED_OUT = "Checked Out"
    PROCESSING = "Processing"
    LOST = "Lost"
    DAMAGED = "Damaged"
    ON_HOLD = "On Hold"


class CopyConditionEnum(str, enum.Enum):
    """Physical condition of a copy."""

    NEW = "New"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"
    DAMAGED = "Damaged"


class MemberStatusEnum(str, enum.Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class LoanStatusEnum(str, enum.Enum):
    """Stored loan status. Overdue is display-only and never written."""

    BORROWED = "Borrowed"
    RETURNED = "Returned"


class ReturnConditionEnum(str, enum.Enum):
    """Condition recorded when a loan is closed."""

    GOOD = "Good"
    DAMAGED = "Damaged"
    LOST = "Lost"


class UserRoleEnum(str, enum.Enum):
    ADMIN = "admin"
    LIBRARIAN = "librarian"
    STAFF = "staff"


class UserStatusEnum(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"

