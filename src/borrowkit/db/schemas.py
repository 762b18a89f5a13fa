"""Pydantic schemas for marketplace records.

Records arrive from the backend as JSON objects (RPC results, collection
rows, realtime payloads). These schemas validate them and give the rest of
the code typed attribute access. Unknown fields are ignored.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ItemStatus(str, Enum):
    """Availability of an item."""

    AVAILABLE = "available"
    BORROWED = "borrowed"
    UNAVAILABLE = "unavailable"


class RequestStatus(str, Enum):
    """Status of a borrow request."""

    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class LoanStatus(str, Enum):
    """Status of a loan. ``late`` is computed server-side."""

    ACTIVE = "active"
    LATE = "late"
    RETURNED = "returned"


class ReminderType(str, Enum):
    """Stage in a loan's reminder sequence."""

    CONFIRMATION = "confirmation"
    UPCOMING = "upcoming"
    DUE_TODAY = "due_today"
    OVERDUE_1D = "overdue_1d"
    OVERDUE_3D = "overdue_3d"
    OVERDUE_7D = "overdue_7d"


class Record(BaseModel):
    """Base for every stored record."""

    model_config = ConfigDict(from_attributes=True, extra="ignore", use_enum_values=False)

    id: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Library(Record):
    """A collection of items owned by one user."""

    owner_id: Optional[str] = None
    name: str = ""
    slug: Optional[str] = None


class Item(Record):
    """A lendable object."""

    library_id: str
    name: str = ""
    status: ItemStatus = ItemStatus.AVAILABLE
    max_borrow_days: Optional[int] = None


class Borrower(Record):
    """An unauthenticated borrower, identified by phone."""

    phone: str
    name: str


class BorrowRequest(Record):
    """A borrower's ask to borrow an item."""

    item_id: str
    borrower_id: str
    message: Optional[str] = None
    return_by: Optional[str] = None
    private_possession: bool = False
    status: RequestStatus = RequestStatus.PENDING


class Loan(Record):
    """An approved borrowing."""

    item_id: str
    borrower_id: str
    request_id: Optional[str] = None
    borrowed_at: Optional[str] = None
    return_by: Optional[str] = None
    returned_at: Optional[str] = None
    status: LoanStatus = LoanStatus.ACTIVE
    notes: Optional[str] = None
    private_possession: bool = False


class Reminder(Record):
    """A pre-rendered message tied to a loan's timeline."""

    loan_id: str
    reminder_type: ReminderType
    scheduled_for: str
    message: str
    sent_at: Optional[str] = None


class BorrowRequestCreate(BaseModel):
    """Schema for submitting a borrow request."""

    item_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=3, max_length=50)
    message: Optional[str] = None
    return_by: Optional[str] = None
    private_possession: bool = False


class ReminderCreate(BaseModel):
    """Schema for persisting one reminder."""

    loan_id: str
    reminder_type: ReminderType
    scheduled_for: str
    message: str

    def to_record(self) -> dict:
        """Body sent to the ``reminders`` collection."""
        return self.model_dump(mode="json")
