"""Record schemas and the local SQLite record store."""

from .schemas import (
    Borrower,
    BorrowRequest,
    BorrowRequestCreate,
    Item,
    ItemStatus,
    Library,
    Loan,
    LoanStatus,
    Reminder,
    ReminderCreate,
    ReminderType,
    RequestStatus,
)

__all__ = [
    "Borrower",
    "BorrowRequest",
    "BorrowRequestCreate",
    "Item",
    "ItemStatus",
    "Library",
    "Loan",
    "LoanStatus",
    "Reminder",
    "ReminderCreate",
    "ReminderType",
    "RequestStatus",
]
