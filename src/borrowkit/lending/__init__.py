"""Borrow lifecycle module.

Provides functionality for:
- Submitting borrow requests (procedure first, direct writes as fallback)
- Scheduling return reminders for approved loans
- Approving, declining and returning from an owner's view
- Running best-effort side effects in the background
- Refusing duplicate triggers of an action still in flight
"""

from .actions import Confirmation, LifecycleActions
from .errors import (
    ActionInProgressError,
    BorrowerRecordError,
    ItemUnavailableError,
    LendingError,
    SubmissionError,
)
from .reminders import ReminderScheduler, build_reminders
from .submitter import BorrowRequestSubmitter
from .tasks import BestEffortRunner, InFlightGuard

__all__ = [
    "ActionInProgressError",
    "BestEffortRunner",
    "BorrowerRecordError",
    "BorrowRequestSubmitter",
    "Confirmation",
    "InFlightGuard",
    "ItemUnavailableError",
    "LendingError",
    "LifecycleActions",
    "ReminderScheduler",
    "SubmissionError",
    "build_reminders",
]
