"""Reminder scheduling for approved loans.

When a loan is approved, one reminder record per stage of the return
timeline is created. A delivery worker outside this package picks them up
and sends them. Messages are rendered here, at schedule time.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from ..api.records import RecordStore
from ..db.schemas import ReminderCreate, ReminderType
from ..logger import logger
from ..utils import Timestamp, format_day, parse_timestamp, to_iso, utcnow

APP_NAME = "Shareborough"

# Offsets from the due date for the stages that follow it
OVERDUE_STAGES = (
    (ReminderType.OVERDUE_1D, 1),
    (ReminderType.OVERDUE_3D, 3),
    (ReminderType.OVERDUE_7D, 7),
)
UPCOMING_LEAD = timedelta(days=2)


def _message(
    reminder_type: ReminderType,
    item_name: str,
    owner_name: str,
    borrower_name: str,
    due: Optional[datetime],
) -> str:
    if reminder_type == ReminderType.CONFIRMATION:
        return_clause = f" Please return by {format_day(due)}." if due else ""
        return (
            f'Hi {borrower_name}! You\'re borrowing "{item_name}" from {owner_name}.'
            f"{return_clause} Thanks for using {APP_NAME}!"
        )
    if reminder_type == ReminderType.UPCOMING:
        return f'Friendly reminder: "{item_name}" is due back to {owner_name} in 2 days!'
    if reminder_type == ReminderType.DUE_TODAY:
        return f'Today\'s the day! Time to return "{item_name}" to {owner_name}. Thanks!'
    if reminder_type == ReminderType.OVERDUE_1D:
        return f'"{item_name}" was due yesterday — please return to {owner_name} when you can!'
    if reminder_type == ReminderType.OVERDUE_3D:
        return f'"{item_name}" is 3 days overdue. {owner_name} would appreciate it back!'
    return f'Hey, "{item_name}" is a week overdue now. Please return to {owner_name}.'


def build_reminders(
    loan_id: str,
    item_name: str,
    owner_name: str,
    borrower_name: str,
    return_by: Optional[Timestamp],
    now: datetime,
) -> list[ReminderCreate]:
    """Compute the reminder sequence for a loan.

    A confirmation is always due ``now``. With a due date, the sequence adds
    ``upcoming`` two days before it (only if that is still ahead of
    ``now``), ``due_today`` at the due date, and the three overdue stages
    after it.

    Example:
        >>> now = parse_timestamp("2026-03-01T12:00:00Z")
        >>> len(build_reminders("l1", "Drill", "Ann", "Bo", None, now))
        1
        >>> len(build_reminders("l1", "Drill", "Ann", "Bo", now + timedelta(days=14), now))
        6
        >>> len(build_reminders("l1", "Drill", "Ann", "Bo", now + timedelta(days=1), now))
        5
    """
    due = parse_timestamp(return_by)

    def reminder(reminder_type: ReminderType, at: datetime) -> ReminderCreate:
        return ReminderCreate(
            loan_id=loan_id,
            reminder_type=reminder_type,
            scheduled_for=to_iso(at),
            message=_message(reminder_type, item_name, owner_name, borrower_name, due),
        )

    reminders = [reminder(ReminderType.CONFIRMATION, now)]
    if due is None:
        return reminders

    if due - UPCOMING_LEAD > now:
        reminders.append(reminder(ReminderType.UPCOMING, due - UPCOMING_LEAD))
    reminders.append(reminder(ReminderType.DUE_TODAY, due))
    for reminder_type, days in OVERDUE_STAGES:
        reminders.append(reminder(reminder_type, due + timedelta(days=days)))
    return reminders


class ReminderScheduler:
    """Persists the reminder sequence for a newly approved loan."""

    def __init__(self, store: RecordStore, clock: Callable[[], datetime] = utcnow):
        """Initialize scheduler.

        Args:
            store: Record store holding the ``reminders`` collection
            clock: Source of "now", overridable in tests
        """
        self.store = store
        self.clock = clock

    def schedule(
        self,
        loan_id: str,
        item_name: str,
        owner_name: str,
        borrower_name: str,
        return_by: Optional[Timestamp] = None,
    ) -> int:
        """Create the reminders for one loan.

        Reminders are written one at a time. A failed write propagates and
        leaves the earlier ones in place.

        Returns:
            Number of reminders persisted
        """
        reminders = build_reminders(
            loan_id, item_name, owner_name, borrower_name, return_by, self.clock()
        )
        for reminder in reminders:
            self.store.create("reminders", reminder.to_record())

        logger.info(f"Scheduled {len(reminders)} reminders for loan {loan_id}")
        return len(reminders)
