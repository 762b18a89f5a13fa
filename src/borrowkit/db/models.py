"""SQLAlchemy ORM models for the local record store.

Tables mirror the backend collections:
- libraries, items: what can be lent
- borrowers: people asking to borrow (unique by phone)
- borrow_requests, loans: the borrow lifecycle
- reminders: scheduled messages for a loan
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .schemas import ItemStatus, LoanStatus, RequestStatus


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TimestampMixin:
    created_at: Mapped[str] = mapped_column(String(32), default=_now, index=True)
    updated_at: Mapped[str] = mapped_column(String(32), default=_now, onupdate=_now)


class LibraryRow(TimestampMixin, Base):
    """Library owned by a user."""

    __tablename__ = "libraries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    owner_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[Optional[str]] = mapped_column(String(200), unique=True)


class ItemRow(TimestampMixin, Base):
    """Lendable item."""

    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    library_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("libraries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ItemStatus.AVAILABLE.value, index=True
    )
    max_borrow_days: Mapped[Optional[int]] = mapped_column(Integer)


class BorrowerRow(TimestampMixin, Base):
    """Borrower, deduplicated by phone."""

    __tablename__ = "borrowers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    phone: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)


class BorrowRequestRow(TimestampMixin, Base):
    """Borrow request."""

    __tablename__ = "borrow_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    borrower_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("borrowers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message: Mapped[Optional[str]] = mapped_column(Text)
    return_by: Mapped[Optional[str]] = mapped_column(String(32))
    private_possession: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(
        String(20), default=RequestStatus.PENDING.value, index=True
    )


class LoanRow(TimestampMixin, Base):
    """Loan created from an approved request."""

    __tablename__ = "loans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    borrower_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("borrowers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    request_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("borrow_requests.id", ondelete="SET NULL")
    )
    borrowed_at: Mapped[Optional[str]] = mapped_column(String(32), default=_now)
    return_by: Mapped[Optional[str]] = mapped_column(String(32))
    returned_at: Mapped[Optional[str]] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(
        String(20), default=LoanStatus.ACTIVE.value, index=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    private_possession: Mapped[bool] = mapped_column(Boolean, default=False)


class ReminderRow(TimestampMixin, Base):
    """Scheduled reminder for a loan."""

    __tablename__ = "reminders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    loan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reminder_type: Mapped[str] = mapped_column(String(20), nullable=False)
    scheduled_for: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    sent_at: Mapped[Optional[str]] = mapped_column(String(32))


# Collection name -> ORM model
TABLES: dict[str, type[Base]] = {
    model.__tablename__: model
    for model in (LibraryRow, ItemRow, BorrowerRow, BorrowRequestRow, LoanRow, ReminderRow)
}
