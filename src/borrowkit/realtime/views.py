"""Observer views: the dashboard, the notifications page and the bell.

A view hydrates from the record store when it mounts, then stays current
through the realtime channel until it unmounts. Each view owns its own
copies of requests and loans; views never talk to each other.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from ..api.auth import CredentialStore
from ..api.records import RecordQuery, RecordStore
from ..db.schemas import (
    Borrower,
    BorrowRequest,
    Item,
    Library,
    Loan,
    LoanStatus,
    RequestStatus,
)
from ..errors import BorrowkitError
from ..logger import logger
from ..utils import format_day, parse_timestamp, utcnow
from .channel import RealtimeChannel, RealtimeEvent, Unsubscribe
from .reconciler import (
    CollectionSpec,
    ObserverReconciler,
    RecordCollection,
    status_in,
)

M = TypeVar("M", bound=BaseModel)

UNKNOWN_ITEM = "Unknown item"
UNKNOWN_BORROWER = "Unknown"
UNKNOWN_OWNER = "your lender"

PENDING_REQUESTS = CollectionSpec(
    "borrow_requests", BorrowRequest, status_in(RequestStatus.PENDING)
)
OPEN_LOANS = CollectionSpec("loans", Loan, status_in(LoanStatus.ACTIVE, LoanStatus.LATE))
LATE_LOANS = CollectionSpec("loans", Loan, status_in(LoanStatus.LATE), upsert_on_update=True)
RESOLVED_REQUESTS = CollectionSpec(
    "borrow_requests",
    BorrowRequest,
    status_in(RequestStatus.APPROVED, RequestStatus.DECLINED),
    upsert_on_update=True,
)
ALL_ITEMS = CollectionSpec("items", Item)


class ObserverView:
    """Base for views that mirror server state through realtime events."""

    def __init__(self, store: RecordStore, channel: RealtimeChannel):
        self.store = store
        self.channel = channel
        self.mounted = False
        self._unsubscribe: Optional[Unsubscribe] = None
        self.reconciler = ObserverReconciler(self._collections())

    def _collections(self) -> list[RecordCollection]:
        raise NotImplementedError

    def reload(self) -> None:
        """Replace local state with a fresh snapshot from the store."""
        raise NotImplementedError

    @property
    def tables(self) -> list[str]:
        return self.reconciler.tables

    def mount(self) -> None:
        """Subscribe to realtime events, then hydrate.

        If hydration fails the view is unmounted again and the error
        propagates, so a later ``mount`` retries from scratch.
        """
        if self.mounted:
            return
        self.mounted = True
        self._unsubscribe = self.channel.subscribe(self.tables, self._on_event)
        try:
            self.reload()
        except Exception:
            self.unmount()
            raise

    def unmount(self) -> None:
        """Tear down the subscription. Later events are ignored."""
        self.mounted = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self):
        self.mount()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unmount()

    def _on_event(self, event: RealtimeEvent) -> None:
        if not self.mounted:
            logger.debug(f"Ignoring {event.table} event for unmounted {type(self).__name__}")
            return
        try:
            self.reconciler.handle(event)
        except Exception:
            # Realtime is an optimization; a failed merge only leaves state stale.
            logger.exception(f"{type(self).__name__} could not apply {event.table} event")

    def _fetch(self, model: type[M], table: str, query: RecordQuery) -> list[M]:
        return [model.model_validate(r) for r in self.store.list(table, query).items]


class LendingView(ObserverView):
    """A view that shows pending requests and open loans and can act on them."""

    def __init__(self, store: RecordStore, channel: RealtimeChannel):
        self.pending: RecordCollection[BorrowRequest] = RecordCollection(PENDING_REQUESTS)
        self.loans: RecordCollection[Loan] = RecordCollection(OPEN_LOANS)
        self.items: RecordCollection[Item] = RecordCollection(ALL_ITEMS)
        self.libraries: list[Library] = []
        self.borrowers: dict[str, Borrower] = {}
        super().__init__(store, channel)

    def _collections(self) -> list[RecordCollection]:
        return [self.pending, self.loans, self.items]

    def _load_borrowers(self, records: Iterable[BaseModel]) -> None:
        ids = sorted({r.borrower_id for r in records})
        if not ids:
            self.borrowers = {}
            return
        found = self._fetch(Borrower, "borrowers", RecordQuery({"id": ids}, per_page=500))
        self.borrowers = {b.id: b for b in found}

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def find_request(self, request_id: str) -> Optional[BorrowRequest]:
        return self.pending.get(request_id)

    def find_loan(self, loan_id: str) -> Optional[Loan]:
        return self.loans.get(loan_id)

    def item_for(self, item_id: str) -> Optional[Item]:
        return self.items.get(item_id)

    def borrower_for(self, borrower_id: str) -> Optional[Borrower]:
        return self.borrowers.get(borrower_id)

    def item_name(self, item_id: str) -> str:
        item = self.item_for(item_id)
        return item.name if item else UNKNOWN_ITEM

    def borrower_name(self, borrower_id: str) -> str:
        borrower = self.borrower_for(borrower_id)
        return borrower.name if borrower else UNKNOWN_BORROWER

    def owner_name(self, item: Optional[Item]) -> str:
        if item is None:
            return UNKNOWN_OWNER
        library = next((l for l in self.libraries if l.id == item.library_id), None)
        return library.name if library else UNKNOWN_OWNER

    # -------------------------------------------------------------------------
    # Optimistic updates from lifecycle actions
    # -------------------------------------------------------------------------

    def resolve_request(self, request_id: str) -> bool:
        """Drop a request from the pending set after it was acted on."""
        if not self.mounted:
            return False
        with self.reconciler.lock:
            return self.pending.remove(request_id)

    def add_loan(self, loan: Loan) -> bool:
        """Show a freshly created loan without waiting for its event."""
        if not self.mounted:
            return False
        with self.reconciler.lock:
            return self.loans.insert(loan)

    def drop_loan(self, loan_id: str) -> bool:
        """Remove a loan that was returned."""
        if not self.mounted:
            return False
        with self.reconciler.lock:
            return self.loans.remove(loan_id)


class DashboardView(LendingView):
    """Owner dashboard: requests, open loans, recent decisions, items."""

    def __init__(self, store: RecordStore, channel: RealtimeChannel):
        self.resolved: RecordCollection[BorrowRequest] = RecordCollection(RESOLVED_REQUESTS)
        super().__init__(store, channel)

    def _collections(self) -> list[RecordCollection]:
        return super()._collections() + [self.resolved]

    def reload(self) -> None:
        libraries = self._fetch(
            Library, "libraries", RecordQuery(sort="-created_at", per_page=100)
        )
        pending = self._fetch(
            BorrowRequest,
            "borrow_requests",
            RecordQuery({"status": RequestStatus.PENDING.value}, sort="-created_at", per_page=100),
        )
        loans = self._fetch(
            Loan,
            "loans",
            RecordQuery(
                {"status": [LoanStatus.ACTIVE.value, LoanStatus.LATE.value]},
                sort="-created_at",
                per_page=100,
            ),
        )
        resolved = self._fetch(
            BorrowRequest,
            "borrow_requests",
            RecordQuery(
                {"status": [RequestStatus.APPROVED.value, RequestStatus.DECLINED.value]},
                sort="-updated_at",
                per_page=50,
            ),
        )
        items = self._fetch(Item, "items", RecordQuery(per_page=500))

        with self.reconciler.lock:
            self.libraries = libraries
            self.pending.replace_all(pending)
            self.loans.replace_all(loans)
            self.resolved.replace_all(resolved)
            self.items.replace_all(items)
        self._load_borrowers([*pending, *loans, *resolved])


class NotificationsView(LendingView):
    """Notifications page, scoped to the libraries the signed-in user owns."""

    def __init__(
        self,
        store: RecordStore,
        channel: RealtimeChannel,
        credentials: Optional[CredentialStore] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.credentials = credentials
        self.clock = clock
        super().__init__(store, channel)

    def reload(self) -> None:
        user_id = self.credentials.current_user_id() if self.credentials else None
        # Without the owner filter, public libraries of other users leak in.
        library_filter = {"owner_id": user_id} if user_id else {}
        libraries = self._fetch(Library, "libraries", RecordQuery(library_filter, per_page=100))

        items: list[Item] = []
        pending: list[BorrowRequest] = []
        loans: list[Loan] = []
        if libraries:
            items = self._fetch(
                Item,
                "items",
                RecordQuery({"library_id": [l.id for l in libraries]}, per_page=500),
            )
        if items:
            item_ids = [i.id for i in items]
            pending = self._fetch(
                BorrowRequest,
                "borrow_requests",
                RecordQuery(
                    {"item_id": item_ids, "status": RequestStatus.PENDING.value},
                    sort="-created_at",
                    per_page=100,
                ),
            )
            loans = self._fetch(
                Loan,
                "loans",
                RecordQuery(
                    {
                        "item_id": item_ids,
                        "status": [LoanStatus.ACTIVE.value, LoanStatus.LATE.value],
                    },
                    sort="-created_at",
                    per_page=100,
                ),
            )

        with self.reconciler.lock:
            self.libraries = libraries
            self.items.replace_all(items)
            self.pending.replace_all(pending)
            self.loans.replace_all(loans)
        self._load_borrowers([*pending, *loans])

    def _is_overdue(self, loan: Loan) -> bool:
        if loan.status == LoanStatus.LATE:
            return True
        due = parse_timestamp(loan.return_by)
        return due is not None and due < self.clock()

    @property
    def overdue(self) -> list[Loan]:
        return [loan for loan in self.loans if self._is_overdue(loan)]

    @property
    def currently_borrowed(self) -> list[Loan]:
        return [loan for loan in self.loans if not self._is_overdue(loan)]


@dataclass(frozen=True)
class Notification:
    """One row in the notification bell."""

    id: str
    type: str  # "request" or "overdue"
    title: str
    subtitle: str


class NotificationBellView(ObserverView):
    """Navbar bell: pending requests plus late loans."""

    def __init__(self, store: RecordStore, channel: RealtimeChannel):
        self.pending: RecordCollection[BorrowRequest] = RecordCollection(PENDING_REQUESTS)
        self.overdue: RecordCollection[Loan] = RecordCollection(LATE_LOANS)
        super().__init__(store, channel)

    def _collections(self) -> list[RecordCollection]:
        return [self.pending, self.overdue]

    def reload(self) -> None:
        try:
            pending = self._fetch(
                BorrowRequest,
                "borrow_requests",
                RecordQuery({"status": RequestStatus.PENDING.value}, sort="-created_at", per_page=50),
            )
            overdue = self._fetch(
                Loan,
                "loans",
                RecordQuery({"status": LoanStatus.LATE.value}, sort="-created_at", per_page=50),
            )
        except (BorrowkitError, ValidationError) as e:
            # The navbar must not block on notification errors.
            logger.warning(f"Notification bell could not load: {e}")
            return

        with self.reconciler.lock:
            self.pending.replace_all(pending)
            self.overdue.replace_all(overdue)

    @property
    def count(self) -> int:
        return len(self.pending) + len(self.overdue)

    @property
    def badge(self) -> str:
        """Badge text: empty when there is nothing, capped at ``99+``."""
        count = self.count
        if count == 0:
            return ""
        return "99+" if count > 99 else str(count)

    @property
    def notifications(self) -> list[Notification]:
        entries = [
            Notification(
                id=r.id,
                type="request",
                title="Borrow request",
                subtitle=f'"{r.message[:60]}"' if r.message else "New borrow request",
            )
            for r in self.pending
        ]
        for loan in self.overdue:
            due = parse_timestamp(loan.return_by)
            entries.append(
                Notification(
                    id=loan.id,
                    type="overdue",
                    title="Overdue return",
                    subtitle=f"Due {format_day(due)}" if due else "Overdue",
                )
            )
        return entries
