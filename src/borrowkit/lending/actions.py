"""Owner actions on requests and loans: approve, decline, mark returned.

Each action calls the backend first and only then updates the view's local
state, so a failed call leaves the view as it was. Decline and return are
destructive and go through a ``Confirmation`` the host must accept.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from pydantic import ValidationError

from ..api.records import RecordStore
from ..api.rpc import RemoteProcedureClient
from ..db.schemas import BorrowRequest, Loan, RequestStatus
from ..logger import logger
from ..realtime.views import LendingView
from ..utils import parse_timestamp, to_iso, utcnow
from .reminders import ReminderScheduler
from .tasks import BestEffortRunner, InFlightGuard


@dataclass
class Confirmation:
    """A pending destructive action, shown to the user as a dialog."""

    title: str
    message: str
    variant: str  # "danger" or "default"
    confirm_label: str
    on_confirm: Callable[[], Any] = field(repr=False)

    def confirm(self) -> Any:
        """Run the action."""
        return self.on_confirm()


class LifecycleActions:
    """Approve, decline and return, bound to one view."""

    def __init__(
        self,
        view: LendingView,
        rpc: RemoteProcedureClient,
        store: RecordStore,
        scheduler: ReminderScheduler,
        runner: BestEffortRunner,
        default_loan_days: int = 14,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize actions.

        Args:
            view: View whose local state reflects the outcome
            rpc: Client for ``approve_borrow`` and ``return_item``
            store: Record store used to decline requests
            scheduler: Creates reminders after an approval
            runner: Runs reminder scheduling in the background
            default_loan_days: Loan length when the request names no date
            clock: Source of "now", overridable in tests
        """
        self.view = view
        self.rpc = rpc
        self.store = store
        self.scheduler = scheduler
        self.runner = runner
        self.default_loan_days = default_loan_days
        self.clock = clock
        self._guard = InFlightGuard()

    def is_busy(self, key: str) -> bool:
        """True while an action for this request or loan id is running."""
        return self._guard.is_busy(key)

    # -------------------------------------------------------------------------
    # Approve
    # -------------------------------------------------------------------------

    def due_date_for(self, request: Optional[BorrowRequest]) -> datetime:
        """The request's own return date, or the default loan length from now."""
        due = parse_timestamp(request.return_by) if request else None
        return due or self.clock() + timedelta(days=self.default_loan_days)

    def approve(self, request_id: str) -> Optional[Loan]:
        """Approve a pending request and open its loan.

        Reminders for the new loan are scheduled in the background; their
        failure never fails the approval.

        Returns:
            The created loan, or None if the reply carried no usable loan

        Raises:
            RpcError: The approval failed (local state is unchanged)
            ActionInProgressError: This request is already being acted on
        """
        with self._guard.hold(request_id):
            request = self.view.find_request(request_id)
            due = self.due_date_for(request)
            result = self.rpc.call(
                "approve_borrow",
                {"p_request_id": request_id, "p_return_by": to_iso(due)},
            )

            loan = None
            if isinstance(result, dict):
                try:
                    loan = Loan.model_validate(result)
                except ValidationError as e:
                    logger.warning(f"approve_borrow for {request_id} returned an unreadable loan: {e}")

            self.view.resolve_request(request_id)
            if loan is not None:
                self.view.add_loan(loan)
                if request is not None:
                    self._schedule_reminders(request, loan, due)
            return loan

    def _schedule_reminders(self, request: BorrowRequest, loan: Loan, due: datetime) -> None:
        item = self.view.item_for(request.item_id)
        borrower = self.view.borrower_for(request.borrower_id)
        if item is None or borrower is None:
            logger.info(f"Skipping reminders for loan {loan.id}: item or borrower not loaded")
            return
        self.runner.spawn(
            f"schedule reminders for loan {loan.id}",
            self.scheduler.schedule,
            loan.id,
            item.name,
            self.view.owner_name(item),
            borrower.name,
            to_iso(due),
        )

    # -------------------------------------------------------------------------
    # Decline
    # -------------------------------------------------------------------------

    def request_decline(self, request_id: str) -> Confirmation:
        """Ask before declining a request."""
        request = self.view.find_request(request_id)
        borrower = self.view.borrower_name(request.borrower_id if request else "")
        return Confirmation(
            title="Decline Request",
            message=f"Decline this borrow request from {borrower}?",
            variant="danger",
            confirm_label="Decline",
            on_confirm=lambda: self._decline(request_id),
        )

    def _decline(self, request_id: str) -> None:
        with self._guard.hold(request_id):
            self.store.update(
                "borrow_requests", request_id, {"status": RequestStatus.DECLINED.value}
            )
            self.view.resolve_request(request_id)

    # -------------------------------------------------------------------------
    # Return
    # -------------------------------------------------------------------------

    def request_return(self, loan_id: str) -> Confirmation:
        """Ask before marking a loan returned."""
        loan = self.view.find_loan(loan_id)
        item = self.view.item_name(loan.item_id if loan else "")
        return Confirmation(
            title="Mark as Returned",
            message=f'Mark "{item}" as returned?',
            variant="default",
            confirm_label="Mark Returned",
            on_confirm=lambda: self._mark_returned(loan_id),
        )

    def _mark_returned(self, loan_id: str) -> None:
        with self._guard.hold(loan_id):
            self.rpc.call("return_item", {"p_loan_id": loan_id})
            self.view.drop_loan(loan_id)
