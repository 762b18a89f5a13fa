"""Borrow request submission.

Requests are submitted through the ``request_borrow`` procedure, which
checks availability, upserts the borrower and inserts the request in one
transaction. Deployments without that procedure are served by a fallback
that performs the same steps with direct record writes.
"""

from typing import Optional

from ..api.records import RecordQuery, RecordStore, RecordStoreError
from ..api.rpc import RemoteProcedureClient, RpcError
from ..db.schemas import Borrower, BorrowRequest, BorrowRequestCreate, ItemStatus
from ..errors import BorrowkitError
from ..logger import logger
from .errors import BorrowerRecordError, ItemUnavailableError, SubmissionError
from .tasks import InFlightGuard

SUBMIT_FAILED_MESSAGE = "Failed to submit borrow request"


class BorrowRequestSubmitter:
    """Submits borrow requests, procedure first, direct writes second."""

    def __init__(self, rpc: RemoteProcedureClient, store: RecordStore):
        """Initialize submitter.

        Args:
            rpc: Client for the ``request_borrow`` procedure
            store: Record store used by the fallback path
        """
        self.rpc = rpc
        self.store = store
        self._guard = InFlightGuard()

    def is_busy(self, item_id: str, phone: str) -> bool:
        """True while a request from this phone for this item is being submitted."""
        return self._guard.is_busy((item_id, phone))

    def request_borrow(
        self,
        item_id: str,
        name: str,
        phone: str,
        message: Optional[str] = None,
        return_by: Optional[str] = None,
        private_possession: bool = False,
    ) -> BorrowRequest:
        """Convenience wrapper around ``submit``."""
        return self.submit(
            BorrowRequestCreate(
                item_id=item_id,
                name=name,
                phone=phone,
                message=message,
                return_by=return_by,
                private_possession=private_possession,
            )
        )

    def submit(self, data: BorrowRequestCreate) -> BorrowRequest:
        """Submit a borrow request.

        Args:
            data: The borrower's request

        Returns:
            The created request

        Raises:
            RpcDomainError: The procedure rejected the request; no fallback
            ItemUnavailableError: Fallback found the item not available
            BorrowerRecordError: Fallback could neither create nor find
                the borrower
            RecordStoreError: Fallback write failed
            SubmissionError: Both paths failed without a usable message
            ActionInProgressError: The same borrower is already submitting
                a request for this item
        """
        with self._guard.hold((data.item_id, data.phone), f"item {data.item_id}"):
            return self._submit(data)

    def _submit(self, data: BorrowRequestCreate) -> BorrowRequest:
        try:
            return self._submit_rpc(data)
        except RpcError as e:
            if e.is_domain:
                raise
            rpc_error = e

        logger.info(
            f"request_borrow unavailable ({rpc_error.message}); "
            f"submitting item {data.item_id} with direct writes"
        )
        try:
            return self._submit_crud(data)
        except BorrowkitError as crud_error:
            if str(crud_error):
                raise
            raise SubmissionError(
                rpc_error.message or SUBMIT_FAILED_MESSAGE,
                rpc_error=rpc_error,
                crud_error=crud_error,
            ) from crud_error

    def _submit_rpc(self, data: BorrowRequestCreate) -> BorrowRequest:
        result = self.rpc.call(
            "request_borrow",
            {
                "p_item_id": data.item_id,
                "p_borrower_name": data.name,
                "p_borrower_phone": data.phone,
                "p_message": data.message,
                "p_return_by": data.return_by,
                "p_private_possession": data.private_possession,
            },
        )
        if not isinstance(result, dict):
            # Accepted but unreadable; retrying through the fallback could duplicate it.
            raise SubmissionError(SUBMIT_FAILED_MESSAGE)
        return BorrowRequest.model_validate(result)

    def _submit_crud(self, data: BorrowRequestCreate) -> BorrowRequest:
        item = self.store.get("items", data.item_id)
        if item.get("status") != ItemStatus.AVAILABLE.value:
            raise ItemUnavailableError(data.item_id)

        borrower = self._resolve_borrower(data.phone, data.name)
        record = self.store.create(
            "borrow_requests",
            {
                "item_id": data.item_id,
                "borrower_id": borrower.id,
                "message": data.message,
                "return_by": data.return_by,
                "private_possession": data.private_possession,
            },
        )
        return BorrowRequest.model_validate(record)

    def _resolve_borrower(self, phone: str, name: str) -> Borrower:
        """Create the borrower, or reuse the one that already has this phone.

        A stored name that differs from ``name`` is updated; the phone is
        the identity, names may drift.
        """
        try:
            return Borrower.model_validate(
                self.store.create("borrowers", {"phone": phone, "name": name})
            )
        except RecordStoreError as e:
            logger.debug(f"Borrower create failed ({e}); looking up phone {phone}")

        existing = self.store.list("borrowers", RecordQuery({"phone": phone}, per_page=1))
        if not existing.items:
            raise BorrowerRecordError(phone)

        borrower = Borrower.model_validate(existing.items[0])
        if borrower.name != name:
            logger.info(f"Updating borrower {borrower.id} name to {name!r}")
            borrower = Borrower.model_validate(
                self.store.update("borrowers", borrower.id, {"name": name})
            )
        return borrower
