"""Exceptions raised by the borrow lifecycle."""

from typing import Optional

from ..errors import BorrowkitError

ITEM_UNAVAILABLE_MESSAGE = "Item is not available for borrowing"
BORROWER_RECORD_MESSAGE = "Failed to create borrower record"


class LendingError(BorrowkitError):
    """Base exception for lending operations."""

    pass


class ItemUnavailableError(LendingError):
    """Raised when the item is not in ``available`` status."""

    def __init__(self, item_id: str):
        super().__init__(ITEM_UNAVAILABLE_MESSAGE)
        self.item_id = item_id


class BorrowerRecordError(LendingError):
    """Raised when a borrower can neither be created nor found by phone."""

    def __init__(self, phone: str):
        super().__init__(BORROWER_RECORD_MESSAGE)
        self.phone = phone


class SubmissionError(LendingError):
    """Raised when both submission paths failed.

    The message is the fallback path's, or the procedure's if the fallback
    error had none. Both original errors are kept for logging.
    """

    def __init__(
        self,
        message: str,
        rpc_error: Optional[BaseException] = None,
        crud_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.rpc_error = rpc_error
        self.crud_error = crud_error


class ActionInProgressError(LendingError):
    """Raised when the same action is already running for a record."""

    def __init__(self, key: str):
        super().__init__(f"An action for {key} is already in progress")
        self.key = key

