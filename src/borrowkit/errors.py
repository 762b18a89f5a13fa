"""Exception root and user-facing error messages.

Maps technical error messages to user-friendly strings. Matching is done on
the raw message so backend wording variations are still caught.
"""

import re
from dataclasses import dataclass
from typing import Pattern, Union


class BorrowkitError(Exception):
    """Base exception for all borrowkit errors."""

    pass


@dataclass(frozen=True)
class FriendlyError:
    """A message fit to show a user, plus its severity."""

    message: str
    level: str = "error"  # "error" or "warning"


@dataclass(frozen=True)
class _ErrorMapping:
    pattern: Union[str, Pattern[str]]
    message: str
    level: str = "error"

    def matches(self, raw: str) -> bool:
        if isinstance(self.pattern, str):
            return self.pattern in raw
        return self.pattern.search(raw) is not None


NETWORK_MESSAGE = "Unable to reach the server. Please check your internet connection and try again."
GENERIC_MESSAGE = "Something went wrong. Please try again."

_NETWORK_MARKERS = ("Failed to fetch", "NetworkError", "Load failed", "Connection refused")

ERROR_MAPPINGS: list[_ErrorMapping] = [
    # Network / connectivity
    *[_ErrorMapping(marker, NETWORK_MESSAGE) for marker in _NETWORK_MARKERS],
    _ErrorMapping(re.compile(r"timed out", re.I), "The request took too long. Please try again."),
    # Auth
    _ErrorMapping(re.compile(r"invalid credentials", re.I), "The email or password you entered is incorrect."),
    _ErrorMapping(re.compile(r"token.*expired", re.I), "Your session has expired. Please sign in again."),
    _ErrorMapping("Unauthorized", "You need to sign in to do this."),
    # Bare RPC failure sentinel
    _ErrorMapping(re.compile(r"^RPC \w+ failed$"), "Something went wrong. Please try again in a moment."),
    # Borrowing
    _ErrorMapping(
        "Item is not available for borrowing",
        "This item is no longer available for borrowing. Someone may have just borrowed it.",
    ),
    _ErrorMapping(
        "Failed to create borrower record",
        "We couldn't save your information. Please try again.",
    ),
    # Storage constraints
    _ErrorMapping(
        re.compile(r"unique constraint", re.I),
        "This already exists. Please use a different name or value.",
    ),
    _ErrorMapping(
        re.compile(r"NOT NULL.*(violation|failed)", re.I),
        "A required field is missing. Please fill in all required fields.",
    ),
    _ErrorMapping(
        re.compile(r"check constraint", re.I),
        "One of the values you entered is not valid. Please check and try again.",
    ),
    # Rate limiting
    _ErrorMapping(
        "Rate limit exceeded",
        "Too many requests. Please wait a moment and try again.",
        level="warning",
    ),
]


def friendly_error(error: BaseException) -> FriendlyError:
    """Translate an exception into a message a user can act on.

    Args:
        error: Any exception raised by a borrowkit operation

    Returns:
        FriendlyError with a message and severity level
    """
    raw = str(error)
    for mapping in ERROR_MAPPINGS:
        if mapping.matches(raw):
            return FriendlyError(mapping.message, mapping.level)

    # Readable server messages are shown as-is; stack-trace-like text is not.
    if raw and len(raw) < 200 and "\n" not in raw and "Traceback" not in raw:
        return FriendlyError(raw)
    return FriendlyError(GENERIC_MESSAGE)


def is_network_error(error: BaseException) -> bool:
    """Return True if the error looks like a network/connectivity failure."""
    raw = str(error)
    return any(marker in raw for marker in _NETWORK_MARKERS)
