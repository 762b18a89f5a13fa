"""Tests for user-facing error messages."""

import pytest

from borrowkit.errors import (
    GENERIC_MESSAGE,
    NETWORK_MESSAGE,
    FriendlyError,
    friendly_error,
    is_network_error,
)
from borrowkit.lending.errors import BorrowerRecordError, ItemUnavailableError


class TestFriendlyError:
    """Tests for friendly_error."""

    @pytest.mark.parametrize(
        "raw",
        ["TypeError: Failed to fetch", "NetworkError when attempting to fetch", "Connection refused"],
    )
    def test_network_failures(self, raw):
        """Test connectivity problems share one message."""
        assert friendly_error(Exception(raw)) == FriendlyError(NETWORK_MESSAGE)

    def test_item_unavailable(self):
        """Test the borrow race message."""
        result = friendly_error(ItemUnavailableError("item-1"))
        assert result.message.startswith("This item is no longer available")
        assert result.level == "error"

    def test_borrower_record(self):
        """Test the borrower creation failure message."""
        result = friendly_error(BorrowerRecordError("+1555"))
        assert result.message == "We couldn't save your information. Please try again."

    def test_rpc_sentinel(self):
        """Test the bare RPC failure wording is replaced."""
        result = friendly_error(Exception("RPC approve_borrow failed"))
        assert result.message == "Something went wrong. Please try again in a moment."

    def test_expired_token(self):
        """Test session expiry."""
        result = friendly_error(Exception("JWT token has expired"))
        assert result.message == "Your session has expired. Please sign in again."

    def test_unique_constraint_case_insensitive(self):
        """Test constraint text is matched regardless of case."""
        result = friendly_error(Exception("UNIQUE constraint failed: borrowers.phone"))
        assert result.message.startswith("This already exists")

    def test_rate_limit_is_warning(self):
        """Test rate limiting is reported as a warning."""
        result = friendly_error(Exception("Rate limit exceeded"))
        assert result.level == "warning"

    def test_readable_message_passes_through(self):
        """Test short server messages are shown as-is."""
        result = friendly_error(Exception("Request is not pending"))
        assert result == FriendlyError("Request is not pending")

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "x" * 250,
            "line one\nline two",
            'Traceback (most recent call last): File "app.py"',
        ],
    )
    def test_unreadable_message_is_generic(self, raw):
        """Test empty, long and stack-trace-like messages."""
        assert friendly_error(Exception(raw)).message == GENERIC_MESSAGE


class TestIsNetworkError:
    """Tests for is_network_error."""

    def test_network(self):
        """Test a network marker is detected."""
        assert is_network_error(Exception("Load failed"))

    def test_not_network(self):
        """Test other errors are not."""
        assert not is_network_error(Exception("Item is not available for borrowing"))
