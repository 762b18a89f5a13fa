"""Tests for record queries and the HTTP record store."""

from unittest.mock import MagicMock

import pytest
import requests

from conftest import make_response
from borrowkit.api.records import (
    HttpRecordStore,
    RecordConflictError,
    RecordNotFoundError,
    RecordQuery,
    RecordStoreError,
)


class TestRecordQuery:
    """Tests for filter rendering."""

    def test_empty_filter(self):
        """Test no filter renders to None."""
        assert RecordQuery().render_filter() is None

    def test_equality(self):
        """Test a scalar value renders as equality."""
        assert RecordQuery({"phone": "+15551234567"}).render_filter() == "phone='+15551234567'"

    def test_any_of_and_conjunction(self):
        """Test list values become OR groups joined with AND."""
        query = RecordQuery({"status": ["active", "late"], "item_id": "i1"})
        assert query.render_filter() == "(status='active' OR status='late') AND item_id='i1'"

    def test_single_option_list(self):
        """Test a one-element list is not parenthesized."""
        assert RecordQuery({"status": ["pending"]}).render_filter() == "status='pending'"

    def test_quotes_are_escaped(self):
        """Test single quotes are doubled."""
        assert RecordQuery({"name": "Ann's"}).render_filter() == "name='Ann''s'"

    def test_literals(self):
        """Test null, booleans and numbers."""
        query = RecordQuery({"returned_at": None, "private_possession": True, "max_borrow_days": 7})
        assert query.render_filter() == (
            "returned_at=null AND private_possession=true AND max_borrow_days=7"
        )

    def test_empty_option_list_rejected(self):
        """Test an empty list cannot be rendered."""
        with pytest.raises(ValueError):
            RecordQuery({"item_id": []}).render_filter()


@pytest.fixture
def store(credentials) -> HttpRecordStore:
    """HTTP store with mocked session."""
    store = HttpRecordStore("https://api.example.com", credentials)
    store._session = MagicMock()
    return store


class TestHttpRecordStore:
    """Tests for collection calls."""

    def test_get(self, store, credentials):
        """Test fetching one record."""
        store._session.request.return_value = make_response(200, {"id": "item-1"})

        assert store.get("items", "item-1") == {"id": "item-1"}
        call_args = store._session.request.call_args
        assert call_args[0] == ("GET", "https://api.example.com/api/collections/items/item-1")
        assert call_args[1]["headers"]["Authorization"] == f"Bearer {credentials.token}"

    def test_list(self, store):
        """Test list parameters and paging fields."""
        store._session.request.return_value = make_response(
            200,
            {"items": [{"id": "b1"}], "page": 1, "perPage": 1, "totalItems": 3},
        )

        result = store.list("borrowers", RecordQuery({"phone": "+1555"}, per_page=1))

        params = store._session.request.call_args[1]["params"]
        assert params == {"perPage": 1, "page": 1, "filter": "phone='+1555'"}
        assert result.items == [{"id": "b1"}]
        assert result.total_items == 3

    def test_list_with_sort(self, store):
        """Test sort is passed through."""
        store._session.request.return_value = make_response(200, {"items": []})

        result = store.list("loans", RecordQuery(sort="-created_at"))

        params = store._session.request.call_args[1]["params"]
        assert params["sort"] == "-created_at"
        assert "filter" not in params
        assert result.items == []

    def test_create(self, store):
        """Test create posts the body."""
        store._session.request.return_value = make_response(200, {"id": "b1", "name": "Alice"})

        record = store.create("borrowers", {"phone": "+1555", "name": "Alice"})

        call_args = store._session.request.call_args
        assert call_args[0][0] == "POST"
        assert call_args[1]["json"] == {"phone": "+1555", "name": "Alice"}
        assert record["id"] == "b1"

    def test_update(self, store):
        """Test update patches the record."""
        store._session.request.return_value = make_response(200, {"id": "b1", "name": "Al"})

        store.update("borrowers", "b1", {"name": "Al"})

        call_args = store._session.request.call_args
        assert call_args[0] == ("PATCH", "https://api.example.com/api/collections/borrowers/b1")
        assert call_args[1]["json"] == {"name": "Al"}

    def test_delete(self, store):
        """Test delete with an empty reply."""
        store._session.request.return_value = make_response(204, content_type=None)

        assert store.delete("items", "item-1") is None

    def test_not_found(self, store):
        """Test 404 raises RecordNotFoundError."""
        store._session.request.return_value = make_response(404, {"message": "Not found"})

        with pytest.raises(RecordNotFoundError, match="Not found"):
            store.get("items", "missing")

    def test_conflict(self, store):
        """Test 409 raises RecordConflictError."""
        store._session.request.return_value = make_response(
            409, {"message": "unique constraint violation on borrowers.phone"}
        )

        with pytest.raises(RecordConflictError) as exc_info:
            store.create("borrowers", {"phone": "+1555", "name": "Alice"})
        assert exc_info.value.status == 409

    def test_other_error_keeps_status(self, store):
        """Test other failures carry status and message."""
        store._session.request.return_value = make_response(
            500, text="boom", content_type="text/plain"
        )

        with pytest.raises(RecordStoreError) as exc_info:
            store.get("items", "item-1")
        assert exc_info.value.status == 500
        assert str(exc_info.value) == "boom"

    def test_unauthorized_invalidates_session(self, store, credentials):
        """Test a 401 clears credentials here too."""
        store._session.request.return_value = make_response(401, {"message": "Unauthorized"})

        with pytest.raises(RecordStoreError):
            store.list("items")
        assert credentials.token is None

    def test_network_error(self, store):
        """Test connection failures."""
        store._session.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(RecordStoreError, match="NetworkError"):
            store.get("items", "item-1")
