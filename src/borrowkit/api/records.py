"""Generic record-collection access.

``RecordStore`` is the contract every collection backend satisfies: the
HTTP client below talks to the hosted backend, and
``borrowkit.db.sqlite.SqliteRecordStore`` keeps the same collections in a
local SQLite file.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol, Sequence, Union

import requests

from ..errors import BorrowkitError
from ..logger import logger
from .auth import CredentialStore

FilterValue = Union[str, int, bool, None, Sequence[Union[str, int]]]


class RecordStoreError(BorrowkitError):
    """Base exception for collection access errors."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RecordNotFoundError(RecordStoreError):
    """Raised when a record does not exist."""

    pass


class RecordConflictError(RecordStoreError):
    """Raised when a write violates a uniqueness constraint."""

    pass


@dataclass
class RecordQuery:
    """Filter, sort and page options for ``RecordStore.list``.

    ``filter`` maps a field to a scalar (equality), a list (any of) or
    None (is null). Conditions are combined with AND.
    """

    filter: Mapping[str, FilterValue] = field(default_factory=dict)
    sort: Optional[str] = None  # "-created_at" sorts descending
    per_page: int = 100
    page: int = 1

    def render_filter(self) -> Optional[str]:
        """Render the filter in the backend's expression syntax.

        Example:
            >>> RecordQuery({"status": ["active", "late"], "item_id": "i1"}).render_filter()
            "(status='active' OR status='late') AND item_id='i1'"
        """
        clauses = []
        for name, value in self.filter.items():
            if value is None:
                clauses.append(f"{name}=null")
            elif isinstance(value, (list, tuple, set, frozenset)):
                options = [f"{name}={_literal(v)}" for v in value]
                if not options:
                    raise ValueError(f"Empty option list for filter field {name!r}")
                clauses.append(options[0] if len(options) == 1 else f"({' OR '.join(options)})")
            else:
                clauses.append(f"{name}={_literal(value)}")
        return " AND ".join(clauses) or None


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return "'" + str(value).replace("'", "''") + "'"


@dataclass
class ListResult:
    """One page of records."""

    items: list[dict]
    page: int = 1
    per_page: int = 100
    total_items: Optional[int] = None


class RecordStore(Protocol):
    """Filtered CRUD over named collections."""

    def get(self, table: str, record_id: str) -> dict: ...

    def list(self, table: str, query: Optional[RecordQuery] = None) -> ListResult: ...

    def create(self, table: str, body: Mapping[str, Any]) -> dict: ...

    def update(self, table: str, record_id: str, patch: Mapping[str, Any]) -> dict: ...

    def delete(self, table: str, record_id: str) -> None: ...


class HttpRecordStore:
    """RecordStore backed by the hosted collections API."""

    def __init__(
        self,
        base_url: str,
        credentials: CredentialStore,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        """Initialize client.

        Args:
            base_url: Backend base URL (no trailing slash)
            credentials: Source of the bearer token
            timeout: Request timeout in seconds
            session: HTTP session (a new one if not provided)
        """
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.timeout = timeout
        self._session = session or requests.Session()

    def _url(self, table: str, record_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/api/collections/{table}"
        return f"{url}/{record_id}" if record_id else url

    def _request(self, method: str, url: str, **kwargs) -> Any:
        """Send a request and decode the JSON reply."""
        headers = {"Content-Type": "application/json"}
        headers.update(self.credentials.auth_headers())
        try:
            response = self._session.request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.exceptions.Timeout:
            raise RecordStoreError("Request timed out")
        except requests.exceptions.RequestException as e:
            raise RecordStoreError(f"NetworkError: {e}")

        if not response.ok:
            status = response.status_code
            if status == 401:
                self.credentials.invalidate()
            message = _error_message(response) or f"{method} {url} failed with HTTP {status}"
            logger.debug(f"{method} {url} -> {status}: {message}")
            if status == 404:
                raise RecordNotFoundError(message, status)
            if status == 409:
                raise RecordConflictError(message, status)
            raise RecordStoreError(message, status)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise RecordStoreError(f"Malformed JSON from {method} {url}", response.status_code)

    def get(self, table: str, record_id: str) -> dict:
        return self._request("GET", self._url(table, record_id))

    def list(self, table: str, query: Optional[RecordQuery] = None) -> ListResult:
        query = query or RecordQuery()
        params: dict[str, Any] = {"perPage": query.per_page, "page": query.page}
        rendered = query.render_filter()
        if rendered:
            params["filter"] = rendered
        if query.sort:
            params["sort"] = query.sort

        data = self._request("GET", self._url(table), params=params) or {}
        return ListResult(
            items=data.get("items", []),
            page=data.get("page", query.page),
            per_page=data.get("perPage", query.per_page),
            total_items=data.get("totalItems"),
        )

    def create(self, table: str, body: Mapping[str, Any]) -> dict:
        return self._request("POST", self._url(table), json=dict(body))

    def update(self, table: str, record_id: str, patch: Mapping[str, Any]) -> dict:
        return self._request("PATCH", self._url(table, record_id), json=dict(patch))

    def delete(self, table: str, record_id: str) -> None:
        self._request("DELETE", self._url(table, record_id))


def _error_message(response: requests.Response) -> Optional[str]:
    text = (response.text or "").strip()
    if not text:
        return None
    try:
        body = response.json()
    except ValueError:
        return text
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or None
    return None
