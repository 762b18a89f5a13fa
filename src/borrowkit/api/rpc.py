"""Client for named server-side procedures.

Procedures are invoked with ``POST /api/rpc/<name>`` and a JSON body. Every
failure is raised as an ``RpcError`` tagged with an ``ErrorKind``:

- DOMAIN: the server made a business decision (e.g. "Item is not available
  for borrowing"). The message is the server's own text.
- TRANSPORT: the procedure could not be reached or refused us (network
  failure, 401/403, missing procedure, empty error body, unreadable reply).

Callers branch on the kind, never on the wording of the message.
"""

from enum import Enum
from typing import Any, Optional

import requests

from ..errors import BorrowkitError
from ..logger import logger
from .auth import CredentialStore

SESSION_EXPIRED_MESSAGE = "Your session has expired. Please sign in again."


class ErrorKind(str, Enum):
    """Where an RPC failure came from."""

    DOMAIN = "domain"
    TRANSPORT = "transport"


class RpcError(BorrowkitError):
    """Base exception for remote procedure failures."""

    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(
        self,
        message: str,
        procedure: str,
        status: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.procedure = procedure
        self.status = status

    @property
    def is_domain(self) -> bool:
        return self.kind == ErrorKind.DOMAIN


class RpcDomainError(RpcError):
    """Raised when the server rejects the call for business reasons."""

    kind = ErrorKind.DOMAIN


class RpcTransportError(RpcError):
    """Raised when the procedure is unreachable or the reply unusable."""

    kind = ErrorKind.TRANSPORT


class SessionExpiredError(RpcTransportError):
    """Raised on HTTP 401, after credentials have been invalidated."""

    def __init__(self, procedure: str):
        super().__init__(SESSION_EXPIRED_MESSAGE, procedure, status=401)


def sentinel_message(procedure: str) -> str:
    """Generic failure text used when the server gave no message."""
    return f"RPC {procedure} failed"


class RemoteProcedureClient:
    """Invokes backend procedures with bearer auth."""

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

    def call(self, procedure: str, params: dict[str, Any]) -> Any:
        """Invoke a procedure.

        Args:
            procedure: Procedure name, e.g. ``approve_borrow``
            params: JSON-serializable parameters

        Returns:
            Decoded JSON result, or None for 204 / non-JSON replies

        Raises:
            RpcDomainError: Server rejected the call with a message
            RpcTransportError: Call could not be completed
            SessionExpiredError: Token rejected (credentials already cleared)
        """
        headers = {"Content-Type": "application/json"}
        headers.update(self.credentials.auth_headers())

        try:
            response = self._session.post(
                f"{self.base_url}/api/rpc/{procedure}",
                json=params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise self._log(RpcTransportError("Request timed out", procedure))
        except requests.exceptions.RequestException as e:
            raise self._log(RpcTransportError(f"NetworkError: {e}", procedure))

        if not response.ok:
            if response.status_code == 401:
                # Listeners must see the logged-out state before the error surfaces.
                self.credentials.invalidate()
                raise self._log(SessionExpiredError(procedure))
            raise self._log(self._error_from_response(procedure, response))

        if response.status_code == 204:
            return None
        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            return None
        try:
            return response.json()
        except ValueError:
            raise self._log(
                RpcTransportError(
                    f"RPC {procedure} returned malformed JSON",
                    procedure,
                    status=response.status_code,
                )
            )

    def _error_from_response(self, procedure: str, response: requests.Response) -> RpcError:
        """Build an error from a non-2xx reply.

        The message is, in order: the JSON ``message``/``error`` field, the
        raw body text, or the ``RPC <name> failed`` sentinel.
        """
        status = response.status_code
        text = response.text or ""
        message = None
        if text.strip():
            try:
                body = response.json()
            except ValueError:
                message = text.strip()
            else:
                if isinstance(body, dict):
                    message = body.get("message") or body.get("error")

        if not message or status in (401, 403):
            return RpcTransportError(message or sentinel_message(procedure), procedure, status)
        if status == 404 and not text.strip().startswith("{"):
            return RpcTransportError(message, procedure, status)
        return RpcDomainError(str(message), procedure, status)

    def _log(self, error: RpcError) -> RpcError:
        logger.warning(
            f"RPC {error.procedure} failed ({error.kind.value}, status={error.status}): "
            f"{error.message}"
        )
        return error
