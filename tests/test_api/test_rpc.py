"""Tests for the remote procedure client."""

from unittest.mock import MagicMock

import pytest
import requests

from conftest import make_response
from borrowkit.api.auth import AUTH_EXPIRED, CredentialStore
from borrowkit.api.rpc import (
    ErrorKind,
    RemoteProcedureClient,
    RpcDomainError,
    RpcTransportError,
    SessionExpiredError,
    sentinel_message,
)
from borrowkit.errors import is_network_error


class TestRemoteProcedureClientInit:
    """Tests for client initialization."""

    def test_strips_trailing_slash(self):
        """Test base URL is normalized."""
        client = RemoteProcedureClient("https://api.example.com/", CredentialStore())
        assert client.base_url == "https://api.example.com"

    def test_default_timeout(self):
        """Test default timeout is set."""
        client = RemoteProcedureClient("https://api.example.com", CredentialStore())
        assert client.timeout == 10

    def test_session_created(self):
        """Test a requests session is created when none is given."""
        client = RemoteProcedureClient("https://api.example.com", CredentialStore())
        assert isinstance(client._session, requests.Session)


@pytest.fixture
def client(credentials: CredentialStore) -> RemoteProcedureClient:
    """Client with mocked session."""
    client = RemoteProcedureClient("https://api.example.com", credentials, timeout=5)
    client._session = MagicMock()
    return client


class TestCall:
    """Tests for successful calls."""

    def test_posts_params_to_procedure_url(self, client, credentials):
        """Test the procedure is invoked with a JSON body and bearer auth."""
        client._session.post.return_value = make_response(200, {"id": "loan-1"})

        result = client.call("approve_borrow", {"p_request_id": "req-1"})

        assert result == {"id": "loan-1"}
        call_args = client._session.post.call_args
        assert call_args[0][0] == "https://api.example.com/api/rpc/approve_borrow"
        assert call_args[1]["json"] == {"p_request_id": "req-1"}
        assert call_args[1]["headers"]["Authorization"] == f"Bearer {credentials.token}"
        assert call_args[1]["timeout"] == 5

    def test_omits_auth_header_without_token(self, client, credentials):
        """Test no Authorization header is sent when signed out."""
        credentials.clear()
        client._session.post.return_value = make_response(200, {"ok": True})

        client.call("request_borrow", {})

        headers = client._session.post.call_args[1]["headers"]
        assert "Authorization" not in headers

    def test_204_returns_none(self, client):
        """Test an empty reply resolves to no value."""
        client._session.post.return_value = make_response(204, content_type=None)

        assert client.call("return_item", {"p_loan_id": "loan-1"}) is None

    def test_non_json_content_type_returns_none(self, client):
        """Test a non-JSON reply is not parsed."""
        response = make_response(200, text="OK", content_type="text/plain")
        client._session.post.return_value = response

        assert client.call("return_item", {"p_loan_id": "loan-1"}) is None
        response.json.assert_not_called()

    def test_malformed_json_is_transport_error(self, client):
        """Test a JSON content type with an unreadable body."""
        client._session.post.return_value = make_response(
            200, text="{not json", content_type="application/json"
        )

        with pytest.raises(RpcTransportError, match="malformed JSON"):
            client.call("approve_borrow", {})


class TestErrors:
    """Tests for failure classification."""

    def test_domain_message_surfaces_verbatim(self, client):
        """Test a server message on a 400 becomes a domain error."""
        client._session.post.return_value = make_response(
            400, {"message": "Item is not available for borrowing"}
        )

        with pytest.raises(RpcDomainError) as exc_info:
            client.call("request_borrow", {})

        error = exc_info.value
        assert str(error) == "Item is not available for borrowing"
        assert error.kind == ErrorKind.DOMAIN
        assert error.is_domain
        assert error.status == 400
        assert error.procedure == "request_borrow"

    def test_error_field_is_used(self, client):
        """Test the ``error`` field is read when ``message`` is absent."""
        client._session.post.return_value = make_response(
            409, {"error": "Request is not pending"}
        )

        with pytest.raises(RpcDomainError, match="Request is not pending"):
            client.call("approve_borrow", {})

    def test_raw_text_is_used(self, client):
        """Test a plain-text body is the message."""
        client._session.post.return_value = make_response(
            500, text="loan already exists", content_type="text/plain"
        )

        with pytest.raises(RpcDomainError, match="loan already exists"):
            client.call("approve_borrow", {})

    def test_empty_body_is_sentinel_transport_error(self, client):
        """Test an empty error body yields the generic sentinel."""
        client._session.post.return_value = make_response(500, text="", content_type=None)

        with pytest.raises(RpcTransportError) as exc_info:
            client.call("request_borrow", {})

        assert str(exc_info.value) == "RPC request_borrow failed"
        assert str(exc_info.value) == sentinel_message("request_borrow")
        assert not exc_info.value.is_domain

    def test_missing_procedure_is_transport_error(self, client):
        """Test a 404 from the router (non-JSON) is not a domain decision."""
        client._session.post.return_value = make_response(
            404, text="404 page not found", content_type="text/plain"
        )

        with pytest.raises(RpcTransportError):
            client.call("request_borrow", {})

    def test_forbidden_is_transport_error(self, client):
        """Test a 403 is treated as the procedure being unavailable to us."""
        client._session.post.return_value = make_response(403, {"message": "permission denied"})

        with pytest.raises(RpcTransportError, match="permission denied"):
            client.call("request_borrow", {})

    def test_timeout_is_transport_error(self, client):
        """Test request timeout."""
        client._session.post.side_effect = requests.exceptions.Timeout()

        with pytest.raises(RpcTransportError, match="timed out"):
            client.call("request_borrow", {})

    def test_connection_error_is_network_error(self, client):
        """Test an unreachable server."""
        client._session.post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(RpcTransportError) as exc_info:
            client.call("request_borrow", {})

        assert is_network_error(exc_info.value)

    def test_failures_are_logged(self, client, log_records):
        """Test every failure leaves a warning."""
        client._session.post.return_value = make_response(400, {"message": "nope"})

        with pytest.raises(RpcDomainError):
            client.call("approve_borrow", {})

        warnings = [r["message"] for r in log_records if r["level"].name == "WARNING"]
        assert any("approve_borrow" in m and "domain" in m for m in warnings)


class TestSessionExpiry:
    """Tests for 401 handling."""

    def test_401_invalidates_before_raising(self, client, credentials):
        """Test listeners see the logged-out state exactly once, before the error."""
        seen = []
        credentials.events.on(AUTH_EXPIRED, lambda: seen.append(credentials.token))
        client._session.post.return_value = make_response(401, {"message": "Unauthorized"})

        with pytest.raises(SessionExpiredError) as exc_info:
            client.call("approve_borrow", {})

        assert seen == [None]
        assert credentials.token is None
        assert exc_info.value.status == 401
        assert exc_info.value.kind == ErrorKind.TRANSPORT

    def test_401_clears_persisted_tokens(self, client, credentials):
        """Test the token file is removed."""
        assert credentials.path.exists()
        client._session.post.return_value = make_response(401, text="", content_type=None)

        with pytest.raises(SessionExpiredError):
            client.call("request_borrow", {})

        assert not credentials.path.exists()
