"""Backend access: remote procedures, record collections, credentials."""

from .auth import AUTH_EXPIRED, CredentialStore
from .records import (
    HttpRecordStore,
    ListResult,
    RecordConflictError,
    RecordNotFoundError,
    RecordQuery,
    RecordStore,
    RecordStoreError,
)
from .rpc import (
    ErrorKind,
    RemoteProcedureClient,
    RpcDomainError,
    RpcError,
    RpcTransportError,
    SessionExpiredError,
)

__all__ = [
    # Credentials
    "AUTH_EXPIRED",
    "CredentialStore",
    # Collections
    "HttpRecordStore",
    "ListResult",
    "RecordConflictError",
    "RecordNotFoundError",
    "RecordQuery",
    "RecordStore",
    "RecordStoreError",
    # Procedures
    "ErrorKind",
    "RemoteProcedureClient",
    "RpcDomainError",
    "RpcError",
    "RpcTransportError",
    "SessionExpiredError",
]
