"""Backend collaborator contract.

The expense client never talks to storage or identity directly. It depends on
two small interfaces, mirroring what a managed document database with live
queries and an auth service offer:

    - AuthBackend: identity change subscription, sign up / in / out.
    - DocumentBackend: add, delete and live `on_snapshot` queries.

Snapshots are always the complete ordered result set of a query at one
moment in time; consumers replace their state wholesale on every delivery.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple


class ErrorCode(str, Enum):
    PERMISSION_DENIED = "permission-denied"
    UNAVAILABLE = "unavailable"
    UNAUTHENTICATED = "unauthenticated"
    NOT_FOUND = "not-found"
    INVALID_ARGUMENT = "invalid-argument"
    INVALID_CREDENTIAL = "invalid-credential"
    INVALID_EMAIL = "invalid-email"
    EMAIL_ALREADY_IN_USE = "email-already-in-use"
    WEAK_PASSWORD = "weak-password"
    UNKNOWN = "unknown"


class BackendError(Exception):
    """Rejection reported by the backend; `code` is one of ErrorCode."""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"BackendError({self.code.value!r}, {self.message!r})"


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Placeholder resolved to the commit time by the backend.
SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class AuthUser:
    uid: str
    email: str


@dataclass(frozen=True)
class Document:
    id: str
    data: Mapping[str, Any]


@dataclass(frozen=True)
class Snapshot:
    documents: Tuple[Document, ...] = ()

    @property
    def size(self) -> int:
        return len(self.documents)

    def __iter__(self):
        return iter(self.documents)


@dataclass(frozen=True)
class Query:
    """Equality filters plus a single ordering field."""

    collection: str
    where: Tuple[Tuple[str, Any], ...] = ()
    order_by: Optional[str] = None
    descending: bool = False

    def filter_value(self, field_name: str) -> Any:
        for name, value in self.where:
            if name == field_name:
                return value
        return None


@dataclass
class Subscription:
    """Handle returned by `on_snapshot`; `unsubscribe()` is idempotent."""

    _close: Callable[[], None]
    closed: bool = field(default=False)

    def unsubscribe(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._close()


SnapshotHandler = Callable[[Snapshot], None]
ErrorHandler = Callable[[BackendError], None]
AuthStateHandler = Callable[[Optional[AuthUser]], None]


class AuthBackend(ABC):
    @property
    @abstractmethod
    def current_user(self) -> Optional[AuthUser]:
        raise NotImplementedError

    @abstractmethod
    def on_auth_state_changed(self, handler: AuthStateHandler) -> Callable[[], None]:
        """Call handler with the current identity now and on every change.

        Returns an unsubscribe callable.
        """
        raise NotImplementedError

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> AuthUser:
        raise NotImplementedError

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthUser:
        raise NotImplementedError

    @abstractmethod
    async def sign_out(self) -> None:
        """Idempotent; signing out while signed out is a no-op."""
        raise NotImplementedError


class DocumentBackend(ABC):
    @abstractmethod
    async def add(self, collection: str, record: Dict[str, Any]) -> str:
        """Persist a new record and return its backend-assigned id."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def on_snapshot(
        self, query: Query, on_next: SnapshotHandler, on_error: ErrorHandler
    ) -> Subscription:
        """Open a live query; handlers run on the event loop, one at a time."""
        raise NotImplementedError


class BackendClient(AuthBackend, DocumentBackend):
    """One client instance (one browser session) of the backend."""

    def close(self) -> None:
        """Release listeners held by this client."""
