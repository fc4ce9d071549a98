"""SQLite-backed implementation of the backend contract.

One `ChangeHub` is shared per database; each browser session gets its own
`LocalBackendClient` (its own signed-in identity), mirroring how every browser
tab runs its own client SDK instance against a shared managed backend.

Live queries re-run their SQL on every write to their collection and deliver
the full result set through `loop.call_soon`, so deliveries for one
subscription happen in write order and never overlap.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import os
import re
import secrets
import sqlite3
import string
from typing import Any, Callable, Dict, List, Optional, Set

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from app.db.dal import Database
from .base import (
    SERVER_TIMESTAMP,
    AuthStateHandler,
    AuthUser,
    BackendClient,
    BackendError,
    Document,
    ErrorCode,
    ErrorHandler,
    Query,
    Snapshot,
    SnapshotHandler,
    Subscription,
)

logger = logging.getLogger("app.backend")

PBKDF2_ITERATIONS = 390_000
OWNER_FIELD = "userId"
_ID_ALPHABET = string.ascii_letters + string.digits
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

PERMISSION_DENIED_MSG = "Missing or insufficient permissions."
UNAUTHENTICATED_MSG = "The request does not have valid authentication credentials."


def _new_document_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(20))


def _hash_password(password: str, salt: bytes, iterations: int) -> str:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(), length=32, salt=salt, iterations=iterations
    )
    digest = base64.urlsafe_b64encode(kdf.derive(password.encode("utf-8")))
    return f"{iterations}${digest.decode('ascii')}"


def _verify_password(password: str, salt: bytes, stored: str) -> bool:
    iterations_str, _, digest = stored.partition("$")
    try:
        iterations = int(iterations_str)
        expected = base64.urlsafe_b64decode(digest.encode("ascii"))
    except ValueError:
        return False
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(), length=32, salt=salt, iterations=iterations
    )
    try:
        kdf.verify(password.encode("utf-8"), expected)
    except InvalidKey:
        return False
    return True


class _LiveQuery:
    def __init__(
        self,
        hub: "ChangeHub",
        query: Query,
        on_next: SnapshotHandler,
        on_error: ErrorHandler,
        loop: asyncio.AbstractEventLoop,
    ):
        self.hub = hub
        self.query = query
        self.on_next = on_next
        self.on_error = on_error
        self.loop = loop
        self.active = True
        self.release: Callable[[], None] = lambda: hub.remove(self)

    def schedule_refresh(self) -> None:
        self.loop.call_soon(self._refresh)

    def schedule_error(self, error: BackendError) -> None:
        self.loop.call_soon(self._fail, error)

    def _refresh(self) -> None:
        if not self.active:
            return
        try:
            rows = self.hub.db.query_documents(
                self.query.collection,
                where=self.query.where,
                order_by=self.query.order_by,
                descending=self.query.descending,
            )
        except sqlite3.Error as e:
            logger.warning("live query failed: %s", e)
            self._fail(BackendError(ErrorCode.UNAVAILABLE, str(e)))
            return
        snapshot = Snapshot(
            documents=tuple(Document(id=doc_id, data=data) for doc_id, data in rows)
        )
        self.on_next(snapshot)

    def _fail(self, error: BackendError) -> None:
        if not self.active:
            return
        # Errors terminate the listener, matching managed live query semantics.
        self.active = False
        self.release()
        self.on_error(error)


class ChangeHub:
    """Per-database registry of live queries, notified after every write."""

    def __init__(self, db: Database):
        self.db = db
        self._live: Dict[str, Set[_LiveQuery]] = {}

    def add(self, live: _LiveQuery) -> None:
        self._live.setdefault(live.query.collection, set()).add(live)

    def remove(self, live: _LiveQuery) -> None:
        self._live.get(live.query.collection, set()).discard(live)

    def notify(self, collection: str) -> None:
        for live in list(self._live.get(collection, ())):
            live.schedule_refresh()

    def listener_count(self, collection: Optional[str] = None) -> int:
        if collection is not None:
            return len(self._live.get(collection, ()))
        return sum(len(v) for v in self._live.values())


class LocalBackendClient(BackendClient):
    def __init__(
        self,
        hub: ChangeHub,
        password_min_length: int = 6,
        hash_iterations: int = PBKDF2_ITERATIONS,
    ):
        self._hub = hub
        self._db = hub.db
        self._password_min_length = password_min_length
        self._hash_iterations = hash_iterations
        self._user: Optional[AuthUser] = None
        self._auth_handlers: List[AuthStateHandler] = []
        self._live: Set[_LiveQuery] = set()

    # Auth -----------------------------------------------------------
    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._user

    def on_auth_state_changed(self, handler: AuthStateHandler) -> Callable[[], None]:
        self._auth_handlers.append(handler)
        handler(self._user)

        def unsubscribe() -> None:
            if handler in self._auth_handlers:
                self._auth_handlers.remove(handler)

        return unsubscribe

    def _set_user(self, user: Optional[AuthUser]) -> None:
        if user == self._user:
            return
        self._user = user
        for handler in list(self._auth_handlers):
            handler(user)

    async def sign_up(self, email: str, password: str) -> AuthUser:
        email = (email or "").strip()
        if not _EMAIL_RE.match(email):
            raise BackendError(ErrorCode.INVALID_EMAIL, "The email address is badly formatted.")
        if len(password or "") < self._password_min_length:
            raise BackendError(
                ErrorCode.WEAK_PASSWORD,
                f"Password should be at least {self._password_min_length} characters.",
            )
        salt = os.urandom(16)
        uid = _new_document_id()
        try:
            self._db.create_user(
                uid,
                email,
                _hash_password(password, salt, self._hash_iterations),
                base64.urlsafe_b64encode(salt).decode("ascii"),
            )
        except ValueError:
            raise BackendError(
                ErrorCode.EMAIL_ALREADY_IN_USE,
                "The email address is already in use by another account.",
            )
        except sqlite3.Error as e:
            raise BackendError(ErrorCode.UNAVAILABLE, str(e)) from e
        user = AuthUser(uid=uid, email=email)
        logger.info("account created uid=%s", uid)
        self._set_user(user)
        return user

    async def sign_in(self, email: str, password: str) -> AuthUser:
        email = (email or "").strip()
        try:
            row = self._db.get_user_by_email(email)
        except sqlite3.Error as e:
            raise BackendError(ErrorCode.UNAVAILABLE, str(e)) from e
        if not row or not _verify_password(
            password or "", base64.urlsafe_b64decode(row["salt"]), row["password_hash"]
        ):
            raise BackendError(ErrorCode.INVALID_CREDENTIAL, "Invalid email or password.")
        user = AuthUser(uid=row["uid"], email=row["email"])
        self._set_user(user)
        return user

    async def sign_out(self) -> None:
        if self._user is None:
            return
        logger.info("signing out uid=%s", self._user.uid)
        self._set_user(None)
        for live in list(self._live):
            live.schedule_error(BackendError(ErrorCode.PERMISSION_DENIED, PERMISSION_DENIED_MSG))

    # Documents ------------------------------------------------------
    def _require_owner(self, record: Dict[str, Any]) -> AuthUser:
        if self._user is None:
            raise BackendError(ErrorCode.UNAUTHENTICATED, UNAUTHENTICATED_MSG)
        if record.get(OWNER_FIELD) != self._user.uid:
            raise BackendError(ErrorCode.PERMISSION_DENIED, PERMISSION_DENIED_MSG)
        return self._user

    async def add(self, collection: str, record: Dict[str, Any]) -> str:
        user = self._require_owner(record)
        ts_fields = [k for k, v in record.items() if v is SERVER_TIMESTAMP]
        payload = {k: (None if v is SERVER_TIMESTAMP else v) for k, v in record.items()}
        doc_id = _new_document_id()
        try:
            self._db.insert_document(
                collection, doc_id, user.uid, payload, server_timestamp_fields=ts_fields
            )
        except (TypeError, ValueError) as e:
            raise BackendError(ErrorCode.INVALID_ARGUMENT, str(e)) from e
        except sqlite3.Error as e:
            raise BackendError(ErrorCode.UNAVAILABLE, str(e)) from e
        self._hub.notify(collection)
        return doc_id

    async def delete(self, collection: str, doc_id: str) -> None:
        if self._user is None:
            raise BackendError(ErrorCode.UNAUTHENTICATED, UNAUTHENTICATED_MSG)
        try:
            self._db.delete_document(collection, doc_id, owner_uid=self._user.uid)
        except ValueError:
            raise BackendError(
                ErrorCode.NOT_FOUND, f"No document to delete: {collection}/{doc_id}"
            )
        except PermissionError:
            raise BackendError(ErrorCode.PERMISSION_DENIED, PERMISSION_DENIED_MSG)
        except sqlite3.Error as e:
            raise BackendError(ErrorCode.UNAVAILABLE, str(e)) from e
        self._hub.notify(collection)

    def on_snapshot(
        self, query: Query, on_next: SnapshotHandler, on_error: ErrorHandler
    ) -> Subscription:
        loop = asyncio.get_running_loop()
        live = _LiveQuery(self._hub, query, on_next, on_error, loop)

        def release() -> None:
            self._hub.remove(live)
            self._live.discard(live)

        def close() -> None:
            live.active = False
            release()

        live.release = release

        if self._user is None or query.filter_value(OWNER_FIELD) != self._user.uid:
            live.schedule_error(BackendError(ErrorCode.PERMISSION_DENIED, PERMISSION_DENIED_MSG))
            return Subscription(close)
        self._hub.add(live)
        self._live.add(live)
        live.schedule_refresh()
        return Subscription(close)

    def close(self) -> None:
        for live in list(self._live):
            live.active = False
            self._hub.remove(live)
        self._live.clear()
        self._auth_handlers.clear()


_CLIENT_REGISTRY = {
    "local": LocalBackendClient,
}


def make_backend_client(kind: str, hub: ChangeHub, **options: Any) -> BackendClient:
    cls = _CLIENT_REGISTRY.get(kind)
    if not cls:
        raise ValueError(f"Unknown backend provider '{kind}'")
    return cls(hub, **options)
