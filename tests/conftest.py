from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from app.backend.base import (
    AuthUser,
    BackendClient,
    BackendError,
    Query,
    Snapshot,
    Subscription,
)
from app.backend.local import ChangeHub
from app.core.config import Settings
from app.db.dal import Database
from app.db.migrate import apply_migrations
from app.main import create_app


class FakeTimer:
    def __init__(self, when: float, callback: Callable[..., Any], args: Tuple[Any, ...]):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock with the call_later / time subset of an event loop."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: List[FakeTimer] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeTimer:
        timer = FakeTimer(self.now + delay, callback, args)
        self.timers.append(timer)
        return timer

    def advance_to(self, target: float) -> None:
        while True:
            due = [t for t in self.pending() if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.now = timer.when
            timer.fired = True
            timer.callback(*timer.args)
        self.now = target

    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]


class FakeBackend(BackendClient):
    """In-memory backend recording calls; errors are injected per operation."""

    def __init__(self, user: Optional[AuthUser] = None):
        self.user = user
        self.added: List[Tuple[str, Dict[str, Any]]] = []
        self.deleted: List[Tuple[str, str]] = []
        self.subscriptions: List[Dict[str, Any]] = []
        self.add_error: Optional[BackendError] = None
        self.delete_error: Optional[BackendError] = None
        self.sign_out_error: Optional[Exception] = None
        self.sign_out_calls = 0
        self._handlers: List[Callable[[Optional[AuthUser]], None]] = []

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self.user

    def on_auth_state_changed(self, handler):
        self._handlers.append(handler)
        handler(self.user)
        return lambda: self._handlers.remove(handler)

    async def sign_up(self, email: str, password: str) -> AuthUser:
        return await self.sign_in(email, password)

    async def sign_in(self, email: str, password: str) -> AuthUser:
        self.user = AuthUser(uid=f"uid-{email}", email=email)
        for handler in list(self._handlers):
            handler(self.user)
        return self.user

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.user = None
        for handler in list(self._handlers):
            handler(None)

    async def add(self, collection: str, record: Dict[str, Any]) -> str:
        if self.add_error is not None:
            raise self.add_error
        self.added.append((collection, record))
        return f"doc-{len(self.added)}"

    async def delete(self, collection: str, doc_id: str) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append((collection, doc_id))

    def on_snapshot(self, query: Query, on_next, on_error) -> Subscription:
        entry: Dict[str, Any] = {"query": query, "on_next": on_next, "on_error": on_error}

        def close() -> None:
            entry["closed"] = True

        entry["closed"] = False
        entry["subscription"] = Subscription(close)
        self.subscriptions.append(entry)
        return entry["subscription"]

    def push(self, *docs, index: int = -1) -> None:
        """Deliver a snapshot to a recorded subscription (latest by default)."""
        self.subscriptions[index]["on_next"](Snapshot(documents=tuple(docs)))

    def fail(self, error: BackendError, index: int = -1) -> None:
        self.subscriptions[index]["on_error"](error)


@pytest.fixture
def settings(tmp_path) -> Settings:
    s = Settings(
        data_dir=tmp_path,
        db_filename="test.sqlite3",
        debug=False,
        password_hash_iterations=1_000,
    )
    s.init_post_load()
    return s


@pytest.fixture
def hub(settings) -> ChangeHub:
    apply_migrations(settings.db_path)
    return ChangeHub(Database(settings.db_path))


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend(user=AuthUser(uid="u1", email="u1@example.com"))


@pytest.fixture
def client(settings):
    app = create_app(settings)
    # Context manager keeps one event loop alive across requests (timers, live queries)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def signed_in_client(client):
    resp = client.post("/auth/sign-up", json={"email": "ada@example.com", "password": "secret1"})
    assert resp.status_code == 201
    return client
