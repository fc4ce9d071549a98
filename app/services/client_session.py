"""Client sessions: one per browser, composing the expense components.

A `ClientSession` owns its backend client instance, the interaction event
bus, the inactivity monitor, the live expense feed and the derived spending
summary, plus the presentation state (active tab, refresh generation).

Lifecycle:
    start()    subscribe to auth state, wire feed -> summary, arm the monitor
    dispose()  cancel the monitor, close the feed, drop every listener

The `SessionRegistry` maps session cookies to sessions and disposes them on
teardown and application shutdown.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Dict, List, Optional

from app.backend.base import AuthUser, BackendClient
from app.backend.local import ChangeHub, make_backend_client
from app.core.config import Settings
from app.models.constants import ACTIVITY_EVENTS, DASHBOARD_TABS, TEARDOWN_EVENT
from app.services.events import EventBus, Observable
from app.services.expense_feed import ExpenseFeed, FeedState
from app.services.expense_gateway import Confirm, ExpenseGateway, MutationResult
from app.services.session_monitor import Scheduler, SessionActivityMonitor
from app.services.summary import NO_DATA, SpendingSummary, summarize

logger = logging.getLogger("app.session")


class ClientSession:
    def __init__(
        self,
        session_id: str,
        backend: BackendClient,
        settings: Settings,
        scheduler: Optional[Scheduler] = None,
        on_expired: Optional[Callable[["ClientSession"], None]] = None,
    ):
        self.id = session_id
        self.backend = backend
        self.events = EventBus()
        self.auth: Observable[Optional[AuthUser]] = Observable(None)
        self.feed = ExpenseFeed(backend, settings.expenses_collection)
        self.gateway = ExpenseGateway(backend, settings.expenses_collection)
        self.monitor = SessionActivityMonitor(
            self.events,
            backend.sign_out,
            idle_timeout=settings.session_idle_timeout_seconds,
            scheduler=scheduler,
            on_expired=self._expired,
        )
        self._on_expired = on_expired
        self.active_tab = DASHBOARD_TABS[0]
        self.refresh_generation = 0
        self.summary: SpendingSummary = NO_DATA
        self._top_n = settings.chart_top_categories
        self._unsubscribers: List[Callable[[], None]] = []
        self._disposed = False

    @property
    def user(self) -> Optional[AuthUser]:
        return self.auth.value

    @property
    def disposed(self) -> bool:
        return self._disposed

    def start(self) -> None:
        self._unsubscribers.append(self.feed.add_listener(self._on_feed_state))
        self._unsubscribers.append(self.auth.subscribe(self._on_auth_changed, emit_current=False))
        self._unsubscribers.append(self.backend.on_auth_state_changed(self.auth.set))
        self.monitor.start()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self.monitor.dispose()
        self.feed.close()
        for unsubscribe in reversed(self._unsubscribers):
            unsubscribe()
        self._unsubscribers.clear()
        self.backend.close()
        logger.debug("client session disposed")

    # Presentation state -----------------------------------------
    def select_tab(self, tab: str) -> None:
        if tab not in DASHBOARD_TABS:
            raise ValueError(f"unknown tab '{tab}'")
        self.active_tab = tab

    def refresh(self) -> None:
        """Force the feed to resubscribe (new generation)."""
        self.refresh_generation += 1
        if self.user is not None:
            self.feed.open(self.user.uid, self.refresh_generation)

    # Events -------------------------------------------------------
    def record_activity(self, kind: str) -> None:
        if kind not in ACTIVITY_EVENTS:
            raise ValueError(f"unknown activity kind '{kind}'")
        self.events.publish(kind)

    def teardown(self) -> None:
        self.events.publish(TEARDOWN_EVENT)

    # Auth -----------------------------------------------------------
    async def sign_up(self, email: str, password: str) -> AuthUser:
        return await self.backend.sign_up(email, password)

    async def sign_in(self, email: str, password: str) -> AuthUser:
        return await self.backend.sign_in(email, password)

    async def sign_out(self) -> None:
        await self.backend.sign_out()

    # Mutations ----------------------------------------------------
    async def add_expense(
        self, user: AuthUser, category: object, amount: object, note: object = None
    ) -> MutationResult:
        result = await self.gateway.create(user, category, amount, note)
        if result.ok:
            self.refresh()
        return result

    async def delete_expense(self, expense_id: str, confirm: Confirm) -> MutationResult:
        return await self.gateway.delete(expense_id, confirm)

    # Internal ------------------------------------------------------
    def _on_auth_changed(self, user: Optional[AuthUser]) -> None:
        if user is None:
            self.feed.close()
            self.active_tab = DASHBOARD_TABS[0]
            return
        self.feed.open(user.uid, self.refresh_generation)
        self.monitor.restart()

    def _expired(self) -> None:
        if self._on_expired is not None:
            self._on_expired(self)

    def _on_feed_state(self, state: FeedState) -> None:
        self.summary = summarize(state.expenses, top_n=self._top_n)


class SessionRegistry:
    def __init__(
        self,
        settings: Settings,
        hub: ChangeHub,
        scheduler: Optional[Scheduler] = None,
        **backend_options,
    ):
        self._settings = settings
        self._hub = hub
        self._scheduler = scheduler
        self._backend_options = {
            "password_min_length": settings.password_min_length,
            "hash_iterations": settings.password_hash_iterations,
            **backend_options,
        }
        self._sessions: Dict[str, ClientSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> ClientSession:
        session_id = uuid.uuid4().hex
        backend = make_backend_client(
            self._settings.backend_provider, self._hub, **self._backend_options
        )
        session = ClientSession(
            session_id,
            backend,
            self._settings,
            scheduler=self._scheduler,
            on_expired=self._on_session_expired,
        )
        session.start()
        self._sessions[session_id] = session
        logger.debug("client session created")
        return session

    def get(self, session_id: Optional[str]) -> Optional[ClientSession]:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def discard(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.dispose()

    def _on_session_expired(self, session: ClientSession) -> None:
        logger.info("discarding client session after inactivity")
        self.discard(session.id)

    def dispose_all(self) -> None:
        for session_id in list(self._sessions):
            self.discard(session_id)
