"""Inactivity-based session expiration.

A client session signs itself out after `idle_timeout` seconds without
interaction, and best-effort when the page is torn down. The monitor owns at
most one pending deadline: every interaction cancels it and arms a new one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Set

from app.models.constants import ACTIVITY_EVENTS, TEARDOWN_EVENT
from app.services.events import Event, EventBus

logger = logging.getLogger("app.session")

DEFAULT_IDLE_TIMEOUT = 15 * 60


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Subset of the asyncio event loop API the monitor relies on."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...

    def time(self) -> float: ...


class SessionActivityMonitor:
    def __init__(
        self,
        events: EventBus,
        sign_out: Callable[[], Awaitable[None]],
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        scheduler: Optional[Scheduler] = None,
        on_expired: Optional[Callable[[], None]] = None,
    ):
        self._events = events
        self._sign_out = sign_out
        self._on_expired = on_expired
        self._idle_timeout = idle_timeout
        self._scheduler = scheduler
        self._handle: Optional[TimerHandle] = None
        self._deadline: Optional[float] = None
        self._tasks: Set[asyncio.Future] = set()
        self._started = False
        self._disposed = False

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def seconds_remaining(self) -> Optional[float]:
        if self._deadline is None or self._scheduler is None:
            return None
        return max(0.0, self._deadline - self._scheduler.time())

    def start(self) -> None:
        if self._started or self._disposed:
            return
        if self._scheduler is None:
            self._scheduler = asyncio.get_running_loop()
        for kind in ACTIVITY_EVENTS:
            self._events.subscribe(kind, self._on_activity)
        self._events.subscribe(TEARDOWN_EVENT, self._on_teardown)
        self._started = True
        self._rearm()

    def restart(self) -> None:
        """Arm a fresh deadline, e.g. after a sign-in (which is not an interaction event)."""
        if not self._started or self._disposed:
            return
        self._rearm()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._started:
            for kind in ACTIVITY_EVENTS:
                self._events.unsubscribe(kind, self._on_activity)
            self._events.unsubscribe(TEARDOWN_EVENT, self._on_teardown)
        self._cancel()

    # Internal --------------------------------------------------
    def _cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._deadline = None

    def _rearm(self) -> None:
        self._cancel()
        assert self._scheduler is not None
        self._deadline = self._scheduler.time() + self._idle_timeout
        self._handle = self._scheduler.call_later(self._idle_timeout, self._expire)

    def _on_activity(self, event: Event) -> None:
        if self._disposed:
            return
        self._rearm()

    def _expire(self) -> None:
        self._handle = None
        self._deadline = None
        logger.info("Session expired due to inactivity.")
        self._spawn(self._run_sign_out("inactivity", self._on_expired))

    def _on_teardown(self, event: Event) -> None:
        self._spawn(self._run_sign_out("teardown"))

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_sign_out(
        self, reason: str, then: Optional[Callable[[], None]] = None
    ) -> None:
        try:
            await self._sign_out()
            logger.info("signed out (%s)", reason)
        except Exception:
            logger.exception("sign-out failed (%s)", reason)
        if then is not None:
            then()
