from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, List, NamedTuple, Optional, TypeVar

__all__ = ["Event", "EventBus", "Observable"]

T = TypeVar("T")


class Event(NamedTuple):
    name: str
    ts: str
    payload: dict


EventHandler = Callable[[Event], Any]


class EventBus:
    """Named-event listener registry, one per client session.

    Stands in for the browser window as the source of interaction and
    page-lifecycle events.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[EventHandler]] = {}

    def subscribe(self, name: str, handler: EventHandler) -> None:
        self._subscribers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(name)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._subscribers[name]

    def publish(self, name: str, payload: Optional[dict] = None) -> int:
        """Deliver to every handler of `name`; returns how many ran."""
        handlers = list(self._subscribers.get(name, ()))
        if not handlers:
            return 0
        event = Event(
            name=name,
            ts=datetime.now(timezone.utc).isoformat(),
            payload=payload or {},
        )
        for handler in handlers:
            handler(event)
        return len(handlers)

    def handler_count(self, name: Optional[str] = None) -> int:
        if name is not None:
            return len(self._subscribers.get(name, ()))
        return sum(len(h) for h in self._subscribers.values())


class Observable(Generic[T]):
    """A current value plus change listeners."""

    def __init__(self, initial: T):
        self._value = initial
        self._handlers: List[Callable[[T], Any]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        if value == self._value:
            return
        self._value = value
        for handler in list(self._handlers):
            handler(value)

    def subscribe(
        self, handler: Callable[[T], Any], emit_current: bool = True
    ) -> Callable[[], None]:
        self._handlers.append(handler)
        if emit_current:
            handler(self._value)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe
