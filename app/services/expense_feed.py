"""Live expense feed for one client session.

Keeps exactly one live query open for the current user (filter `userId`,
newest first) and materializes every snapshot into an immutable tuple of
`Expense` objects, replacing the previous list wholesale. No incremental
diffing is attempted: every snapshot is the complete result set.

A subscription token guards against late deliveries: a notification whose
token is not the current one (closed subscription, user switch, manual
refresh) is dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from functools import partial
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError

from app.backend.base import BackendError, DocumentBackend, Query, Snapshot, Subscription
from app.models.expense import Expense

logger = logging.getLogger("app.feed")


class FeedStatus(str, Enum):
    CLOSED = "closed"
    LOADING = "loading"
    LIVE = "live"
    STALE = "stale"


@dataclass(frozen=True)
class FeedState:
    expenses: Tuple[Expense, ...] = ()
    status: FeedStatus = FeedStatus.CLOSED
    error: Optional[str] = None
    user_id: Optional[str] = None
    generation: int = 0


FeedListener = Callable[[FeedState], None]


class ExpenseFeed:
    def __init__(self, backend: DocumentBackend, collection: str = "expenses"):
        self._backend = backend
        self._collection = collection
        self._state = FeedState()
        self._subscription: Optional[Subscription] = None
        self._token = 0
        self._listeners: List[FeedListener] = []

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def expenses(self) -> Tuple[Expense, ...]:
        return self._state.expenses

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None

    def add_listener(
        self, listener: FeedListener, emit_current: bool = True
    ) -> Callable[[], None]:
        self._listeners.append(listener)
        if emit_current:
            listener(self._state)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def open(self, user_id: str, generation: int = 0) -> bool:
        """Subscribe for `user_id`; returns False when already subscribed to it.

        A different user or generation closes the current subscription first.
        """
        if not user_id:
            raise ValueError("user_id is required")
        current = self._state
        if (
            self._subscription is not None
            and current.user_id == user_id
            and current.generation == generation
        ):
            return False
        self._close_subscription()
        self._token += 1
        token = self._token
        logger.info("Setting up expense listener for user %s (generation %s)", user_id, generation)
        if current.user_id == user_id:
            self._set_state(replace(current, generation=generation))
        else:
            self._set_state(
                FeedState(status=FeedStatus.LOADING, user_id=user_id, generation=generation)
            )
        query = Query(
            collection=self._collection,
            where=(("userId", user_id),),
            order_by="timestamp",
            descending=True,
        )
        self._subscription = self._backend.on_snapshot(
            query, partial(self._on_snapshot, token), partial(self._on_error, token)
        )
        return True

    def close(self) -> None:
        self._close_subscription()
        self._token += 1
        self._set_state(FeedState())

    # Internal --------------------------------------------------
    def _close_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _set_state(self, state: FeedState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def _on_snapshot(self, token: int, snapshot: Snapshot) -> None:
        if token != self._token:
            logger.debug("discarding snapshot from superseded subscription")
            return
        logger.debug("Received snapshot with %d documents", snapshot.size)
        expenses: List[Expense] = []
        for doc in snapshot:
            try:
                expenses.append(Expense.from_document(doc.id, doc.data))
            except ValidationError:
                logger.warning("skipping malformed expense document %s", doc.id)
        self._set_state(
            replace(self._state, expenses=tuple(expenses), status=FeedStatus.LIVE, error=None)
        )

    def _on_error(self, token: int, error: BackendError) -> None:
        if token != self._token:
            return
        logger.error("Error fetching expenses: %s (%s)", error.message, error.code.value)
        # The backend ends a live query after an error; reopening starts over.
        self._close_subscription()
        self._set_state(
            replace(
                self._state,
                status=FeedStatus.STALE,
                error=f"Error loading expenses: {error.message}",
            )
        )
