"""
In-process realtime change feed.

`subscribe(table, filter, on_event)` delivers every `ChangeMessage` published on `table` whose new (or old) row
matches the filter. Filters are equality matches on row attributes, e.g. `{"id": game_id}`.
"""

import logging
import threading
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Callable, Optional

from src.core.shared_types import ChangeEvent, Table

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeMessage:
    table: Table
    event: ChangeEvent
    new: Any
    old: Any = None


ChangeHandler = Callable[[ChangeMessage], None]


@dataclass(frozen=True)
class Subscription:
    """Handle returned by `subscribe`; pass it to `unsubscribe`."""

    id: int
    table: Table
    filter: dict[str, Any] = field(default_factory=dict)


def matches(row: Any, row_filter: dict[str, Any]) -> bool:
    if row is None:
        return False
    return all(getattr(row, name, None) == value for name, value in row_filter.items())


class ChangeFeed:
    """Fan-out of stored changes. Handlers run on the publishing thread; a failing handler never breaks the publisher."""

    def __init__(self) -> None:
        self._handlers: dict[int, tuple[Subscription, ChangeHandler]] = {}
        self._ids = count(1)
        self._lock = threading.Lock()

    def subscribe(
        self,
        table: Table,
        row_filter: Optional[dict[str, Any]],
        on_event: ChangeHandler,
    ) -> Subscription:
        subscription = Subscription(next(self._ids), table, dict(row_filter or {}))
        with self._lock:
            self._handlers[subscription.id] = (subscription, on_event)
        logger.debug("Subscribed #%d to %s %s", subscription.id, table, subscription.filter)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._handlers.pop(subscription.id, None)
        logger.debug("Unsubscribed #%d", subscription.id)

    def publish(
        self, table: Table, event: ChangeEvent, new: Any, old: Any = None
    ) -> None:
        message = ChangeMessage(table, event, new, old)
        with self._lock:
            targets = [
                handler
                for subscription, handler in self._handlers.values()
                if subscription.table == table
                and (matches(new, subscription.filter) or matches(old, subscription.filter))
            ]
        for handler in targets:
            try:
                handler(message)
            except Exception:
                logger.exception("Change handler failed for %s %s", table, event)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)
