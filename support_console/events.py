# support_console/events.py
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)

ALL_TABLES = "*"


@dataclass
class ChangeEvent:
    """A single row change on a watched table"""
    table: str
    op: str  # insert, update, delete
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None
    changed: Set[str] = field(default_factory=set)

    @property
    def row(self) -> Dict[str, Any]:
        return self.new if self.new is not None else (self.old or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "op": self.op,
            "new": self.new,
            "old": self.old,
            "changed": sorted(self.changed),
        }


ChangeCallback = Callable[[ChangeEvent], Any]


class Subscription:
    def __init__(self, feed: "ChangeFeed", table: str, callback: ChangeCallback):
        self._feed = feed
        self.table = table
        self.callback = callback
        self.active = True

    def unsubscribe(self):
        if self.active:
            self._feed._remove(self)
            self.active = False


class ChangeFeed:
    """
    In-process change notification per table.

    Callbacks run synchronously inside ``publish``, in registration order.
    """

    def __init__(self):
        self._subscriptions: List[Subscription] = []

    def subscribe(self, table: str, callback: ChangeCallback) -> Subscription:
        subscription = Subscription(self, table, callback)
        self._subscriptions.append(subscription)
        logger.debug(f"Subscribed to {table} changes ({len(self._subscriptions)} active)")
        return subscription

    def _remove(self, subscription: Subscription):
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def publish(self, event: ChangeEvent):
        for subscription in list(self._subscriptions):
            if subscription.table not in (event.table, ALL_TABLES):
                continue
            try:
                subscription.callback(event)
            except Exception as e:
                logger.error(f"Change listener on {subscription.table} failed for {event.op}: {e}")

    async def stream(self, tables: Iterable[str]) -> AsyncIterator[ChangeEvent]:
        """Yield events for the given tables until the consumer stops"""
        queue: asyncio.Queue = asyncio.Queue()
        subscriptions = [self.subscribe(table, queue.put_nowait) for table in tables]
        try:
            while True:
                yield await queue.get()
        finally:
            for subscription in subscriptions:
                subscription.unsubscribe()
