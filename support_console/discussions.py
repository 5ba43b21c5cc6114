# support_console/discussions.py
import itertools
import logging
from typing import Callable, Dict, List, Optional

from support_console.aggregator import aggregate_discussions
from support_console.errors import (
    BusinessRuleViolation, ConsoleError, RecordNotFound, StoreError, ValidationFailure
)
from support_console.events import ChangeEvent, ChangeFeed, Subscription
from support_console.messaging import WhatsAppClient
from support_console.schemas import AUTOMATED, HUMAN, DiscussionSummary, MessageRow
from support_console.store import RowStore

logger = logging.getLogger(__name__)

TABLE = "discussions"

Observer = Callable[[List[DiscussionSummary]], None]


class DiscussionBoard:
    """
    Owns the conversation summaries shown on the discussions screen.

    Readers get deep copies from ``snapshot()``; observers are called with a
    fresh snapshot after every local change. Summaries are rebuilt from the
    full message set on every ``load()``; the only in-place patch is the
    handoff flag (optimistic toggle and realtime flag updates).
    """

    def __init__(self, store: RowStore, messenger: WhatsAppClient):
        self.store = store
        self.messenger = messenger
        self.unread = 0
        self._discussions: List[DiscussionSummary] = []
        self._observers: List[Observer] = []
        self._handoff_tokens: Dict[str, int] = {}
        self._token_counter = itertools.count(1)
        self._subscription: Optional[Subscription] = None

    # Observers and realtime wiring

    def add_observer(self, observer: Observer):
        self._observers.append(observer)

    def remove_observer(self, observer: Observer):
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify(self):
        snapshot = self.snapshot()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception as e:
                logger.error(f"Discussion observer failed: {e}")

    def watch(self, feed: ChangeFeed):
        """Follow changes to the discussions table"""
        self.unwatch()
        self._subscription = feed.subscribe(TABLE, self.handle_change)

    def unwatch(self):
        if self._subscription:
            self._subscription.unsubscribe()
            self._subscription = None

    def handle_change(self, event: ChangeEvent):
        # Handoff flips patch the one summary; anything else reloads everything
        if event.op == "update" and event.changed == {"assigned_to_agent"}:
            row = event.new or {}
            summary = self._find(row.get("session_id"))
            if summary is not None:
                summary.assigned_to_agent = bool(row.get("assigned_to_agent"))
                self._notify()
            return

        try:
            self.load()
        except StoreError as e:
            logger.error(f"Failed to reload discussions after {event.op}: {e}")
        self.refresh_unread()

    # Reads

    def _fetch_rows(self, filters: Optional[Dict] = None) -> List[MessageRow]:
        rows = self.store.select(TABLE, filters, order_by="created_at", ascending=True)
        return [MessageRow(**row, client_phone=row["session_id"]) for row in rows]

    def _find(self, session_id: Optional[str]) -> Optional[DiscussionSummary]:
        for discussion in self._discussions:
            if discussion.session_id == session_id:
                return discussion
        return None

    def load(self) -> List[DiscussionSummary]:
        """Rebuild every summary from the store; state is untouched on failure"""
        rows = self._fetch_rows()
        self._discussions = aggregate_discussions(rows)
        logger.debug(f"Loaded {len(rows)} messages into {len(self._discussions)} discussions")
        self._notify()
        return self.snapshot()

    def snapshot(self) -> List[DiscussionSummary]:
        return [discussion.model_copy(deep=True) for discussion in self._discussions]

    def get(self, session_id: str) -> DiscussionSummary:
        summary = self._find(session_id)
        if summary is None:
            raise RecordNotFound(f"Discussion {session_id} not found")
        return summary.model_copy(deep=True)

    def search(self, term: str) -> List[DiscussionSummary]:
        term = (term or "").strip()
        if not term:
            return self.snapshot()
        lowered = term.lower()
        return [
            discussion for discussion in self.snapshot()
            if lowered in discussion.client_name.lower() or term in discussion.session_id
        ]

    def messages(self, session_id: str) -> List[MessageRow]:
        return self._fetch_rows({"session_id": session_id})

    def open(self, session_id: str) -> List[MessageRow]:
        """Mark the conversation read and return its messages"""
        self.mark_read(session_id)
        return self.messages(session_id)

    def mark_read(self, session_id: str) -> int:
        updated = self.store.update(
            TABLE,
            {"read": True},
            {"session_id": session_id, "type": HUMAN, "read": False},
        )
        if updated:
            self.load()
        return len(updated)

    def unread_total(self) -> int:
        return self.store.count(TABLE, {"type": HUMAN, "read": False})

    def refresh_unread(self) -> int:
        """Recount unread messages; failures only reach the log"""
        try:
            self.unread = self.unread_total()
        except StoreError as e:
            logger.error(f"Failed to refresh unread count: {e}")
        return self.unread

    # Writes

    def set_handoff(self, session_id: str, assigned: bool):
        """
        Give the conversation to staff (True) or back to the automated
        responder (False).

        The local summary changes first. If the store update fails, the
        previous value comes back unless a newer toggle on the same
        conversation has started since.
        """
        summary = self._find(session_id)
        prior = summary.assigned_to_agent if summary is not None else None
        token = next(self._token_counter)
        self._handoff_tokens[session_id] = token

        if summary is not None:
            summary.assigned_to_agent = assigned
            self._notify()

        try:
            updated = self.store.update(TABLE, {"assigned_to_agent": assigned}, {"session_id": session_id})
            if not updated:
                raise RecordNotFound(f"Discussion {session_id} not found")
        except ConsoleError as e:
            logger.error(f"Error updating agent assignment for {session_id}: {e}")
            if prior is not None and self._handoff_tokens.get(session_id) == token:
                current = self._find(session_id)
                if current is not None:
                    current.assigned_to_agent = prior
                    self._notify()
            raise
        finally:
            if self._handoff_tokens.get(session_id) == token:
                del self._handoff_tokens[session_id]

        logger.info(f"Discussion {session_id} {'assigned to agent' if assigned else 'returned to responder'}")

    def toggle_handoff(self, session_id: str) -> bool:
        summary = self._find(session_id)
        if summary is None:
            self.load()
            summary = self._find(session_id)
        if summary is None:
            raise RecordNotFound(f"Discussion {session_id} not found")

        assigned = not summary.assigned_to_agent
        self.set_handoff(session_id, assigned)
        return assigned

    async def send_reply(self, session_id: str, body: str) -> MessageRow:
        """
        Send a staff reply, then record it.

        Only allowed while staff holds the conversation. Nothing is written
        if delivery fails.
        """
        if not body or not body.strip():
            raise ValidationFailure("Message is empty")

        # The newest row carries the flag, as in the aggregated summary
        latest = self.store.select(
            TABLE, {"session_id": session_id}, order_by="created_at", ascending=False, limit=1
        )
        if not latest:
            raise RecordNotFound(f"Discussion {session_id} not found")
        current = latest[0]
        if not current["assigned_to_agent"]:
            raise BusinessRuleViolation(
                "The automated responder is handling this conversation; take it over before replying"
            )

        await self.messenger.send_text(session_id, body)

        row = self.store.insert(TABLE, {
            "session_id": session_id,
            "type": AUTOMATED,
            "message": body,
            "client_name": current["client_name"],
            "read": True,
            "assigned_to_agent": current["assigned_to_agent"],
        })
        return MessageRow(**row, client_phone=session_id)

    def delete(self, session_id: str) -> int:
        """Purge the whole conversation"""
        deleted = self.store.delete(TABLE, {"session_id": session_id})
        logger.info(f"Deleted {len(deleted)} messages from discussion {session_id}")
        self._discussions = [d for d in self._discussions if d.session_id != session_id]
        self._notify()
        return len(deleted)
