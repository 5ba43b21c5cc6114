# support_console/quotes.py
import logging
from datetime import datetime
from typing import List, Optional

from support_console.errors import RecordNotFound, ValidationFailure
from support_console.schemas import QuoteCreate, QuoteUpdate
from support_console.store import Row, RowStore

logger = logging.getLogger(__name__)

TABLE = "quotes"
STATUSES = ("pending", "accepted", "rejected")


class QuoteService:
    def __init__(self, store: RowStore):
        self.store = store

    def list_quotes(self, term: Optional[str] = None) -> List[Row]:
        quotes = self.store.select(TABLE, order_by="created_at", ascending=False)
        term = (term or "").strip()
        if term:
            lowered = term.lower()
            quotes = [
                q for q in quotes
                if lowered in q["customer_name"].lower()
                or term in q["phone_number"]
                or lowered in (q["details"] or "").lower()
            ]
        return quotes

    def get_quote(self, quote_id: str) -> Row:
        return self.store.select_one(TABLE, {"id": quote_id})

    def create_quote(self, data: QuoteCreate) -> Row:
        quote = self.store.insert(TABLE, {**data.model_dump(), "status": "pending"})
        logger.info(f"Created quote {quote['id']} for {quote['customer_name']}")
        return quote

    def _update(self, quote_id: str, values: dict) -> Row:
        values["updated_at"] = datetime.utcnow()
        updated = self.store.update(TABLE, values, {"id": quote_id})
        if not updated:
            raise RecordNotFound(f"Quote {quote_id} not found")
        return updated[0]

    def update_quote(self, quote_id: str, changes: QuoteUpdate) -> Row:
        values = changes.model_dump(exclude_unset=True)
        if not values:
            return self.get_quote(quote_id)
        return self._update(quote_id, values)

    def set_status(self, quote_id: str, status: str) -> Row:
        if status not in STATUSES:
            raise ValidationFailure(f"Unknown quote status: {status}")
        quote = self._update(quote_id, {"status": status})
        logger.info(f"Quote {quote_id} is now {status}")
        return quote

    def delete_quote(self, quote_id: str):
        deleted = self.store.delete(TABLE, {"id": quote_id})
        if not deleted:
            raise RecordNotFound(f"Quote {quote_id} not found")
        logger.info(f"Deleted quote {quote_id}")
