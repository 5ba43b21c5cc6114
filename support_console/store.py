# support_console/store.py
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from support_console.errors import RecordNotFound, StoreError
from support_console.events import ChangeEvent, ChangeFeed
from support_console.models import (
    Appointment, AuthAccount, AuthSession, AvailableSlot, DiscussionMessage, Quote, UserProfile
)

logger = logging.getLogger(__name__)

TABLES = {
    "discussions": DiscussionMessage,
    "quotes": Quote,
    "appointments": Appointment,
    "available_dates": AvailableSlot,
    "users": UserProfile,
    "auth_accounts": AuthAccount,
    "auth_sessions": AuthSession,
}

Row = Dict[str, Any]


def row_to_dict(obj) -> Row:
    return {column.name: getattr(obj, column.name) for column in obj.__table__.columns}


class RowStore:
    """
    Keyed reads, writes and deletes over the console tables.

    Every call runs in its own session and commits on its own; writes are
    announced on the change feed after they commit.
    """

    def __init__(self, session_factory: sessionmaker, feed: Optional[ChangeFeed] = None):
        self.session_factory = session_factory
        self.feed = feed or ChangeFeed()

    def _model(self, table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise StoreError(f"Unknown table: {table}")

    def _query(self, db, table: str, filters: Optional[Dict[str, Any]]):
        model = self._model(table)
        query = db.query(model)
        for name, value in (filters or {}).items():
            column = getattr(model, name)
            if isinstance(value, (list, tuple, set)):
                query = query.filter(column.in_(list(value)))
            elif value is None:
                query = query.filter(column.is_(None))
            else:
                query = query.filter(column == value)
        return query

    def _fail(self, db, action: str, table: str, error: Exception):
        db.rollback()
        logger.error(f"Error during {action} on {table}: {error}")
        raise StoreError(f"Could not {action} {table}") from error

    def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Row]:
        db = self.session_factory()
        try:
            query = self._query(db, table, filters)
            if order_by:
                column = getattr(self._model(table), order_by)
                query = query.order_by(column.asc() if ascending else column.desc())
            if limit:
                query = query.limit(limit)
            return [row_to_dict(obj) for obj in query.all()]
        except SQLAlchemyError as e:
            self._fail(db, "read", table, e)
        finally:
            db.close()

    def select_one(self, table: str, filters: Dict[str, Any]) -> Row:
        rows = self.select(table, filters, limit=1)
        if not rows:
            raise RecordNotFound(f"No {table} row matches {filters}")
        return rows[0]

    def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        db = self.session_factory()
        try:
            return self._query(db, table, filters).count()
        except SQLAlchemyError as e:
            self._fail(db, "count", table, e)
        finally:
            db.close()

    def insert(self, table: str, values: Dict[str, Any]) -> Row:
        db = self.session_factory()
        try:
            obj = self._model(table)(**values)
            db.add(obj)
            db.commit()
            db.refresh(obj)
            row = row_to_dict(obj)
        except SQLAlchemyError as e:
            self._fail(db, "insert into", table, e)
        finally:
            db.close()

        self.feed.publish(ChangeEvent(table=table, op="insert", new=row))
        return row

    def update(self, table: str, values: Dict[str, Any], filters: Dict[str, Any]) -> List[Row]:
        """Apply ``values`` to every row matching ``filters``; returns the updated rows"""
        db = self.session_factory()
        changes = []
        try:
            for obj in self._query(db, table, filters).all():
                old = row_to_dict(obj)
                for name, value in values.items():
                    setattr(obj, name, value)
                changes.append((old, obj))
            db.commit()
            changes = [(old, row_to_dict(obj)) for old, obj in changes]
        except SQLAlchemyError as e:
            self._fail(db, "update", table, e)
        finally:
            db.close()

        for old, new in changes:
            self.feed.publish(ChangeEvent(table=table, op="update", new=new, old=old, changed=set(values)))
        return [new for _, new in changes]

    def delete(self, table: str, filters: Dict[str, Any]) -> List[Row]:
        """Delete every row matching ``filters``; returns the deleted rows"""
        db = self.session_factory()
        try:
            objs = self._query(db, table, filters).all()
            deleted = [row_to_dict(obj) for obj in objs]
            for obj in objs:
                db.delete(obj)
            db.commit()
        except SQLAlchemyError as e:
            self._fail(db, "delete from", table, e)
        finally:
            db.close()

        for row in deleted:
            self.feed.publish(ChangeEvent(table=table, op="delete", old=row))
        return deleted
