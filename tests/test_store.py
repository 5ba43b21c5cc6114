"""Tests for the row store accessor."""

from datetime import datetime

import pytest

from support_console.errors import RecordNotFound, StoreError


@pytest.fixture
def events(feed):
    received = []
    feed.subscribe("*", received.append)
    return received


def test_insert_returns_row_and_announces_it(store, events):
    quote = store.insert("quotes", {"customer_name": "Paul", "phone_number": "0601"})

    assert quote["id"]
    assert quote["status"] == "pending"
    assert [(e.table, e.op) for e in events] == [("quotes", "insert")]
    assert events[0].new["id"] == quote["id"]


def test_update_announces_one_event_per_row(store, events, add_message):
    add_message("A", minutes=1)
    add_message("A", minutes=2)
    add_message("B", minutes=3)
    events.clear()

    updated = store.update("discussions", {"assigned_to_agent": True}, {"session_id": "A"})

    assert len(updated) == 2
    assert all(row["assigned_to_agent"] for row in updated)
    assert [e.op for e in events] == ["update", "update"]
    assert all(e.changed == {"assigned_to_agent"} for e in events)
    assert all(e.old["assigned_to_agent"] is False for e in events)


def test_update_matching_nothing_returns_empty_list(store, events):
    assert store.update("quotes", {"status": "accepted"}, {"id": "missing"}) == []
    assert events == []


def test_delete_returns_deleted_rows(store, events, add_message):
    add_message("A")
    add_message("A", minutes=1)
    events.clear()

    deleted = store.delete("discussions", {"session_id": "A"})

    assert len(deleted) == 2
    assert [e.op for e in events] == ["delete", "delete"]
    assert store.select("discussions") == []


def test_select_filters_orders_and_limits(store):
    for hour in (12, 9, 15):
        store.insert("available_dates", {"datetime": datetime(2030, 1, 1, hour), "status": "available"})
    booked = store.insert("available_dates", {"datetime": datetime(2030, 1, 1, 10), "status": "booked"})

    available = store.select("available_dates", {"status": "available"}, order_by="datetime")
    assert [s["datetime"].hour for s in available] == [9, 12, 15]

    latest = store.select("available_dates", order_by="datetime", ascending=False, limit=1)
    assert latest[0]["datetime"].hour == 15

    by_ids = store.select("available_dates", {"id": [booked["id"], available[0]["id"]]})
    assert {s["id"] for s in by_ids} == {booked["id"], available[0]["id"]}


def test_null_filter(store):
    store.insert("available_dates", {"datetime": datetime(2030, 1, 1), "client_name": None})
    store.insert("available_dates", {"datetime": datetime(2030, 1, 2), "client_name": "Luc"})

    assert len(store.select("available_dates", {"client_name": None})) == 1


def test_count(store, add_message):
    add_message("A", read=False)
    add_message("A", read=True, minutes=1)

    assert store.count("discussions") == 2
    assert store.count("discussions", {"read": False}) == 1


def test_select_one_missing_row(store):
    with pytest.raises(RecordNotFound):
        store.select_one("quotes", {"id": "nope"})


def test_constraint_failure_becomes_store_error(store, events):
    store.insert("auth_accounts", {"email": "a@b.c", "password_hash": "x"})
    events.clear()

    with pytest.raises(StoreError):
        store.insert("auth_accounts", {"email": "a@b.c", "password_hash": "y"})

    assert events == []
    assert store.count("auth_accounts") == 1


def test_unknown_table(store):
    with pytest.raises(StoreError):
        store.select("invoices")
