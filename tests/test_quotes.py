"""Tests for quote management."""

import pytest

from support_console.errors import RecordNotFound, ValidationFailure
from support_console.schemas import QuoteCreate, QuoteUpdate


@pytest.fixture
def quote(quotes):
    return quotes.create_quote(QuoteCreate(
        customer_name="Paul Leroy", phone_number="33655554444", amount=320.5, details="Freins avant",
    ))


def test_new_quotes_are_pending(quote):
    assert quote["status"] == "pending"
    assert quote["amount"] == 320.5


def test_status_changes(quotes, quote):
    accepted = quotes.set_status(quote["id"], "accepted")

    assert accepted["status"] == "accepted"
    assert accepted["updated_at"] >= quote["updated_at"]


def test_unknown_status_is_rejected(quotes, quote):
    with pytest.raises(ValidationFailure):
        quotes.set_status(quote["id"], "archived")

    assert quotes.get_quote(quote["id"])["status"] == "pending"


def test_partial_update(quotes, quote):
    updated = quotes.update_quote(quote["id"], QuoteUpdate(amount=400))

    assert updated["amount"] == 400
    assert updated["customer_name"] == "Paul Leroy"
    assert quotes.update_quote(quote["id"], QuoteUpdate()) == updated


def test_search_covers_name_phone_and_details(quotes, quote):
    quotes.create_quote(QuoteCreate(customer_name="Anne Roux", phone_number="33700000001"))

    assert [q["customer_name"] for q in quotes.list_quotes("freins")] == ["Paul Leroy"]
    assert [q["customer_name"] for q in quotes.list_quotes("337")] == ["Anne Roux"]
    assert [q["customer_name"] for q in quotes.list_quotes("ROUX")] == ["Anne Roux"]
    assert len(quotes.list_quotes()) == 2


def test_delete(quotes, quote):
    quotes.delete_quote(quote["id"])

    with pytest.raises(RecordNotFound):
        quotes.get_quote(quote["id"])
    with pytest.raises(RecordNotFound):
        quotes.delete_quote(quote["id"])


def test_unknown_quote(quotes):
    with pytest.raises(RecordNotFound):
        quotes.set_status("missing", "accepted")
