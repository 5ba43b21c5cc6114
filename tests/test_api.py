"""HTTP API tests through FastAPI's TestClient."""

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from support_console import config, main


def future(days=1):
    return (datetime.utcnow() + timedelta(days=days)).replace(microsecond=0).isoformat()


@pytest.fixture
def anonymous(client):
    return TestClient(main.app)


def test_root(anonymous):
    response = anonymous.get("/")

    assert response.status_code == 200
    assert response.json()["message"] == "Support Console API"


def test_routes_require_a_session(anonymous):
    response = anonymous.get("/api/discussions")

    assert response.status_code == 401
    assert response.json()["error"] == "authentication_error"


def test_bad_token_is_rejected(anonymous):
    response = anonymous.get("/api/profile", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401


def test_sign_in_and_out(anonymous, admin):
    response = anonymous.post("/api/auth/sign-in", json={"email": "admin@garage.test", "password": "secret-pass"})
    assert response.status_code == 200
    token = response.json()["token"]
    headers = {"Authorization": f"Bearer {token}"}

    assert anonymous.get("/api/auth/session", headers=headers).json()["id"] == admin["id"]
    assert anonymous.post("/api/auth/sign-out", headers=headers).status_code == 200
    assert anonymous.get("/api/auth/session", headers=headers).status_code == 401


def test_wrong_password_is_401(anonymous, admin):
    response = anonymous.post("/api/auth/sign-in", json={"email": "admin@garage.test", "password": "wrong"})

    assert response.status_code == 401


def test_profile_update(client):
    response = client.patch("/api/profile", json={"phone": "0612"})

    assert response.status_code == 200
    assert response.json()["phone"] == "0612"


def test_admin_creates_agents_and_agents_cannot(client, anonymous):
    response = client.post("/api/agents", json={
        "name": "Agent", "email": "agent@garage.test", "password": "agent-pass",
    })
    assert response.status_code == 201
    assert response.json()["role"] == "agent"

    token = anonymous.post(
        "/api/auth/sign-in", json={"email": "agent@garage.test", "password": "agent-pass"}
    ).json()["token"]
    response = anonymous.post(
        "/api/agents",
        json={"name": "Other", "email": "other@garage.test", "password": "other-pass"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 403


def test_discussions_flow(client, add_message, messenger):
    add_message("A", minutes=1, read=False)
    add_message("B", minutes=2, read=True, client_name="Bernard")

    listed = client.get("/api/discussions").json()
    assert [d["session_id"] for d in listed] == ["B", "A"]
    assert client.get("/api/notifications/unread").json() == {"unread": 1}
    assert [d["session_id"] for d in client.get("/api/discussions", params={"q": "bern"}).json()] == ["B"]

    response = client.post("/api/discussions/A/messages", json={"message": "Hello"})
    assert response.status_code == 409
    assert response.json()["error"] == "rule_violation"
    messenger.send_text.assert_not_awaited()

    assert client.put("/api/discussions/A/handoff", json={"assigned": True}).status_code == 200
    response = client.post("/api/discussions/A/messages", json={"message": "Hello"})
    assert response.status_code == 201
    assert response.json()["type"] == "ai"

    messages = client.get("/api/discussions/A/messages").json()
    assert [m["read"] for m in messages] == [True, True]
    assert client.get("/api/notifications/unread").json() == {"unread": 0}

    assert client.delete("/api/discussions/A").json() == {"deleted": 2}


def test_handoff_on_unknown_discussion(client):
    response = client.put("/api/discussions/ghost/handoff", json={"assigned": True})

    assert response.status_code == 404


def test_slots_and_appointments(client):
    slot = client.post("/api/slots", json={"datetime": future()}).json()
    assert slot["status"] == "available"

    assert client.post("/api/slots", json={"datetime": "2000-01-01T10:00:00"}).status_code == 422

    appointment = client.post("/api/appointments", json={
        "name": "Jean", "phone": "0611", "brand": "Peugeot", "date_id": slot["id"],
    })
    assert appointment.status_code == 201
    appointment = appointment.json()

    board = client.get("/api/slots").json()
    assert board["upcoming"][0]["status"] == "booked"
    assert client.get("/api/slots/bookable").json() == []
    assert client.get("/api/slots", params={"status": "available"}).json()["upcoming"] == []

    assert client.patch(f"/api/slots/{slot['id']}", json={"datetime": future(2)}).status_code == 409
    assert client.delete(f"/api/slots/{slot['id']}").status_code == 409

    listed = client.get("/api/appointments", params={"q": "peugeot"}).json()
    assert [a["id"] for a in listed] == [appointment["id"]]
    assert listed[0]["slot_datetime"] is not None

    updated = client.patch(f"/api/appointments/{appointment['id']}", json={"model": "208"}).json()
    assert updated["model"] == "208"

    cancelled = client.post(f"/api/appointments/{appointment['id']}/cancel").json()
    assert cancelled["status"] == "cancelled"
    assert client.delete(f"/api/slots/{slot['id']}").status_code == 200


def test_quotes(client):
    quote = client.post("/api/quotes", json={"customer_name": "Paul", "phone_number": "0601", "amount": 120})
    assert quote.status_code == 201
    quote_id = quote.json()["id"]

    assert client.put(f"/api/quotes/{quote_id}/status", json={"status": "accepted"}).json()["status"] == "accepted"
    assert client.put(f"/api/quotes/{quote_id}/status", json={"status": "lost"}).status_code == 422
    assert client.patch(f"/api/quotes/{quote_id}", json={"details": "Embrayage"}).json()["details"] == "Embrayage"
    assert [q["id"] for q in client.get("/api/quotes", params={"q": "embray"}).json()] == [quote_id]

    assert client.delete(f"/api/quotes/{quote_id}").status_code == 200
    assert client.get(f"/api/quotes/{quote_id}").status_code == 404


def test_dashboard(client, add_message):
    add_message("A", read=False)

    body = client.get("/api/dashboard").json()

    assert body["stats"]["active_discussions"] == 1
    assert body["recent_activity"][0]["type"] == "message"


def test_webhook_verification(anonymous, monkeypatch):
    monkeypatch.setattr(config, "WHATSAPP_VERIFY_TOKEN", "verify-me")
    params = {"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "42"}

    response = anonymous.get("/webhooks/whatsapp", params=params)
    assert response.status_code == 200
    assert response.text == "42"

    params["hub.verify_token"] = "wrong"
    assert anonymous.get("/webhooks/whatsapp", params=params).status_code == 403


def test_inbound_webhook(anonymous, store, messenger):
    payload = {"entry": [{"changes": [{"value": {
        "contacts": [{"wa_id": "33611111111", "profile": {"name": "Claire"}}],
        "messages": [{"from": "33611111111", "type": "text", "text": {"body": "Bonjour"}}],
    }}]}]}

    response = anonymous.post("/webhooks/whatsapp", json=payload)

    assert response.json() == {"processed": 1}
    assert store.count("discussions", {"session_id": "33611111111"}) == 2
    messenger.send_text.assert_awaited_once()


def test_console_socket_needs_a_session(anonymous):
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with anonymous.websocket_connect("/ws/console?token=bad"):
            pass

    assert excinfo.value.code == 1008


def test_console_socket_releases_its_subscriptions_on_disconnect(client):
    token = client.headers["Authorization"].split(" ", 1)[1]

    with client.websocket_connect(f"/ws/console?token={token}") as websocket:
        assert websocket.receive_json()["type"] == "connection"

    assert main.feed._subscriptions == []
    assert main.manager.active_connections == {}
