"""Tests for the WhatsApp client."""

import json

import httpx
import pytest

from support_console.errors import DeliveryError
from support_console.messaging import WhatsAppClient


def make_client(handler):
    transport = httpx.MockTransport(handler)
    return WhatsAppClient(
        "https://graph.facebook.com/v19.0/",
        "token-123",
        "555",
        http_client=httpx.AsyncClient(transport=transport),
    )


async def test_send_text_posts_the_message():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"messages": [{"id": "wamid.1"}]})

    client = make_client(handler)
    await client.send_text("33612345678", "Votre voiture est prête")

    request = requests[0]
    assert str(request.url) == "https://graph.facebook.com/v19.0/555/messages"
    assert request.headers["Authorization"] == "Bearer token-123"
    assert json.loads(request.content) == {
        "messaging_product": "whatsapp",
        "to": "33612345678",
        "type": "text",
        "text": {"body": "Votre voiture est prête"},
    }
    await client.http_client.aclose()


async def test_refused_message_raises_delivery_error():
    client = make_client(lambda request: httpx.Response(400, json={"error": "invalid"}))

    with pytest.raises(DeliveryError):
        await client.send_text("33612345678", "Hello")
    await client.http_client.aclose()


async def test_transport_failure_raises_delivery_error():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    client = make_client(handler)

    with pytest.raises(DeliveryError):
        await client.send_text("33612345678", "Hello")
    await client.http_client.aclose()


async def test_aclose_leaves_borrowed_clients_open():
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    client = WhatsAppClient("https://example.test", "t", "1", http_client=http_client)

    await client.aclose()

    assert not http_client.is_closed
    await http_client.aclose()
