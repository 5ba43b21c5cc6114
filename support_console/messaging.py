# support_console/messaging.py
import logging
from typing import Optional

import httpx

from support_console import config
from support_console.errors import DeliveryError

logger = logging.getLogger(__name__)


class WhatsAppClient:
    """Send text messages through the WhatsApp Cloud API"""

    def __init__(
        self,
        api_url: str,
        access_token: str,
        phone_number_id: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=15.0)

    @classmethod
    def from_env(cls) -> "WhatsAppClient":
        if not config.WHATSAPP_ACCESS_TOKEN:
            logger.warning("WhatsApp access token not found. Outbound messages will fail.")
        return cls(
            config.WHATSAPP_API_URL,
            config.WHATSAPP_ACCESS_TOKEN,
            config.WHATSAPP_PHONE_NUMBER_ID,
        )

    @property
    def messages_url(self) -> str:
        return f"{self.api_url}/{self.phone_number_id}/messages"

    async def send_text(self, to: str, body: str):
        """
        Deliver ``body`` to the phone number ``to``.

        Raises DeliveryError when the request fails or is refused.
        """
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": body},
        }
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        try:
            response = await self.http_client.post(self.messages_url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Error sending WhatsApp message to {to}: {e}")
            raise DeliveryError(f"Message to {to} was not delivered") from e

        logger.info(f"Sent WhatsApp message to {to}")

    async def aclose(self):
        if self._owns_client:
            await self.http_client.aclose()
