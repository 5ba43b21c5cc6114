# support_console/responder.py
from openai import OpenAI
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging

from support_console import config
from support_console.errors import DeliveryError
from support_console.messaging import WhatsAppClient
from support_console.schemas import AUTOMATED, HUMAN
from support_console.store import RowStore

logger = logging.getLogger(__name__)


class AutomatedResponder:
    """
    Answers customers while a conversation is not handed off to staff
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self.model = model or config.OPENAI_MODEL
        if not api_key:
            logger.warning("OpenAI API key not found. Automated replies will use canned answers.")
            self.client = None
        else:
            self.client = OpenAI(api_key=api_key)

        self.system_prompt = """
You are the messaging assistant of a car repair garage.
Your responsibilities include:
1. Answering questions about services and opening hours
2. Helping customers pick an appointment date
3. Collecting the details needed for a price quote
4. Being professional, friendly, and helpful

If you cannot help, tell the customer a member of staff will get back to them.
Keep responses short; they are read on a phone.
"""

    async def reply(
        self,
        message: str,
        conversation_history: Optional[List[Dict[str, str]]] = None,
        client_name: Optional[str] = None,
    ) -> str:
        """
        Produce the reply to a customer message

        Args:
            message: The customer's message
            conversation_history: Earlier rows of the conversation, oldest first
            client_name: Display name of the customer

        Returns:
            The reply text
        """
        if not self.client:
            return self._generate_fallback_response(message)

        try:
            messages = [{"role": "system", "content": self.system_prompt}]
            if client_name:
                messages.append({"role": "system", "content": f"The customer's name is {client_name}."})

            for hist in (conversation_history or [])[-10:]:  # Last 10 messages
                role = "user" if hist.get("type") == HUMAN else "assistant"
                messages.append({"role": role, "content": hist.get("message", "")})

            messages.append({"role": "user", "content": message})

            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.7,
                max_tokens=300
            )
            return response.choices[0].message.content

        except Exception as e:
            logger.error(f"Error generating automated reply: {e}")
            return self._generate_fallback_response(message)

    def _generate_fallback_response(self, message: str) -> str:
        """
        Keyword-based reply used when the AI is not available
        """
        message_lower = message.lower()

        if any(word in message_lower for word in ["appointment", "book", "schedule", "rendez"]):
            return "I can help you book an appointment. Which service do you need, and for which vehicle?"
        elif any(word in message_lower for word in ["cancel", "reschedule", "annul"]):
            return "I can help you change your appointment. A member of our team will confirm it shortly."
        elif any(word in message_lower for word in ["price", "cost", "quote", "devis"]):
            return "We will prepare a quote for you. Could you tell us the brand, model and year of your vehicle?"
        elif any(word in message_lower for word in ["hour", "open", "close", "horaire"]):
            return "We are open Monday to Friday 8:00 AM - 6:00 PM, and Saturday 9:00 AM - 12:00 PM."
        return "Thanks for your message! How can we help you today?"


@dataclass
class InboundMessage:
    session_id: str
    client_name: str
    body: str


def parse_inbound(payload: Dict[str, Any]) -> List[InboundMessage]:
    """Pull text messages out of a WhatsApp webhook payload"""
    inbound = []
    for entry in payload.get("entry", []):
        for change in entry.get("changes", []):
            value = change.get("value", {})
            names = {
                contact.get("wa_id"): contact.get("profile", {}).get("name", "")
                for contact in value.get("contacts", [])
            }
            for message in value.get("messages", []):
                if message.get("type") != "text":
                    logger.info(f"Ignoring inbound {message.get('type')} message from {message.get('from')}")
                    continue
                sender = message.get("from")
                inbound.append(InboundMessage(
                    session_id=sender,
                    client_name=names.get(sender, ""),
                    body=message.get("text", {}).get("body", ""),
                ))
    return inbound


class InboundHandler:
    """
    Records customer messages and lets the responder answer them unless
    staff has taken over the conversation.
    """

    def __init__(self, store: RowStore, messenger: WhatsAppClient, responder: AutomatedResponder):
        self.store = store
        self.messenger = messenger
        self.responder = responder

    async def handle(self, payload: Dict[str, Any]) -> int:
        processed = 0
        for inbound in parse_inbound(payload):
            await self.handle_message(inbound)
            processed += 1
        return processed

    async def handle_message(self, inbound: InboundMessage):
        history = self.store.select(
            "discussions", {"session_id": inbound.session_id}, order_by="created_at"
        )
        assigned = history[-1]["assigned_to_agent"] if history else False
        client_name = inbound.client_name or (history[-1]["client_name"] if history else inbound.session_id)

        self.store.insert("discussions", {
            "session_id": inbound.session_id,
            "type": HUMAN,
            "message": inbound.body,
            "client_name": client_name,
            "read": False,
            "assigned_to_agent": assigned,
        })

        if assigned:
            logger.info(f"Discussion {inbound.session_id} is handled by staff; responder stays silent")
            return

        reply = await self.responder.reply(inbound.body, history, client_name)
        try:
            await self.messenger.send_text(inbound.session_id, reply)
        except DeliveryError as e:
            logger.error(f"Automated reply to {inbound.session_id} not delivered: {e}")
            return

        self.store.insert("discussions", {
            "session_id": inbound.session_id,
            "type": AUTOMATED,
            "message": reply,
            "client_name": client_name,
            "read": True,
            "assigned_to_agent": False,
        })
