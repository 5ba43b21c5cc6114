# support_console/dashboard.py
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from support_console.schemas import HUMAN
from support_console.store import RowStore

logger = logging.getLogger(__name__)


class DashboardService:
    """Figures and recent activity for the console home screen"""

    def __init__(self, store: RowStore):
        self.store = store

    def stats(self, now: Optional[datetime] = None) -> Dict:
        now = now or datetime.utcnow()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        tomorrow = today + timedelta(days=1)
        thirty_days_ago = now - timedelta(days=30)

        active_discussions = self.store.count("discussions", {"type": HUMAN, "read": False})

        confirmed = self.store.select("appointments", {"status": "confirmed"})
        slot_ids = [a["date_id"] for a in confirmed if a["date_id"]]
        slots = self.store.select("available_dates", {"id": slot_ids}) if slot_ids else []
        appointments_today = sum(1 for s in slots if today <= s["datetime"] < tomorrow)

        pending_quotes = self.store.count("quotes", {"status": "pending"})

        recent_names = {
            a["name"] for a in self.store.select("appointments")
            if a["created_at"] and a["created_at"] >= thirty_days_ago
        }

        total_messages = self.store.count("discussions", {"type": HUMAN})
        answered_messages = self.store.count("discussions", {"type": HUMAN, "read": True})
        response_rate = answered_messages / total_messages * 100 if total_messages else 0.0

        return {
            "active_discussions": active_discussions,
            "appointments_today": appointments_today,
            "pending_quotes": pending_quotes,
            "new_clients": len(recent_names),
            "response_rate": round(response_rate, 1),
        }

    def recent_activity(self, limit: int = 5) -> List[Dict]:
        activities = []

        for message in self.store.select("discussions", order_by="created_at", ascending=False, limit=limit):
            activities.append({
                "id": str(message["id"]),
                "type": "message",
                "user": message["client_name"],
                "time": message["created_at"],
                "content": "Sent a new message" if message["type"] == HUMAN else "Message answered",
            })

        for appointment in self.store.select("appointments", order_by="created_at", ascending=False, limit=limit):
            activities.append({
                "id": appointment["id"],
                "type": "appointment",
                "user": appointment["name"],
                "time": appointment["created_at"],
                "content": f"Appointment {appointment['status']}",
            })

        for quote in self.store.select("quotes", order_by="created_at", ascending=False, limit=limit):
            activities.append({
                "id": quote["id"],
                "type": "quote",
                "user": quote["customer_name"],
                "time": quote["created_at"],
                "content": f"Quote {quote['status']}",
            })

        activities.sort(key=lambda activity: activity["time"], reverse=True)
        return activities

    def report(self, now: Optional[datetime] = None) -> str:
        stats = self.stats(now)
        return f"""
📊 Daily Report - {(now or datetime.utcnow()).strftime('%Y-%m-%d')}

Discussions:
• Unread messages: {stats['active_discussions']}
• Response rate: {stats['response_rate']:.1f}%

Appointments:
• Today: {stats['appointments_today']}
• New clients (30 days): {stats['new_clients']}

Quotes:
• Pending: {stats['pending_quotes']}
        """.strip()
