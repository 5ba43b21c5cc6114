# support_console/booking.py
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from support_console.errors import (
    BusinessRuleViolation, PartialBookingError, RecordNotFound, StoreError, ValidationFailure
)
from support_console.schemas import AppointmentCreate, AppointmentUpdate, to_naive_utc
from support_console.store import Row, RowStore

logger = logging.getLogger(__name__)

SLOTS = "available_dates"
APPOINTMENTS = "appointments"

AVAILABLE = "available"
BOOKED = "booked"

CONFIRMED = "confirmed"
CANCELLED = "cancelled"

APPOINTMENT_SEARCH_FIELDS = ("name", "phone", "email", "brand", "model", "fuel")


def split_slots(slots: List[Row], now: datetime) -> Tuple[List[Row], List[Row]]:
    """Upcoming slots soonest first, past slots most recent first"""
    upcoming = sorted((s for s in slots if s["datetime"] >= now), key=lambda s: s["datetime"])
    past = sorted((s for s in slots if s["datetime"] < now), key=lambda s: s["datetime"], reverse=True)
    return upcoming, past


class BookingService:
    """
    Bookable slots and the appointments made against them.

    Booking, cancelling and deleting an appointment each take two store
    calls (appointment, then slot) with no transaction between them. When
    the second call fails a PartialBookingError names the rows to reconcile.
    """

    def __init__(self, store: RowStore, clock=datetime.utcnow):
        self.store = store
        self.clock = clock

    # Slots

    def sweep_expired_slots(self, slots: Optional[List[Row]] = None) -> int:
        """Delete past slots nobody booked"""
        now = self.clock()
        if slots is None:
            slots = self.store.select(SLOTS, {"status": AVAILABLE})
        expired_ids = [s["id"] for s in slots if s["datetime"] < now and s["status"] == AVAILABLE]
        if not expired_ids:
            return 0

        deleted = self.store.delete(SLOTS, {"id": expired_ids, "status": AVAILABLE})
        logger.info(f"Deleted {len(deleted)} expired dates")
        return len(deleted)

    def load_slots(self, status: Optional[str] = None) -> List[Row]:
        """List slots by date, after removing expired ones"""
        filters = {"status": status} if status else None
        slots = self.store.select(SLOTS, filters, order_by="datetime")

        try:
            swept = self.sweep_expired_slots(slots)
        except StoreError as e:
            logger.error(f"Error deleting expired dates: {e}")
            swept = 0

        if swept:
            slots = self.store.select(SLOTS, filters, order_by="datetime")
        return slots

    def list_bookable(self) -> List[Row]:
        return self.store.select(SLOTS, {"status": AVAILABLE}, order_by="datetime")

    def get_slot(self, slot_id: str) -> Row:
        return self.store.select_one(SLOTS, {"id": slot_id})

    def _check_future(self, when: datetime) -> datetime:
        when = to_naive_utc(when)
        if when < self.clock():
            raise ValidationFailure("The date must be in the future")
        return when

    def create_slot(self, when: datetime) -> Row:
        when = self._check_future(when)
        slot = self.store.insert(SLOTS, {"datetime": when, "status": AVAILABLE})
        logger.info(f"Created slot {slot['id']} at {when.isoformat()}")
        return slot

    def _require_available(self, slot_id: str, refusal: str):
        # Re-read just before writing; the write is also conditioned on status
        slot = self.get_slot(slot_id)
        if slot["status"] != AVAILABLE:
            logger.warning(f"Refused change to slot {slot_id}: status is {slot['status']}")
            raise BusinessRuleViolation(refusal)

    def reschedule_slot(self, slot_id: str, when: datetime) -> Row:
        when = self._check_future(when)
        refusal = "This date is booked and can no longer be changed"
        self._require_available(slot_id, refusal)

        updated = self.store.update(SLOTS, {"datetime": when}, {"id": slot_id, "status": AVAILABLE})
        if not updated:
            raise BusinessRuleViolation(refusal)
        return updated[0]

    def delete_slot(self, slot_id: str):
        refusal = "This date is booked and cannot be deleted"
        self._require_available(slot_id, refusal)

        deleted = self.store.delete(SLOTS, {"id": slot_id, "status": AVAILABLE})
        if not deleted:
            raise BusinessRuleViolation(refusal)
        logger.info(f"Deleted slot {slot_id}")

    # Appointments

    def list_appointments(self, term: Optional[str] = None) -> List[Row]:
        appointments = self.store.select(APPOINTMENTS, order_by="created_at", ascending=False)

        slot_ids = [a["date_id"] for a in appointments if a["date_id"]]
        slots = {s["id"]: s for s in self.store.select(SLOTS, {"id": slot_ids})} if slot_ids else {}
        for appointment in appointments:
            slot = slots.get(appointment["date_id"])
            appointment["slot_datetime"] = slot["datetime"] if slot else None

        term = (term or "").strip().lower()
        if term:
            appointments = [
                a for a in appointments
                if any(term in str(a.get(name) or "").lower() for name in APPOINTMENT_SEARCH_FIELDS)
            ]
        return appointments

    def get_appointment(self, appointment_id: str) -> Row:
        return self.store.select_one(APPOINTMENTS, {"id": appointment_id})

    def _release_slot(self, appointment: Row, action: str):
        # A cancelled appointment no longer holds its slot
        slot_id = appointment["date_id"]
        if not slot_id or appointment["status"] != CONFIRMED:
            return
        try:
            self.store.update(
                SLOTS,
                {"status": AVAILABLE, "client_name": None, "client_phone": None},
                {"id": slot_id, "status": BOOKED},
            )
        except StoreError as e:
            logger.error(
                f"Appointment {appointment['id']} was {action} but slot {slot_id} is still booked: {e}"
            )
            raise PartialBookingError(
                f"Appointment {action}, but its date could not be freed",
                appointment_id=appointment["id"],
                slot_id=slot_id,
            ) from e

    def book(self, details: AppointmentCreate) -> Row:
        slot = self.get_slot(details.date_id)
        if slot["status"] != AVAILABLE:
            raise BusinessRuleViolation("This date is already booked")

        appointment = self.store.insert(APPOINTMENTS, {**details.model_dump(), "status": CONFIRMED})

        try:
            reserved = self.store.update(
                SLOTS,
                {"status": BOOKED, "client_name": details.name, "client_phone": details.phone},
                {"id": details.date_id, "status": AVAILABLE},
            )
            if not reserved:
                # Someone else booked the slot after the check; withdraw this appointment
                logger.warning(f"Slot {details.date_id} was booked concurrently; removing appointment {appointment['id']}")
                self.store.delete(APPOINTMENTS, {"id": appointment["id"]})
                raise BusinessRuleViolation("This date is already booked")
        except StoreError as e:
            logger.error(
                f"Appointment {appointment['id']} was created but slot {details.date_id} is not marked booked: {e}"
            )
            raise PartialBookingError(
                "Appointment created, but its date could not be reserved",
                appointment_id=appointment["id"],
                slot_id=details.date_id,
            ) from e

        logger.info(f"Booked appointment {appointment['id']} on slot {details.date_id}")
        return appointment

    def update_appointment(self, appointment_id: str, changes: AppointmentUpdate) -> Row:
        values: Dict[str, Any] = changes.model_dump(exclude_unset=True)
        if not values:
            return self.get_appointment(appointment_id)

        updated = self.store.update(APPOINTMENTS, values, {"id": appointment_id})
        if not updated:
            raise RecordNotFound(f"Appointment {appointment_id} not found")
        return updated[0]

    def cancel(self, appointment_id: str) -> Row:
        appointment = self.get_appointment(appointment_id)
        if appointment["status"] != CONFIRMED:
            raise BusinessRuleViolation("Only confirmed appointments can be cancelled")

        updated = self.store.update(
            APPOINTMENTS, {"status": CANCELLED}, {"id": appointment_id, "status": CONFIRMED}
        )
        if not updated:
            raise RecordNotFound(f"Confirmed appointment {appointment_id} not found")
        self._release_slot(appointment, "cancelled")
        logger.info(f"Cancelled appointment {appointment_id}")
        return updated[0]

    def delete_appointment(self, appointment_id: str):
        appointment = self.get_appointment(appointment_id)
        self.store.delete(APPOINTMENTS, {"id": appointment_id})
        self._release_slot(appointment, "deleted")
        logger.info(f"Deleted appointment {appointment_id}")
