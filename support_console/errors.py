# support_console/errors.py
"""Error types shared by the console services.

Services raise these; the HTTP layer maps each family onto one status code
(see ``main.console_error_handler``).
"""

from typing import Optional


class ConsoleError(Exception):
    """Base class for every failure surfaced to staff"""

    kind = "console_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StoreError(ConsoleError):
    """A row store call failed (connectivity, authorization, constraint)"""

    kind = "store_error"
    status_code = 502


class PartialBookingError(StoreError):
    """The second write of a booking or cancellation failed.

    The first write is already committed and is not compensated; the
    appointment and slot named here need manual reconciliation.
    """

    kind = "partial_booking"

    def __init__(self, message: str, appointment_id: str, slot_id: Optional[str]):
        super().__init__(message)
        self.appointment_id = appointment_id
        self.slot_id = slot_id


class RecordNotFound(ConsoleError):
    kind = "not_found"
    status_code = 404


class ValidationFailure(ConsoleError):
    """Form input rejected before anything was written"""

    kind = "validation_error"
    status_code = 422


class BusinessRuleViolation(ConsoleError):
    kind = "rule_violation"
    status_code = 409


class DeliveryError(ConsoleError):
    """The messaging API did not accept an outbound message"""

    kind = "delivery_error"
    status_code = 502


class AuthenticationError(ConsoleError):
    kind = "authentication_error"
    status_code = 401
