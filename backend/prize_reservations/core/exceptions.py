"""
Error taxonomy for the reservation core.

Every error carries enough structured detail for the API layer to render a
user-facing message (which tickets conflicted, how long until a reset or an
unblock). Nothing here is retried automatically; retry policy belongs to the
caller.
"""

from typing import Any, Optional


class ReservationError(Exception):
    """Base class for all reservation-core errors."""

    status_code: int = 400
    message: str = "Request could not be processed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def details(self) -> dict[str, Any]:
        return {}


class ValidationError(ReservationError):
    """Malformed input: empty or invalid ticket set, quantity out of bounds."""

    status_code = 400
    message = "Invalid request data"


class CompetitionNotFoundError(ReservationError):
    status_code = 404
    message = "Competition not found"


class ConflictError(ReservationError):
    """Requested tickets are locked by another owner. Retry with other numbers."""

    status_code = 409

    def __init__(self, conflicting_tickets: list[int], message: Optional[str] = None):
        self.conflicting_tickets = sorted(conflicting_tickets)
        numbers = ", ".join(str(n) for n in self.conflicting_tickets)
        super().__init__(
            message or f"Tickets {numbers} are being purchased by another user"
        )

    def details(self) -> dict[str, Any]:
        return {"conflictingTickets": self.conflicting_tickets}


class RateLimitedError(ReservationError):
    """Bucket exhausted. The caller must wait until reset_at (epoch seconds)."""

    status_code = 429
    message = "Too many requests. Please wait a moment."

    def __init__(self, bucket: str, reset_at: int, message: Optional[str] = None):
        super().__init__(message)
        self.bucket = bucket
        self.reset_at = reset_at

    def details(self) -> dict[str, Any]:
        return {"bucket": self.bucket, "resetAt": self.reset_at}


class LockoutError(ReservationError):
    """Skill-question attempts exhausted. remaining_time is in seconds."""

    status_code = 429
    message = "Too many incorrect attempts"

    def __init__(self, remaining_time: int, message: Optional[str] = None):
        super().__init__(message)
        self.remaining_time = remaining_time

    def details(self) -> dict[str, Any]:
        minutes = -(-self.remaining_time // 60)
        return {
            "blocked": True,
            "remainingTime": self.remaining_time,
            "message": f"Please wait {minutes} minutes before trying again.",
        }


class StoreError(ReservationError):
    status_code = 503
    message = "Service temporarily unavailable. Please try again later."


class StoreUnavailableError(StoreError):
    """Backend unreachable or erroring. Never to be read as success."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__()
        self.operation = operation
        self.cause = cause

    def __str__(self) -> str:
        return f"store operation '{self.operation}' failed: {self.cause!r}"
