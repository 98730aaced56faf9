from typing import Dict, List, Optional


class EventbookError(Exception):
    """Base error for seat map and booking operations"""

    status_code = 500
    code = "ERROR"
    retryable = False

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    @property
    def errors(self) -> List[Dict[str, str]]:
        if not self.field:
            return []
        return [{"field": self.field, "message": self.message}]

    def to_payload(self) -> dict:
        return {
            "success": False,
            "code": self.code,
            "message": self.message,
            "errors": self.errors,
        }


class NotFoundError(EventbookError):
    status_code = 404
    code = "NOT_FOUND"


class SeatAlreadyTakenError(EventbookError):
    """The seat is reserved by someone else; re-select instead of retrying"""

    status_code = 409
    code = "SEAT_ALREADY_TAKEN"

    def __init__(self, message: str = "Seat already booked", field: Optional[str] = "seatNumber"):
        super().__init__(message, field)


class CapacityExceededError(EventbookError):
    status_code = 409
    code = "CAPACITY_EXCEEDED"


class NotOwnerError(EventbookError):
    status_code = 403
    code = "NOT_OWNER"


class InvalidInputError(EventbookError):
    status_code = 400
    code = "INVALID_INPUT"


class AuthenticationError(EventbookError):
    status_code = 401
    code = "UNAUTHORIZED"


class StoreError(EventbookError):
    status_code = 500
    code = "STORE_ERROR"


class NetworkFailureError(EventbookError):
    """Transport-level failure talking to the booking service (client side only)"""

    status_code = 503
    code = "NETWORK_FAILURE"
    retryable = True


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        NotFoundError,
        SeatAlreadyTakenError,
        CapacityExceededError,
        NotOwnerError,
        InvalidInputError,
        AuthenticationError,
        StoreError,
        NetworkFailureError,
    )
}


class SessionStateError(EventbookError):
    """Operation not allowed in the seat selection session's current state"""

    status_code = 409
    code = "INVALID_STATE"
