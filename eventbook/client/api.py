"""HTTP client for the booking service.

Translates HTTP outcomes into the exceptions of ``eventbook.exceptions``:
transport failures, 5xx responses and success responses that cannot be read
become ``NetworkFailureError`` (retryable). Every other error response maps
to the error named by its ``code``.
"""
import os
from typing import Any, Dict, List, Optional

import httpx
from dotenv import load_dotenv
from loguru import logger
from pydantic import ValidationError

from eventbook.exceptions import (ERRORS_BY_CODE, AuthenticationError,
                                  EventbookError, InvalidInputError,
                                  NetworkFailureError, NotFoundError,
                                  NotOwnerError, SeatAlreadyTakenError)
from eventbook.models.booking import Booking, UserBooking
from eventbook.models.event import SeatMapSnapshot

# Load environment variables
load_dotenv()

DEFAULT_API_URL = "https://event-book-backend.onrender.com"
DEFAULT_TIMEOUT = 10.0

ERRORS_BY_STATUS = {
    401: AuthenticationError,
    403: NotOwnerError,
    404: NotFoundError,
    409: SeatAlreadyTakenError,
}


def error_from_response(response: httpx.Response) -> EventbookError:
    """Build the exception matching an error response"""
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    message = payload.get("message") or payload.get("detail") or f"Request failed with status {response.status_code}"
    errors = payload.get("errors") or []
    field = None
    if errors and isinstance(errors[0], dict):
        field = errors[0].get("field") or errors[0].get("path")

    if response.status_code >= 500:
        return NetworkFailureError(f"Booking service error ({response.status_code}): {message}")

    error_class = ERRORS_BY_CODE.get(payload.get("code"))
    if error_class is None:
        # Older backends only send a message
        if "already booked" in str(message).lower():
            error_class = SeatAlreadyTakenError
        else:
            error_class = ERRORS_BY_STATUS.get(response.status_code, InvalidInputError)
    return error_class(str(message), field)


class BookingApiClient:
    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 http_client: Optional[httpx.Client] = None):
        self.token = token
        if http_client is None:
            http_client = httpx.Client(
                base_url=base_url or os.getenv("EVENTBOOK_API_URL", DEFAULT_API_URL),
                timeout=float(os.getenv("EVENTBOOK_HTTP_TIMEOUT", DEFAULT_TIMEOUT)),
            )
        self.http = http_client

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self.http.request(method, path, headers=self._headers(), **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise NetworkFailureError(f"Could not reach the booking service: {e}")

        if not response.is_success:
            raise error_from_response(response)
        try:
            payload = response.json()
        except ValueError:
            logger.warning(f"{method} {path} returned a non-JSON {response.status_code} response")
            raise NetworkFailureError(f"Unexpected response from the booking service ({response.status_code})")
        if not isinstance(payload, dict):
            raise NetworkFailureError("Unexpected response from the booking service")
        return payload

    def _data(self, method: str, path: str, key: str, **kwargs) -> Any:
        """Request and unwrap ``data.<key>`` from the success envelope"""
        payload = self._request(method, path, **kwargs)
        data = payload.get("data")
        if not isinstance(data, dict) or key not in data:
            logger.warning(f"{method} {path} response has no data.{key}")
            raise NetworkFailureError(f"Unexpected response from the booking service: missing data.{key}")
        return data[key]

    def login(self, email: str, password: str) -> Dict[str, Any]:
        """Log in and use the returned token for every later request"""
        token = self._data("POST", "/api/auth/login", "token", json={"email": email, "password": password})
        if not isinstance(token, str) or not token:
            raise NetworkFailureError("Unexpected response from the booking service: malformed token")
        self.token = token
        return self._data("GET", "/api/auth/me", "user")

    def get_event(self, event_id: str) -> Dict[str, Any]:
        """Get the raw event detail, attendees included"""
        event = self._data("GET", f"/api/events/{event_id}", "event")
        if not isinstance(event, dict):
            raise NetworkFailureError("Unexpected response from the booking service: malformed event")
        return event

    def fetch_snapshot(self, event_id: str) -> SeatMapSnapshot:
        """Fetch the event and derive its occupied seats from the attendee list"""
        event = self.get_event(event_id)
        try:
            occupied = {
                attendee["seatNumber"]
                for attendee in event.get("attendees") or []
                if attendee.get("seatNumber")
            }
            return SeatMapSnapshot(
                event_id=event_id,
                capacity=event["capacity"],
                price=event.get("price", 0),
                occupied_seats=sorted(occupied),
            )
        except (AttributeError, KeyError, TypeError, ValidationError) as e:
            logger.warning(f"Malformed seat map for {event_id}: {e}")
            raise NetworkFailureError(f"Unexpected response from the booking service: malformed event {event_id}")

    def _booking(self, method: str, path: str, **kwargs) -> Booking:
        raw = self._data(method, path, "booking", **kwargs)
        try:
            return Booking.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"{method} {path} returned a malformed booking: {e}")
            raise NetworkFailureError("Unexpected response from the booking service: malformed booking")

    def claim_seat(self, event_id: str, seat_number: int) -> Booking:
        return self._booking("POST", f"/api/bookings/{event_id}", json={"seatNumber": seat_number})

    def cancel_booking(self, booking_id: str) -> Booking:
        return self._booking("DELETE", f"/api/bookings/{booking_id}")

    def list_bookings(self) -> List[UserBooking]:
        raw = self._data("GET", "/api/bookings", "bookings")
        try:
            return [UserBooking.model_validate(item) for item in raw]
        except (TypeError, ValidationError) as e:
            logger.warning(f"Malformed booking list: {e}")
            raise NetworkFailureError("Unexpected response from the booking service: malformed bookings")

    def close(self):
        self.http.close()
