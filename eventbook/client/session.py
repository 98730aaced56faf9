"""Client-side seat selection session.

A session belongs to one user interaction with one event. It caches a seat
map snapshot, lets the user toggle seats against it, and on submit claims the
selected seats one request at a time, reconciling the cache with whatever
the server decided. The snapshot is advisory; the server is always right.

    IDLE -> LOADING -> READY <-> SUBMITTING
               |         ^
               v         |
             ERROR -(retry)
    any state -> CLOSED
"""
from enum import Enum
from typing import Dict, List, Optional, Set

from loguru import logger
from pydantic import BaseModel

from eventbook.client.api import BookingApiClient
from eventbook.exceptions import (EventbookError, InvalidInputError,
                                  NetworkFailureError, SeatAlreadyTakenError,
                                  SessionStateError)
from eventbook.models.booking import Booking
from eventbook.models.event import SeatMapSnapshot


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    SUBMITTING = "submitting"
    CLOSED = "closed"


class SeatState(str, Enum):
    AVAILABLE = "available"
    SELECTED = "selected"
    BOOKED = "booked"


class SeatFailure(BaseModel):
    seat_number: int
    reason: str
    message: str
    retryable: bool


class SubmissionResult(BaseModel):
    booked: List[int] = []
    failed: List[SeatFailure] = []
    bookings: List[Booking] = []

    @property
    def partial(self) -> bool:
        return bool(self.booked) and bool(self.failed)


class SeatSelectionSession:
    def __init__(self, api: BookingApiClient):
        self.api = api
        self.state = SessionState.IDLE
        self.event_id: Optional[str] = None
        self.error: Optional[EventbookError] = None
        self._snapshot: Optional[SeatMapSnapshot] = None
        self._occupied: Set[int] = set()
        self._selected: Set[int] = set()

    def _require(self, *states: SessionState):
        if self.state not in states:
            allowed = ", ".join(state.value for state in states)
            raise SessionStateError(f"Session is {self.state.value}, expected one of: {allowed}")

    def _apply_snapshot(self, snapshot: SeatMapSnapshot):
        self._snapshot = snapshot
        self._occupied = set(snapshot.occupied_seats)
        # Seats other users took since the last snapshot are no longer selectable
        self._selected -= self._occupied

    # Loading

    def load(self, event_id: str) -> SeatMapSnapshot:
        """Fetch the seat map for an event; a new event starts a fresh selection"""
        self._require(SessionState.IDLE, SessionState.ERROR, SessionState.READY)
        if event_id != self.event_id:
            self._selected = set()
        self.event_id = event_id
        self.state = SessionState.LOADING
        self.error = None

        try:
            snapshot = self.api.fetch_snapshot(event_id)
        except Exception as e:
            logger.warning(f"Failed to load seat map for {event_id}: {e}")
            self.state = SessionState.ERROR
            if isinstance(e, EventbookError):
                self.error = e
            else:
                self.error = NetworkFailureError(f"Could not load the seat map: {e}")
            self._snapshot = None
            self._occupied = set()
            self._selected = set()
            raise

        self._apply_snapshot(snapshot)
        self.state = SessionState.READY
        logger.debug(f"Seat map for {event_id} loaded, {len(self._occupied)}/{snapshot.capacity} occupied")
        return snapshot

    def retry(self) -> SeatMapSnapshot:
        """Reload the seat map after a failed load"""
        self._require(SessionState.ERROR)
        return self.load(self.event_id)

    def refresh(self) -> SeatMapSnapshot:
        """Re-fetch the seat map, keeping the selection where still possible"""
        self._require(SessionState.READY)
        return self.load(self.event_id)

    # Selection

    @property
    def snapshot(self) -> Optional[SeatMapSnapshot]:
        return self._snapshot

    @property
    def selected_seats(self) -> List[int]:
        return sorted(self._selected)

    @property
    def occupied_seats(self) -> List[int]:
        return sorted(self._occupied)

    @property
    def total_price(self) -> float:
        if self._snapshot is None:
            return 0.0
        return self._snapshot.price * len(self._selected)

    def seat_state(self, seat_number: int) -> SeatState:
        if self._snapshot is None:
            raise SessionStateError("No seat map loaded")
        if not 1 <= seat_number <= self._snapshot.capacity:
            raise InvalidInputError(f"Seat {seat_number} does not exist for this event", field="seatNumber")
        if seat_number in self._occupied:
            return SeatState.BOOKED
        if seat_number in self._selected:
            return SeatState.SELECTED
        return SeatState.AVAILABLE

    def seat_map(self) -> Dict[int, SeatState]:
        """State of every seat; empty until a snapshot has been loaded"""
        if self._snapshot is None:
            return {}
        return {seat: self.seat_state(seat) for seat in range(1, self._snapshot.capacity + 1)}

    def toggle(self, seat_number: int) -> bool:
        """Select or deselect a seat. Returns whether the seat is now selected."""
        self._require(SessionState.READY)
        if self.seat_state(seat_number) == SeatState.BOOKED:
            raise SeatAlreadyTakenError(f"Seat {seat_number} is already booked")

        if seat_number in self._selected:
            self._selected.discard(seat_number)
            return False
        self._selected.add(seat_number)
        return True

    def clear_selection(self):
        self._require(SessionState.READY)
        self._selected = set()

    # Submission

    def submit(self) -> SubmissionResult:
        """Claim every selected seat, one request per seat, in ascending order.

        Claims are independent: a rejected seat never stops the others.
        Taken seats leave the selection and are marked booked; seats that hit
        a network failure stay selected so the user can submit them again.
        """
        self._require(SessionState.READY)
        result = SubmissionResult()
        if not self._selected:
            return result

        self.state = SessionState.SUBMITTING
        try:
            for seat_number in sorted(self._selected):
                self._claim(seat_number, result)
        finally:
            self.state = SessionState.READY

        try:
            self._apply_snapshot(self.api.fetch_snapshot(self.event_id))
        except EventbookError as e:
            logger.warning(f"Could not refresh seat map for {self.event_id} after submit: {e.message}")

        logger.info(
            f"Submitted seats for {self.event_id}: booked {result.booked}, "
            f"failed {[failure.seat_number for failure in result.failed]}"
        )
        return result

    def _claim(self, seat_number: int, result: SubmissionResult):
        try:
            booking = self.api.claim_seat(self.event_id, seat_number)
        except NetworkFailureError as e:
            result.failed.append(SeatFailure(
                seat_number=seat_number, reason=e.code, message=e.message, retryable=True,
            ))
            return
        except SeatAlreadyTakenError as e:
            self._occupied.add(seat_number)
            self._selected.discard(seat_number)
            result.failed.append(SeatFailure(
                seat_number=seat_number, reason=e.code, message=e.message, retryable=False,
            ))
            return
        except EventbookError as e:
            self._selected.discard(seat_number)
            result.failed.append(SeatFailure(
                seat_number=seat_number, reason=e.code, message=e.message, retryable=False,
            ))
            return

        self._occupied.add(seat_number)
        self._selected.discard(seat_number)
        result.booked.append(seat_number)
        result.bookings.append(booking)

    def close(self):
        self.state = SessionState.CLOSED
        self._snapshot = None
        self._occupied = set()
        self._selected = set()
