"""Seat Map Store: the authority on seat occupancy per event.

Every reservation decision goes through a ``SeatMapStore``. A claim on a seat
is atomic: of any number of concurrent claims on the same (event, seat) pair
exactly one commits and the rest fail with ``SeatAlreadyTakenError``. Claims on
different seats never wait on each other's seat lock.

There is deliberately no multi-seat claim. Booking N seats is N independent
claims, so a multi-seat booking can partially succeed.
"""
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Set, Tuple

from loguru import logger

from eventbook.exceptions import (CapacityExceededError, InvalidInputError,
                                  NotFoundError, NotOwnerError,
                                  SeatAlreadyTakenError)
from eventbook.models.booking import Booking, BookingStatus
from eventbook.models.event import Attendee, Event, EventCreate, EventUpdate
from eventbook.models.user import User
from eventbook.utils import (generate_booking_id, generate_event_id,
                             get_current_timestamp)


def check_seat_number(event: Event, seat_number: int) -> None:
    if not 1 <= seat_number <= event.capacity:
        raise InvalidInputError(
            f"Seat {seat_number} is out of range for this event (1-{event.capacity})",
            field="seatNumber",
        )


def check_accepting_bookings(event: Event) -> None:
    if not event.is_active:
        raise InvalidInputError(f"Event {event.event_id} is not accepting bookings")


def check_capacity_change(event: Event, update: EventUpdate) -> None:
    """Capacity is fixed once live bookings exist against the event"""
    if update.capacity is None or update.capacity == event.capacity:
        return
    if event.reserved_count > 0:
        raise InvalidInputError(
            "Capacity cannot be changed while the event has bookings",
            field="capacity",
        )


def check_can_cancel(booking: Booking, user_id: str, is_admin: bool) -> None:
    if booking.user_id != user_id and not is_admin:
        raise NotOwnerError("You can only cancel your own bookings")
    if booking.status == BookingStatus.CANCELLED:
        raise InvalidInputError(f"Booking {booking.booking_id} is already cancelled")


class SeatMapStore(ABC):
    """Contract shared by the DynamoDB and in-memory seat map stores"""

    # Seats

    @abstractmethod
    def get_occupied_seats(self, event_id: str) -> Set[int]:
        """Seat numbers currently reserved for the event"""

    @abstractmethod
    def get_attendees(self, event_id: str) -> List[Attendee]:
        """Live reservations of the event, ordered by seat number"""

    @abstractmethod
    def reserve_seat(self, event_id: str, seat_number: int, user_id: str) -> Booking:
        """Atomically claim one seat for a user"""

    @abstractmethod
    def cancel_reservation(self, booking_id: str, user_id: str, is_admin: bool = False) -> Booking:
        """Cancel a booking and free its seat"""

    # Bookings

    @abstractmethod
    def get_booking(self, booking_id: str) -> Booking:
        pass

    @abstractmethod
    def list_user_bookings(self, user_id: str) -> List[Booking]:
        pass

    # Events

    @abstractmethod
    def create_event(self, event_data: EventCreate) -> Event:
        pass

    @abstractmethod
    def get_event(self, event_id: str) -> Event:
        pass

    @abstractmethod
    def list_events(self, include_inactive: bool = False) -> List[Event]:
        pass

    @abstractmethod
    def update_event(self, event_id: str, update: EventUpdate) -> Event:
        pass

    @abstractmethod
    def delete_event(self, event_id: str) -> None:
        pass

    @abstractmethod
    def set_event_flag(self, event_id: str, flag: str, value: bool) -> Event:
        pass

    def toggle_event_status(self, event_id: str) -> Event:
        event = self.get_event(event_id)
        return self.set_event_flag(event_id, "is_active", not event.is_active)

    def toggle_event_featured(self, event_id: str) -> Event:
        event = self.get_event(event_id)
        return self.set_event_flag(event_id, "is_featured", not event.is_featured)

    # Users

    @abstractmethod
    def create_user(self, user: User) -> User:
        """Store a new user; emails are unique"""

    @abstractmethod
    def get_user(self, user_id: str) -> User:
        pass

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]:
        pass

    @abstractmethod
    def get_user_by_token(self, token: str) -> Optional[User]:
        pass


class InMemorySeatMapStore(SeatMapStore):
    """Process-local store; one lock per (event, seat) serializes claims"""

    def __init__(self):
        self._users: Dict[str, User] = {}
        self._emails: Dict[str, str] = {}
        self._events: Dict[str, Event] = {}
        self._bookings: Dict[str, Booking] = {}
        # event_id -> seat_number -> booking_id
        self._seats: Dict[str, Dict[int, str]] = {}
        self._registry_lock = threading.Lock()
        self._seat_locks: Dict[Tuple[str, int], threading.Lock] = {}
        self._event_locks: Dict[str, threading.Lock] = {}

    def _seat_lock(self, event_id: str, seat_number: int) -> threading.Lock:
        with self._registry_lock:
            return self._seat_locks.setdefault((event_id, seat_number), threading.Lock())

    def _event_lock(self, event_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._event_locks.setdefault(event_id, threading.Lock())

    def _get_stored_event(self, event_id: str) -> Event:
        event = self._events.get(event_id)
        if event is None:
            raise NotFoundError(f"Event with ID {event_id} not found")
        return event

    # Seats

    def get_occupied_seats(self, event_id: str) -> Set[int]:
        self._get_stored_event(event_id)
        return set(self._seats.get(event_id, {}).copy())

    def get_attendees(self, event_id: str) -> List[Attendee]:
        self._get_stored_event(event_id)
        attendees = []
        for seat_number, booking_id in sorted(self._seats.get(event_id, {}).copy().items()):
            booking = self._bookings[booking_id]
            attendees.append(Attendee(
                user=booking.user_id,
                seat_number=seat_number,
                booking_id=booking_id,
                booked_at=booking.created_at,
                status=booking.status.value,
            ))
        return attendees

    def reserve_seat(self, event_id: str, seat_number: int, user_id: str) -> Booking:
        event = self._get_stored_event(event_id)
        check_seat_number(event, seat_number)
        check_accepting_bookings(event)

        with self._seat_lock(event_id, seat_number):
            seats = self._seats.setdefault(event_id, {})
            if seat_number in seats:
                logger.warning(f"Seat {seat_number} of {event_id} already taken, claim by {user_id} rejected")
                raise SeatAlreadyTakenError()

            with self._event_lock(event_id):
                event = self._get_stored_event(event_id)
                check_seat_number(event, seat_number)
                check_accepting_bookings(event)
                if event.reserved_count >= event.capacity:
                    raise CapacityExceededError(f"Event {event_id} is sold out")
                event.reserved_count += 1

            booking = Booking(
                booking_id=generate_booking_id(),
                event_id=event_id,
                user_id=user_id,
                seat_number=seat_number,
                status=BookingStatus.CONFIRMED,
                created_at=get_current_timestamp(),
            )
            self._bookings[booking.booking_id] = booking
            seats[seat_number] = booking.booking_id

        logger.info(f"Seat {seat_number} of {event_id} reserved by {user_id} ({booking.booking_id})")
        return booking.model_copy()

    def cancel_reservation(self, booking_id: str, user_id: str, is_admin: bool = False) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking with ID {booking_id} not found")
        check_can_cancel(booking, user_id, is_admin)

        with self._seat_lock(booking.event_id, booking.seat_number):
            # Re-check under the lock, a concurrent cancel may have won
            check_can_cancel(booking, user_id, is_admin)
            booking.status = BookingStatus.CANCELLED
            booking.cancelled_at = get_current_timestamp()

            seats = self._seats.get(booking.event_id, {})
            if seats.get(booking.seat_number) == booking_id:
                del seats[booking.seat_number]

            with self._event_lock(booking.event_id):
                event = self._events.get(booking.event_id)
                if event is not None and event.reserved_count > 0:
                    event.reserved_count -= 1

        logger.info(f"Booking {booking_id} cancelled, seat {booking.seat_number} of {booking.event_id} freed")
        return booking.model_copy()

    # Bookings

    def get_booking(self, booking_id: str) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking with ID {booking_id} not found")
        return booking.model_copy()

    def list_user_bookings(self, user_id: str) -> List[Booking]:
        bookings = [b.model_copy() for b in list(self._bookings.values()) if b.user_id == user_id]
        bookings.sort(key=lambda b: b.created_at, reverse=True)
        return bookings

    # Events

    def create_event(self, event_data: EventCreate) -> Event:
        event = Event(
            event_id=generate_event_id(),
            created_at=get_current_timestamp(),
            **event_data.model_dump(),
        )
        self._events[event.event_id] = event
        self._seats[event.event_id] = {}
        logger.info(f"Event {event.event_id} created with capacity {event.capacity}")
        return event.model_copy()

    def get_event(self, event_id: str) -> Event:
        return self._get_stored_event(event_id).model_copy()

    def list_events(self, include_inactive: bool = False) -> List[Event]:
        return [
            event.model_copy()
            for event in list(self._events.values())
            if include_inactive or event.is_active
        ]

    def update_event(self, event_id: str, update: EventUpdate) -> Event:
        with self._event_lock(event_id):
            event = self._get_stored_event(event_id)
            check_capacity_change(event, update)
            for field, value in update.model_dump(exclude_none=True).items():
                setattr(event, field, value)
            return event.model_copy()

    def delete_event(self, event_id: str) -> None:
        with self._event_lock(event_id):
            event = self._get_stored_event(event_id)
            if event.reserved_count > 0:
                raise InvalidInputError("Cannot delete an event with active bookings")
            del self._events[event_id]
            self._seats.pop(event_id, None)
        logger.info(f"Event {event_id} deleted")

    def set_event_flag(self, event_id: str, flag: str, value: bool) -> Event:
        with self._event_lock(event_id):
            event = self._get_stored_event(event_id)
            setattr(event, flag, value)
            return event.model_copy()

    # Users

    def create_user(self, user: User) -> User:
        with self._registry_lock:
            if user.email in self._emails:
                raise InvalidInputError("A user with this email already exists", field="email")
            self._emails[user.email] = user.user_id
            self._users[user.user_id] = user.model_copy()
        return user.model_copy()

    def get_user(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError(f"User with ID {user_id} not found")
        return user.model_copy()

    def get_user_by_email(self, email: str) -> Optional[User]:
        user_id = self._emails.get(email)
        if user_id is None:
            return None
        return self.get_user(user_id)

    def get_user_by_token(self, token: str) -> Optional[User]:
        for user in list(self._users.values()):
            if user.token == token:
                return user.model_copy()
        return None
