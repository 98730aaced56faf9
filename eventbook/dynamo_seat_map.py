"""DynamoDB single-table seat map store.

Item layout (pk / sk):
  <event_id>      / EVENT          event record
  <event_id>      / SEAT#nnnnn     one item per reserved seat (the claim)
  <booking_id>    / BOOKING        booking record
  <user_id>       / USER           user record
  EMAIL#<email>   / EMAIL          unique email, points at the user

The claim item's primary key is the (event, seat) unique constraint: it is
written with attribute_not_exists(pk) in the same transaction that stores the
booking, so only one claim per seat commits. Claims only read the event item
through a ConditionCheck, so claims on different seats never contend.

The number of reserved seats is the number of SEAT# items. Changes that
depend on it (capacity, deletion) first pause claims on the event by setting
claims_paused_until, which every claim's ConditionCheck rejects, then count.
"""
import time
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Set

from boto3.dynamodb.types import TypeSerializer
from loguru import logger

from eventbook.database import DynamoDBClient
from eventbook.exceptions import (InvalidInputError, NotFoundError,
                                  SeatAlreadyTakenError, StoreError)
from eventbook.models.booking import Booking, BookingStatus
from eventbook.models.event import Attendee, Event, EventCreate, EventUpdate
from eventbook.models.user import User, UserRole
from eventbook.seat_map import (SeatMapStore, check_accepting_bookings,
                                check_can_cancel, check_capacity_change,
                                check_seat_number)
from eventbook.utils import (create_cancellation_transaction_items,
                             create_claim_transaction_items,
                             generate_booking_id, generate_event_id,
                             get_cancellation_codes, get_current_timestamp,
                             get_timestamp_after)

CONDITION_FAILED = "ConditionalCheckFailed"
TRANSACTION_CONFLICT = "TransactionConflict"

# Claims on the same seat, or racing a pause, can be cancelled with
# TransactionConflict; nothing was written, so they are retried.
MAX_TRANSACTION_ATTEMPTS = 3
RETRY_BACKOFF_SECONDS = 0.05

# A pause left behind by a crashed request expires after this long
CLAIM_PAUSE_SECONDS = 30

_serializer = TypeSerializer()


def _event_from_item(item: Dict[str, Any], reserved_count: int = 0) -> Event:
    return Event(
        event_id=item["event_id"],
        title=item["title"],
        description=item.get("description", ""),
        category=item.get("category", "Other"),
        date=item["date"],
        time=item.get("time", ""),
        location=item["location"],
        price=float(item.get("price", 0)),
        capacity=int(item["capacity"]),
        image=item.get("image", ""),
        is_active=bool(item.get("is_active", True)),
        is_featured=bool(item.get("is_featured", False)),
        reserved_count=reserved_count,
        created_at=item["created_at"],
    )


def _booking_from_item(item: Dict[str, Any]) -> Booking:
    return Booking(
        booking_id=item["booking_id"],
        event_id=item["event_id"],
        user_id=item["user_id"],
        seat_number=int(item["seat_number"]),
        status=BookingStatus(item["status"]),
        created_at=item["created_at"],
        cancelled_at=item.get("cancelled_at"),
    )


def _user_from_item(item: Dict[str, Any]) -> User:
    return User(
        user_id=item["user_id"],
        first_name=item["first_name"],
        last_name=item["last_name"],
        email=item["email"],
        phone=item.get("phone", ""),
        role=UserRole(item.get("role", "user")),
        token=item["token"],
        password_hash=item.get("password_hash"),
        created_at=item["created_at"],
    )


def _email_key(email: str) -> str:
    return f"EMAIL#{email}"


def _check_result(result: Dict[str, Any], action: str) -> Dict[str, Any]:
    if result["status"] == "error":
        logger.error(f"Failed to {action}: {result['error']}")
        raise StoreError(f"Failed to {action}")
    return result


class DynamoSeatMapStore(SeatMapStore):

    def __init__(self, client: DynamoDBClient):
        self.client = client

    def _get_item(self, pk: str, sk: str, kind: str, consistent: bool = False) -> Dict[str, Any]:
        result = _check_result(self.client.get_item(pk, sk, consistent=consistent), f"fetch {kind}")
        if result["status"] == "not_found":
            raise NotFoundError(f"{kind.capitalize()} with ID {pk} not found")
        return result["item"]

    def _get_event_item(self, event_id: str, consistent: bool = False) -> Dict[str, Any]:
        return self._get_item(event_id, "EVENT", "event", consistent)

    def _count_seats(self, event_id: str) -> int:
        result = _check_result(
            self.client.count_items(event_id, "SEAT#", consistent=True), "count reserved seats"
        )
        return result["count"]

    def _transact(self, transact_items: List[Dict[str, Any]], action: str) -> Dict[str, Any]:
        for attempt in range(1, MAX_TRANSACTION_ATTEMPTS + 1):
            result = _check_result(self.client.transact_write(transact_items), action)
            if result["status"] == "success":
                return result
            codes = get_cancellation_codes(result)
            if TRANSACTION_CONFLICT not in codes or CONDITION_FAILED in codes:
                return result
            logger.debug(f"Transaction conflict on attempt {attempt} to {action}, retrying")
            time.sleep(RETRY_BACKOFF_SECONDS * attempt)
        raise StoreError(f"Failed to {action}: too many concurrent transactions, try again")

    @contextmanager
    def _claims_paused(self, event_id: str) -> Iterator[str]:
        """Hold off new claims on an event while its seats are counted and changed.

        Yields the pause token; writes that must only happen under this pause
        condition on claims_paused_until matching it.
        """
        until = get_timestamp_after(CLAIM_PAUSE_SECONDS)
        result = _check_result(
            self.client.update_item(
                event_id, "EVENT",
                "SET claims_paused_until = :until",
                {":until": until, ":now": get_current_timestamp()},
                condition_expression=(
                    "attribute_exists(pk) AND "
                    "(attribute_not_exists(claims_paused_until) OR claims_paused_until < :now)"
                ),
            ),
            f"pause claims on event {event_id}",
        )
        if result["status"] == "condition_failed":
            self._get_event_item(event_id, consistent=True)
            raise StoreError(f"Event {event_id} is being changed by another request, try again")

        try:
            yield until
        finally:
            result = self.client.update_item(
                event_id, "EVENT",
                "REMOVE claims_paused_until",
                {":until": until},
                condition_expression="claims_paused_until = :until",
            )
            if result["status"] == "error":
                logger.error(f"Failed to resume claims on event {event_id}: {result['error']}")

    # Seats

    def get_occupied_seats(self, event_id: str) -> Set[int]:
        self._get_event_item(event_id)
        result = _check_result(
            self.client.query_items(event_id, "SEAT#", consistent=True), "fetch occupied seats"
        )
        return {int(item["seat_number"]) for item in result["items"]}

    def get_attendees(self, event_id: str) -> List[Attendee]:
        self._get_event_item(event_id)
        result = _check_result(
            self.client.query_items(event_id, "SEAT#", consistent=True), "fetch attendees"
        )
        # Sort keys are zero padded, so query order is seat order
        return [
            Attendee(
                user=item["user_id"],
                seat_number=int(item["seat_number"]),
                booking_id=item["booking_id"],
                booked_at=item["booked_at"],
            )
            for item in result["items"]
        ]

    def reserve_seat(self, event_id: str, seat_number: int, user_id: str) -> Booking:
        event = _event_from_item(self._get_event_item(event_id, consistent=True))
        check_seat_number(event, seat_number)
        check_accepting_bookings(event)

        booking_id = generate_booking_id()
        created_at = get_current_timestamp()
        transact_items = create_claim_transaction_items(
            self.client.table_name, event_id, seat_number, booking_id, user_id, created_at
        )
        result = self._transact(transact_items, f"reserve seat {seat_number}")

        if result["status"] == "cancelled":
            seat_code, event_code = get_cancellation_codes(result)[:2]
            if seat_code == CONDITION_FAILED:
                logger.warning(f"Seat {seat_number} of {event_id} already taken, claim by {user_id} rejected")
                raise SeatAlreadyTakenError()
            if event_code == CONDITION_FAILED:
                # Event changed between the read and the claim
                event = _event_from_item(self._get_event_item(event_id, consistent=True))
                check_accepting_bookings(event)
                check_seat_number(event, seat_number)
                raise StoreError(f"Event {event_id} is being updated, try again")
            raise StoreError(f"Failed to reserve seat {seat_number}: {result['error']}")

        logger.info(f"Seat {seat_number} of {event_id} reserved by {user_id} ({booking_id})")
        return Booking(
            booking_id=booking_id,
            event_id=event_id,
            user_id=user_id,
            seat_number=seat_number,
            status=BookingStatus.CONFIRMED,
            created_at=created_at,
        )

    def cancel_reservation(self, booking_id: str, user_id: str, is_admin: bool = False) -> Booking:
        booking = self.get_booking(booking_id, consistent=True)
        check_can_cancel(booking, user_id, is_admin)

        cancelled_at = get_current_timestamp()
        transact_items = create_cancellation_transaction_items(
            self.client.table_name, booking.event_id, booking.seat_number, booking_id, cancelled_at
        )
        result = self._transact(transact_items, f"cancel booking {booking_id}")

        if result["status"] == "cancelled":
            booking_code = get_cancellation_codes(result)[0]
            if booking_code == CONDITION_FAILED:
                raise InvalidInputError(f"Booking {booking_id} is already cancelled")
            raise StoreError(f"Failed to cancel booking {booking_id}: {result['error']}")

        logger.info(f"Booking {booking_id} cancelled, seat {booking.seat_number} of {booking.event_id} freed")
        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = cancelled_at
        return booking

    # Bookings

    def get_booking(self, booking_id: str, consistent: bool = False) -> Booking:
        return _booking_from_item(self._get_item(booking_id, "BOOKING", "booking", consistent))

    def list_user_bookings(self, user_id: str) -> List[Booking]:
        result = _check_result(
            self.client.scan_items("sk = :sk AND user_id = :user_id", {
                ":sk": "BOOKING",
                ":user_id": user_id,
            }),
            "fetch user bookings",
        )
        bookings = [_booking_from_item(item) for item in result["items"]]
        bookings.sort(key=lambda b: b.created_at, reverse=True)
        return bookings

    # Events

    def create_event(self, event_data: EventCreate) -> Event:
        event = Event(
            event_id=generate_event_id(),
            created_at=get_current_timestamp(),
            **event_data.model_dump(),
        )
        item = event.model_dump(exclude={"reserved_count"})
        item.update({
            "pk": event.event_id,
            "sk": "EVENT",
            "price": Decimal(str(event.price)),
        })
        _check_result(self.client.put_item(item), "create event")
        logger.info(f"Event {event.event_id} created with capacity {event.capacity}")
        return event

    def get_event(self, event_id: str, consistent: bool = False) -> Event:
        item = self._get_event_item(event_id, consistent)
        return _event_from_item(item, self._count_seats(event_id))

    def list_events(self, include_inactive: bool = False) -> List[Event]:
        result = _check_result(
            self.client.scan_items("sk = :event OR begins_with(sk, :seat)", {
                ":event": "EVENT",
                ":seat": "SEAT#",
            }),
            "fetch events",
        )
        event_items = []
        seat_counts: Dict[str, int] = {}
        for item in result["items"]:
            if item["sk"] == "EVENT":
                event_items.append(item)
            else:
                seat_counts[item["pk"]] = seat_counts.get(item["pk"], 0) + 1

        events = [_event_from_item(item, seat_counts.get(item["pk"], 0)) for item in event_items]
        return [event for event in events if include_inactive or event.is_active]

    def _apply_update(self, event_id: str, changes: Dict[str, Any], reserved_count: int) -> Event:
        # Every attribute goes through a name placeholder; date, time and
        # location are DynamoDB reserved words.
        names = {f"#{field}": field for field in changes}
        values = {
            f":{field}": Decimal(str(value)) if isinstance(value, float) else value
            for field, value in changes.items()
        }
        result = _check_result(
            self.client.update_item(
                event_id, "EVENT",
                "SET " + ", ".join(f"#{field} = :{field}" for field in changes),
                values,
                condition_expression="attribute_exists(pk)",
                expression_names=names,
            ),
            f"update event {event_id}",
        )
        if result["status"] == "condition_failed":
            raise NotFoundError(f"Event with ID {event_id} not found")
        return _event_from_item(result["item"], reserved_count)

    def update_event(self, event_id: str, update: EventUpdate) -> Event:
        event = self.get_event(event_id, consistent=True)
        check_capacity_change(event, update)

        changes = update.model_dump(exclude_none=True)
        if not changes:
            return event

        if changes.get("capacity", event.capacity) == event.capacity:
            return self._apply_update(event_id, changes, event.reserved_count)

        with self._claims_paused(event_id):
            event = self.get_event(event_id, consistent=True)
            check_capacity_change(event, update)
            return self._apply_update(event_id, changes, event.reserved_count)

    def delete_event(self, event_id: str) -> None:
        with self._claims_paused(event_id) as pause:
            if self._count_seats(event_id) > 0:
                raise InvalidInputError("Cannot delete an event with active bookings")
            result = _check_result(
                self.client.delete_item(
                    event_id, "EVENT",
                    condition_expression="claims_paused_until = :until",
                    expression_values={":until": pause},
                ),
                f"delete event {event_id}",
            )
            if result["status"] == "condition_failed":
                raise InvalidInputError(f"Event {event_id} changed while being deleted, try again")
        logger.info(f"Event {event_id} deleted")

    def set_event_flag(self, event_id: str, flag: str, value: bool) -> Event:
        result = _check_result(
            self.client.update_item(
                event_id, "EVENT",
                "SET #flag = :value",
                {":value": value},
                condition_expression="attribute_exists(pk)",
                expression_names={"#flag": flag},
            ),
            f"update event {event_id}",
        )
        if result["status"] == "condition_failed":
            raise NotFoundError(f"Event with ID {event_id} not found")
        return _event_from_item(result["item"], self._count_seats(event_id))

    # Users

    def create_user(self, user: User) -> User:
        item = user.model_dump(exclude={"token", "password_hash"})
        item.update({
            "pk": user.user_id,
            "sk": "USER",
            "role": user.role.value,
            "token": user.token,
            "password_hash": user.password_hash,
        })
        transact_items = [
            {
                "Put": {
                    "TableName": self.client.table_name,
                    "Item": {
                        "pk": {"S": _email_key(user.email)},
                        "sk": {"S": "EMAIL"},
                        "user_id": {"S": user.user_id},
                    },
                    "ConditionExpression": "attribute_not_exists(pk)",
                }
            },
            {
                "Put": {
                    "TableName": self.client.table_name,
                    "Item": {key: _serializer.serialize(value) for key, value in item.items()},
                }
            },
        ]
        result = self._transact(transact_items, "create user")
        if result["status"] == "cancelled":
            if get_cancellation_codes(result)[0] == CONDITION_FAILED:
                raise InvalidInputError("A user with this email already exists", field="email")
            raise StoreError(f"Failed to create user: {result['error']}")
        return user

    def get_user(self, user_id: str) -> User:
        return _user_from_item(self._get_item(user_id, "USER", "user"))

    def get_user_by_email(self, email: str) -> Optional[User]:
        result = _check_result(self.client.get_item(_email_key(email), "EMAIL"), "look up user email")
        if result["status"] == "not_found":
            return None
        return self.get_user(result["item"]["user_id"])

    def get_user_by_token(self, token: str) -> Optional[User]:
        result = _check_result(
            self.client.scan_items(
                "sk = :sk AND #token = :token",
                {":sk": "USER", ":token": token},
                {"#token": "token"},
            ),
            "look up user token",
        )
        if not result["items"]:
            return None
        return _user_from_item(result["items"][0])
