import json

import httpx
import pytest

from eventbook.client.api import BookingApiClient
from eventbook.client.session import (SeatSelectionSession, SeatState,
                                      SessionState)
from eventbook.exceptions import (InvalidInputError, NetworkFailureError,
                                  SeatAlreadyTakenError, SessionStateError)


def session_for(client, user):
    return SeatSelectionSession(BookingApiClient(token=user["token"], http_client=client))


class FakeBookingService:
    """Scripted booking service behind an httpx.MockTransport"""

    def __init__(self, capacity=4, occupied=()):
        self.capacity = capacity
        self.occupied = set(occupied)
        self.offline = False
        self.claim_outcomes = {}
        self.html_snapshot = False
        self.requests = []
        self.claimed_seats = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)

        if request.method == "GET":
            if self.html_snapshot:
                return httpx.Response(200, text="<html>Maintenance</html>", headers={"Content-Type": "text/html"})
            attendees = [{"user": "user-x", "seatNumber": seat} for seat in sorted(self.occupied)]
            event = {"_id": "event-1", "capacity": self.capacity, "price": 10.0, "attendees": attendees}
            return httpx.Response(200, json={"success": True, "data": {"event": event}})

        seat = json.loads(request.content)["seatNumber"]
        self.claimed_seats.append(seat)
        outcome = self.claim_outcomes.get(seat, "ok")
        if outcome == "offline":
            raise httpx.ConnectError("connection reset", request=request)
        if outcome == "malformed":
            self.occupied.add(seat)
            return httpx.Response(201, json={"success": True, "data": {}})
        if outcome == "taken":
            self.occupied.add(seat)
            return httpx.Response(409, json={
                "success": False,
                "code": "SEAT_ALREADY_TAKEN",
                "message": "Seat already booked",
                "errors": [{"field": "seatNumber", "message": "Seat already booked"}],
            })
        self.occupied.add(seat)
        booking = {
            "_id": f"booking-{seat}",
            "eventId": "event-1",
            "userId": "user-1",
            "seatNumber": seat,
            "status": "confirmed",
            "createdAt": "2030-01-01T00:00:00+00:00",
        }
        return httpx.Response(201, json={"success": True, "message": "ok", "data": {"booking": booking}})

    def session(self):
        http = httpx.Client(transport=httpx.MockTransport(self.handler), base_url="http://booking.test")
        return SeatSelectionSession(BookingApiClient(token="token-1", http_client=http))

    @property
    def claims(self):
        return [r for r in self.requests if r[0] == "POST"]


def test_two_users_contend_for_a_seat(client, event, alice, bob):
    session_a = session_for(client, alice)
    session_b = session_for(client, bob)
    session_a.load(event["_id"])
    session_b.load(event["_id"])

    session_a.toggle(1)
    session_a.toggle(2)
    session_b.toggle(2)
    session_b.toggle(3)

    result_a = session_a.submit()
    assert result_a.booked == [1, 2]
    assert result_a.failed == []

    result_b = session_b.submit()
    assert result_b.booked == [3]
    assert [(f.seat_number, f.reason, f.retryable) for f in result_b.failed] == [
        (2, "SEAT_ALREADY_TAKEN", False)
    ]
    assert result_b.partial

    assert session_b.state == SessionState.READY
    assert session_b.selected_seats == []
    assert session_b.occupied_seats == [1, 2, 3]

    attendees = client.get(f"/api/events/{event['_id']}").json()["data"]["event"]["attendees"]
    owners = {a["seatNumber"]: a["user"] for a in attendees}
    assert owners == {1: alice["user"]["_id"], 2: alice["user"]["_id"], 3: bob["user"]["_id"]}


def test_submit_refreshes_snapshot_with_other_users_claims(client, event, alice, bob):
    session_a = session_for(client, alice)
    session_a.load(event["_id"])
    session_a.toggle(1)

    client.post(f"/api/bookings/{event['_id']}", json={"seatNumber": 3}, headers=bob["headers"])

    session_a.submit()

    assert session_a.seat_state(3) == SeatState.BOOKED
    assert session_a.seat_map() == {1: SeatState.BOOKED, 2: SeatState.AVAILABLE, 3: SeatState.BOOKED}


def test_toggle_is_idempotent(client, event, alice):
    session = session_for(client, alice)
    session.load(event["_id"])
    session.toggle(3)
    before = session.selected_seats

    assert session.toggle(1) is True
    assert session.toggle(1) is False

    assert session.selected_seats == before == [3]


def test_toggle_rejects_booked_and_missing_seats(client, event, alice, bob):
    client.post(f"/api/bookings/{event['_id']}", json={"seatNumber": 2}, headers=bob["headers"])
    session = session_for(client, alice)
    session.load(event["_id"])

    with pytest.raises(SeatAlreadyTakenError):
        session.toggle(2)
    with pytest.raises(InvalidInputError):
        session.toggle(4)
    assert session.selected_seats == []


def test_total_price(client, event, alice):
    session = session_for(client, alice)
    session.load(event["_id"])
    session.toggle(1)
    session.toggle(3)

    assert session.total_price == 50.0


def test_empty_submit_is_a_no_op():
    service = FakeBookingService()
    session = service.session()
    session.load("event-1")
    requests_after_load = len(service.requests)

    result = session.submit()

    assert result.booked == []
    assert result.failed == []
    assert len(service.requests) == requests_after_load
    assert session.state == SessionState.READY


def test_submit_claims_in_ascending_order():
    service = FakeBookingService()
    session = service.session()
    session.load("event-1")
    for seat in (4, 1, 3):
        session.toggle(seat)

    result = session.submit()

    assert [path for _, path in service.claims] == ["/api/bookings/event-1"] * 3
    assert service.claimed_seats == [1, 3, 4]
    assert result.booked == [1, 3, 4]
    assert [b.booking_id for b in result.bookings] == ["booking-1", "booking-3", "booking-4"]


def test_failed_snapshot_leaves_session_in_error_state():
    service = FakeBookingService(occupied={2})
    service.offline = True
    session = service.session()

    with pytest.raises(NetworkFailureError):
        session.load("event-1")

    assert session.state == SessionState.ERROR
    assert session.error.retryable
    assert session.snapshot is None
    assert session.seat_map() == {}
    with pytest.raises(SessionStateError):
        session.toggle(1)
    with pytest.raises(SessionStateError):
        session.seat_state(1)

    service.offline = False
    session.retry()

    assert session.state == SessionState.READY
    assert session.seat_state(2) == SeatState.BOOKED
    assert session.seat_state(1) == SeatState.AVAILABLE


def test_partial_failure_is_attributed_per_seat():
    service = FakeBookingService()
    service.claim_outcomes = {2: "offline", 3: "taken"}
    session = service.session()
    session.load("event-1")
    for seat in (1, 2, 3, 4):
        session.toggle(seat)

    result = session.submit()

    assert result.booked == [1, 4]
    assert [(f.seat_number, f.reason, f.retryable) for f in result.failed] == [
        (2, "NETWORK_FAILURE", True),
        (3, "SEAT_ALREADY_TAKEN", False),
    ]
    # Every seat was attempted even after failures
    assert len(service.claims) == 4
    # The network failure stays selected for another try; the taken seat is gone
    assert session.selected_seats == [2]
    assert session.seat_state(3) == SeatState.BOOKED
    assert session.state == SessionState.READY


def test_taken_seat_is_not_retried_automatically():
    service = FakeBookingService()
    service.claim_outcomes = {1: "taken"}
    session = service.session()
    session.load("event-1")
    session.toggle(1)

    session.submit()
    result = session.submit()

    assert len(service.claims) == 1
    assert result.booked == [] and result.failed == []


def test_submit_survives_failed_refresh():
    service = FakeBookingService()
    session = service.session()
    session.load("event-1")
    session.toggle(1)

    original_handler = service.handler

    def handler(request):
        response = original_handler(request)
        if request.method == "POST":
            service.offline = True
        return response

    session.api.http = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://booking.test")

    result = session.submit()

    assert result.booked == [1]
    assert session.state == SessionState.READY
    assert session.seat_state(1) == SeatState.BOOKED


def test_closed_session_rejects_operations():
    service = FakeBookingService()
    session = service.session()
    session.load("event-1")
    session.toggle(1)

    session.close()

    assert session.state == SessionState.CLOSED
    assert session.selected_seats == []
    with pytest.raises(SessionStateError):
        session.submit()
    with pytest.raises(SessionStateError):
        session.load("event-1")


def test_unreadable_snapshot_leaves_session_retryable():
    service = FakeBookingService(occupied={4})
    service.html_snapshot = True
    session = service.session()

    with pytest.raises(NetworkFailureError):
        session.load("event-1")

    assert session.state == SessionState.ERROR
    assert session.error.retryable
    assert session.seat_map() == {}

    service.html_snapshot = False
    session.retry()

    assert session.state == SessionState.READY
    assert session.occupied_seats == [4]


def test_snapshot_without_event_leaves_session_retryable():
    def handler(request):
        return httpx.Response(200, json={"success": True, "data": {}})

    http = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://booking.test")
    session = SeatSelectionSession(BookingApiClient(token="token-1", http_client=http))

    with pytest.raises(NetworkFailureError):
        session.load("event-1")

    assert session.state == SessionState.ERROR
    with pytest.raises(NetworkFailureError):
        session.retry()
    assert session.state == SessionState.ERROR


def test_load_failure_of_any_kind_ends_in_error_state():
    class BrokenApi:
        def fetch_snapshot(self, event_id):
            raise RuntimeError("decoder exploded")

    session = SeatSelectionSession(BrokenApi())

    with pytest.raises(RuntimeError):
        session.load("event-1")

    assert session.state == SessionState.ERROR
    assert isinstance(session.error, NetworkFailureError)


def test_malformed_claim_response_is_attributed_to_its_seat():
    service = FakeBookingService()
    service.claim_outcomes = {1: "malformed"}
    session = service.session()
    session.load("event-1")
    for seat in (1, 2, 3):
        session.toggle(seat)

    result = session.submit()

    assert service.claimed_seats == [1, 2, 3]
    assert result.booked == [2, 3]
    assert [(f.seat_number, f.reason, f.retryable) for f in result.failed] == [
        (1, "NETWORK_FAILURE", True),
    ]
    # The refreshed seat map shows the server kept seat 1, so it leaves the selection
    assert session.selected_seats == []
    assert session.seat_state(1) == SeatState.BOOKED
    assert session.state == SessionState.READY
