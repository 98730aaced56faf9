from fastapi import APIRouter, Depends, Path

from eventbook.dependencies import get_current_user, get_store
from eventbook.exceptions import NotFoundError
from eventbook.models.booking import (BookingData, BookingResponse,
                                      SeatClaimRequest, UserBooking,
                                      UserBookingsData, UserBookingsResponse)
from eventbook.models.user import User
from eventbook.seat_map import SeatMapStore

router = APIRouter(prefix="/api/bookings", tags=["seat-booking"])


@router.post("/{event_id}", response_model=BookingResponse, status_code=201)
async def book_seat(
    claim: SeatClaimRequest,
    event_id: str = Path(..., description="The event ID"),
    store: SeatMapStore = Depends(get_store),
    user: User = Depends(get_current_user),
):
    """Claim a single seat for the authenticated user.

    Each request claims exactly one seat; booking several seats means one
    request per seat, and each can succeed or fail on its own.
    """
    booking = store.reserve_seat(event_id, claim.seat_number, user.user_id)
    return BookingResponse(
        message=f"Seat {booking.seat_number} booked successfully",
        data=BookingData(booking=booking),
    )


@router.delete("/{booking_id}", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str = Path(..., description="The booking ID"),
    store: SeatMapStore = Depends(get_store),
    user: User = Depends(get_current_user),
):
    """Cancel a booking owned by the caller (or any booking, for administrators)"""
    booking = store.cancel_reservation(booking_id, user.user_id, is_admin=user.is_admin)
    return BookingResponse(
        message="Booking cancelled successfully",
        data=BookingData(booking=booking),
    )


@router.get("", response_model=UserBookingsResponse)
async def get_my_bookings(
    store: SeatMapStore = Depends(get_store),
    user: User = Depends(get_current_user),
):
    """Get the caller's bookings, most recent first"""
    bookings = []
    event_cache = {}  # Cache for event lookups

    for booking in store.list_user_bookings(user.user_id):
        if booking.event_id not in event_cache:
            try:
                event_cache[booking.event_id] = store.get_event(booking.event_id)
            except NotFoundError:
                event_cache[booking.event_id] = None

        event = event_cache[booking.event_id]
        if event is None:
            continue  # Event was deleted after the booking was cancelled

        bookings.append(UserBooking(
            **booking.model_dump(),
            event_title=event.title,
            location=event.location,
            event_date=event.date,
            event_time=event.time,
            price=event.price,
        ))

    return UserBookingsResponse(data=UserBookingsData(bookings=bookings))
