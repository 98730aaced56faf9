from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from eventbook.models.event import CAMEL_CONFIG


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class SeatClaimRequest(BaseModel):
    model_config = CAMEL_CONFIG

    seat_number: int


class Booking(BaseModel):
    model_config = CAMEL_CONFIG

    booking_id: str = Field(..., alias="_id")
    event_id: str
    user_id: str
    seat_number: int
    status: BookingStatus
    created_at: str
    cancelled_at: Optional[str] = None


class UserBooking(Booking):
    """A booking joined with the event fields shown in a user's booking list"""

    event_title: str
    location: str
    event_date: str
    event_time: str = ""
    price: float


class BookingData(BaseModel):
    booking: Booking


class BookingResponse(BaseModel):
    success: bool = True
    message: str
    data: BookingData


class UserBookingsData(BaseModel):
    bookings: List[UserBooking]


class UserBookingsResponse(BaseModel):
    success: bool = True
    data: UserBookingsData
