from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# JSON keys are camelCase on the wire; Python code uses the field names.
CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventCreate(BaseModel):
    model_config = CAMEL_CONFIG

    title: str = Field(..., min_length=1)
    description: str = ""
    category: str = "Other"
    date: str  # ISO format datetime string
    time: str = ""
    location: str = Field(..., min_length=1)
    price: float = Field(0.0, ge=0)
    capacity: int = Field(100, gt=0)
    image: str = ""
    is_active: bool = True
    is_featured: bool = False


class EventUpdate(BaseModel):
    model_config = CAMEL_CONFIG

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    location: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    capacity: Optional[int] = Field(None, gt=0)
    image: Optional[str] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None


class Event(EventCreate):
    event_id: str = Field(..., alias="_id")
    reserved_count: int = 0
    created_at: str


class Attendee(BaseModel):
    model_config = CAMEL_CONFIG

    user: str
    seat_number: int
    booking_id: str
    booked_at: str
    status: str = "confirmed"


class EventDetail(Event):
    attendees: List[Attendee] = []
    attendees_count: int = 0
    available_spots: int = 0

    @classmethod
    def from_event(cls, event: Event, attendees: List[Attendee]) -> "EventDetail":
        return cls(
            **event.model_dump(),
            attendees=attendees,
            attendees_count=len(attendees),
            available_spots=max(event.capacity - len(attendees), 0),
        )


class SeatMapSnapshot(BaseModel):
    model_config = CAMEL_CONFIG

    event_id: str
    capacity: int
    price: float
    occupied_seats: List[int]


class EventListData(BaseModel):
    events: List[Event]
    total: int


class EventListResponse(BaseModel):
    success: bool = True
    data: EventListData


class EventData(BaseModel):
    event: EventDetail


class EventResponse(BaseModel):
    success: bool = True
    data: EventData


class SeatMapResponse(BaseModel):
    success: bool = True
    data: SeatMapSnapshot


class MessageResponse(BaseModel):
    success: bool = True
    message: str
