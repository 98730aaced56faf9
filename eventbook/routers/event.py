from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from loguru import logger

from eventbook.dependencies import get_admin_user, get_store
from eventbook.filtering import (filter_events_by_category, search_events,
                                 sort_events)
from eventbook.models.event import (EventCreate, EventData, EventDetail,
                                    EventListData, EventListResponse,
                                    EventResponse, EventUpdate,
                                    MessageResponse)
from eventbook.models.user import User
from eventbook.seat_map import SeatMapStore

router = APIRouter(prefix="/api/events", tags=["events"])


def event_response(store: SeatMapStore, event_id: str) -> EventResponse:
    event = store.get_event(event_id)
    detail = EventDetail.from_event(event, store.get_attendees(event_id))
    return EventResponse(data=EventData(event=detail))


@router.get("", response_model=EventListResponse)
async def get_events(
    category: Optional[str] = Query(None, description="Filter by category ('all' for every category)"),
    search: Optional[str] = Query(None, description="Search in title, description, category and location"),
    sort_by: str = Query("date", alias="sortBy", pattern="^(date|title|price)$", description="Sort by date, title or price"),
    order: str = Query("desc", pattern="^(asc|desc)$", description="Sort order"),
    limit: int = Query(50, ge=1, description="Maximum number of events to return"),
    offset: int = Query(0, ge=0, description="Number of events to skip"),
    store: SeatMapStore = Depends(get_store),
):
    """Get active events, latest date first unless sortBy/order say otherwise"""
    events = store.list_events()
    events = filter_events_by_category(events, category)
    events = search_events(events, search)
    events = sort_events(events, sort_by, order)

    return EventListResponse(data=EventListData(
        events=events[offset:offset + limit],
        total=len(events),
    ))


@router.get("/admin/all", response_model=EventListResponse)
async def get_all_events(
    store: SeatMapStore = Depends(get_store),
    admin: User = Depends(get_admin_user),
):
    """Get every event, including inactive ones"""
    events = sort_events(store.list_events(include_inactive=True), "created", "desc")
    return EventListResponse(data=EventListData(events=events, total=len(events)))


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: str = Path(..., description="The event ID"),
    store: SeatMapStore = Depends(get_store),
):
    """Get an event with its attendee list"""
    return event_response(store, event_id)


@router.post("", response_model=EventResponse, status_code=201)
async def create_event(
    event_data: EventCreate,
    store: SeatMapStore = Depends(get_store),
    admin: User = Depends(get_admin_user),
):
    """Create a new event"""
    event = store.create_event(event_data)
    logger.info(f"Admin {admin.user_id} created event {event.event_id}")
    return EventResponse(data=EventData(event=EventDetail.from_event(event, [])))


@router.put("/admin/{event_id}", response_model=EventResponse)
async def update_event(
    event_update: EventUpdate,
    event_id: str = Path(..., description="The event ID"),
    store: SeatMapStore = Depends(get_store),
    admin: User = Depends(get_admin_user),
):
    """Update an event; capacity is fixed once the event has bookings"""
    store.update_event(event_id, event_update)
    logger.info(f"Admin {admin.user_id} updated event {event_id}")
    return event_response(store, event_id)


@router.delete("/admin/{event_id}", response_model=MessageResponse)
async def delete_event(
    event_id: str = Path(..., description="The event ID"),
    store: SeatMapStore = Depends(get_store),
    admin: User = Depends(get_admin_user),
):
    """Delete an event that has no bookings"""
    store.delete_event(event_id)
    logger.info(f"Admin {admin.user_id} deleted event {event_id}")
    return MessageResponse(message="Event deleted successfully")


@router.patch("/admin/{event_id}/status", response_model=EventResponse)
async def toggle_event_status(
    event_id: str = Path(..., description="The event ID"),
    store: SeatMapStore = Depends(get_store),
    admin: User = Depends(get_admin_user),
):
    """Activate or deactivate an event; inactive events reject new bookings"""
    event = store.toggle_event_status(event_id)
    logger.info(f"Admin {admin.user_id} set event {event_id} active={event.is_active}")
    return event_response(store, event_id)


@router.patch("/admin/{event_id}/featured", response_model=EventResponse)
async def toggle_event_featured(
    event_id: str = Path(..., description="The event ID"),
    store: SeatMapStore = Depends(get_store),
    admin: User = Depends(get_admin_user),
):
    """Feature or unfeature an event"""
    store.toggle_event_featured(event_id)
    return event_response(store, event_id)
