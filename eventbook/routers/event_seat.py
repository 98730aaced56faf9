from fastapi import APIRouter, Depends, Path

from eventbook.dependencies import get_store
from eventbook.models.event import SeatMapResponse, SeatMapSnapshot
from eventbook.seat_map import SeatMapStore

router = APIRouter(prefix="/api/events", tags=["event-seats"])


@router.get("/{event_id}/seats", response_model=SeatMapResponse)
async def get_event_seats(
    event_id: str = Path(..., description="The event ID"),
    store: SeatMapStore = Depends(get_store),
):
    """Get the occupied seat numbers of an event"""
    event = store.get_event(event_id)
    occupied = store.get_occupied_seats(event_id)

    return SeatMapResponse(data=SeatMapSnapshot(
        event_id=event_id,
        capacity=event.capacity,
        price=event.price,
        occupied_seats=sorted(occupied),
    ))
