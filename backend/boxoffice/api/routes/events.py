"""
Public event endpoints. Only the listing is cached; seat maps are always live.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.db.session import get_db
from boxoffice.schemas.event import EventResponse, EventListResponse, EventDetailResponse, SeatMapResponse
from boxoffice.services.event_service import get_event, list_events, get_seat_map
from boxoffice.services.cache_service import get_cached_events, set_cached_events
from boxoffice.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.get("", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    upcoming_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
):
    """
    List events with pagination.
    Results are cached in Redis for REDIS_CACHE_TTL seconds.
    Cache is invalidated when events or price areas change.
    """
    cached = await get_cached_events(page, page_size, upcoming_only)
    if cached:
        logger.info("events_list_cache_hit", page=page)
        cached["cached"] = True
        return EventListResponse(**cached)

    events, total = await list_events(db, page, page_size, upcoming_only)

    response_data = {
        "events": [EventResponse.model_validate(e).model_dump(mode="json") for e in events],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }

    await set_cached_events(page, page_size, upcoming_only, response_data)

    return EventListResponse(**response_data)


@router.get("/{event_id}", response_model=EventDetailResponse)
async def get_event_endpoint(event_id: int, db: AsyncSession = Depends(get_db)):
    """Event with its price areas, highest priority first."""
    return await get_event(db, event_id)


@router.get("/{event_id}/seats", response_model=SeatMapResponse)
async def get_seat_map_endpoint(event_id: int, db: AsyncSession = Depends(get_db)):
    """
    Seat map: every seat with its resolved price and live state
    (AVAILABLE, HELD, SOLD, NOT_FOR_SALE, ADMIN_RESERVED). Never cached.
    """
    return await get_seat_map(db, event_id)
