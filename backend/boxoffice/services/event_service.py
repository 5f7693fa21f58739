"""
Event catalogue and seat map.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import NotFoundError
from boxoffice.core.logging import get_logger
from boxoffice.db.base import utcnow
from boxoffice.models.event import Event
from boxoffice.schemas.event import EventCreate, SeatMapResponse, SeatStateResponse
from boxoffice.services.inventory_service import active_locks_for_event
from boxoffice.services.pricing import SaleStatus, resolve_prices
from boxoffice.services.seating import get_layout

logger = get_logger(__name__)

AVAILABLE = "AVAILABLE"


async def create_event(db: AsyncSession, event_data: EventCreate) -> Event:
    event = Event(
        title=event_data.title,
        description=event_data.description,
        start_date=event_data.start_date,
        end_date=event_data.end_date,
        location=event_data.location,
        image_url=event_data.image_url,
    )
    db.add(event)
    await db.flush()
    await db.refresh(event, attribute_names=["price_areas"])

    logger.info("event_created", event_id=event.id, title=event.title)
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event with its price areas."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()
    if not event:
        raise NotFoundError("Event", event_id)
    return event


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = True,
    now: Optional[datetime] = None,
) -> tuple[list[Event], int]:
    """
    List events with pagination, soonest first.
    An event counts as upcoming until its end (or start, when it has no end).
    """
    query = select(Event)

    if upcoming_only:
        now = now or utcnow()
        query = query.where(
            or_(
                Event.start_date >= now,
                Event.end_date >= now,
            )
        )

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.start_date.asc(), Event.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    return list(result.scalars().all()), total


async def get_seat_map(db: AsyncSession, event_id: int, now: Optional[datetime] = None) -> SeatMapResponse:
    """
    Every seat of the hall with its resolved price and live state.
    Held or sold seats override the pricing status; prices stay visible.
    """
    event = await get_event(db, event_id)
    layout = get_layout()
    seats = list(layout)

    resolutions = resolve_prices((seat.id for seat in seats), event.price_areas)
    locks = await active_locks_for_event(db, event_id, now)

    states = []
    for seat in seats:
        resolution = resolutions[seat.id]
        lock = locks.get(seat.token)
        if lock is not None:
            status = lock.value
        elif resolution.purchasable:
            status = AVAILABLE
        elif resolution.status == SaleStatus.FOR_SALE:
            # Matched a FOR_SALE area without a price
            status = SaleStatus.NOT_FOR_SALE.value
        else:
            status = resolution.status.value
        states.append(
            SeatStateResponse(
                id=seat.token,
                label=seat.label,
                section=seat.id.section,
                row=seat.id.row,
                number=seat.id.number,
                x=seat.x,
                y=seat.y,
                tier=seat.tier,
                status=status,
                price=resolution.price,
                color=resolution.color,
                area=resolution.area_name,
            )
        )

    logger.debug("seat_map_built", event_id=event_id, seats=len(states), locked=len(locks))
    return SeatMapResponse(event_id=event_id, currency=get_settings().CURRENCY, seats=states)
