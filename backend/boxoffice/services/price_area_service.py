"""
Admin management of pricing rules (price areas).
Rules are created and deleted, never edited in place.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.exceptions import NotFoundError, ValidationError
from boxoffice.core.logging import get_logger
from boxoffice.models.event import PriceArea
from boxoffice.schemas.event import PriceAreaCreate
from boxoffice.services.event_service import get_event
from boxoffice.services.pricing import build_selectors
from boxoffice.services.seating import get_layout

logger = get_logger(__name__)


async def list_price_areas(db: AsyncSession, event_id: int) -> list[PriceArea]:
    """Rules of an event, highest priority first."""
    await get_event(db, event_id)
    result = await db.execute(
        select(PriceArea)
        .where(PriceArea.event_id == event_id)
        .order_by(PriceArea.priority.desc(), PriceArea.id.asc())
    )
    return list(result.scalars().all())


async def create_price_area(db: AsyncSession, event_id: int, data: PriceAreaCreate) -> PriceArea:
    event = await get_event(db, event_id)

    if data.seats is not None:
        layout = get_layout()
        unknown = sorted(seat for seat in set(data.seats) if seat not in layout)
        if unknown:
            raise ValidationError(f"Unknown seats: {', '.join(unknown)}", field="seats")

    area = PriceArea(
        event=event,
        name=data.name,
        selectors=build_selectors(
            seats=data.seats,
            rows=data.rows,
            sections=data.sections,
            seat_numbers=data.seat_numbers,
        ),
        sale_status=data.sale_status.value,
        price=data.price,
        priority=data.priority,
        color=data.color,
    )
    db.add(area)
    await db.flush()
    await db.refresh(area)

    logger.info(
        "price_area_created",
        event_id=event_id,
        rule_id=area.id,
        name=area.name,
        priority=area.priority,
        sale_status=area.sale_status,
    )
    return area


async def delete_price_area(db: AsyncSession, event_id: int, rule_id: int) -> None:
    result = await db.execute(
        select(PriceArea).where(PriceArea.id == rule_id, PriceArea.event_id == event_id)
    )
    area = result.scalar_one_or_none()
    if not area:
        raise NotFoundError("Price area", rule_id)

    await db.delete(area)
    await db.flush()
    logger.info("price_area_deleted", event_id=event_id, rule_id=rule_id)

