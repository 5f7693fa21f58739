"""
Checkout orchestration: pricing a selection, holding it, and buyer access.

Prices are always recomputed here from the event's current price areas and
frozen on each order item; a client never submits a price.
The order's public token is the only credential for buyer-facing reads.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    RateLimitError,
    UpstreamError,
    ValidationError,
)
from boxoffice.core.logging import get_logger
from boxoffice.core.security import generate_public_token, tokens_match
from boxoffice.db.base import utcnow
from boxoffice.infrastructure.twocheckout import build_checkout_url
from boxoffice.models.order import Order, OrderItem, OrderStatus
from boxoffice.schemas.order import OrderCreate, OrderDetailResponse, OrderItemResponse
from boxoffice.services.cache_service import hit_counter
from boxoffice.services.email_service import send_ticket_email
from boxoffice.services.event_service import get_event
from boxoffice.services.inventory_service import try_hold_seats
from boxoffice.services.pricing import resolve_prices
from boxoffice.services.seating import get_layout
from boxoffice.services.ticket_documents import order_links

logger = get_logger(__name__)

RESEND_WINDOW_SECONDS = 3600


@dataclass(frozen=True)
class CheckoutSession:
    order: Order
    redirect_url: str
    expires_at: datetime


def _normalize_seat_ids(seat_ids: List[str]) -> List[str]:
    """Strip and dedupe, keeping the buyer's selection order."""
    cleaned = [seat_id.strip() for seat_id in seat_ids]
    if any(not seat_id for seat_id in cleaned):
        raise ValidationError("Seat ids must not be empty", field="seat_ids")
    return list(dict.fromkeys(cleaned))


async def create_order(db: AsyncSession, payload: OrderCreate, now: Optional[datetime] = None) -> CheckoutSession:
    settings = get_settings()
    seat_ids = _normalize_seat_ids(payload.seat_ids)
    if len(seat_ids) > settings.MAX_SEATS_PER_ORDER:
        raise ValidationError(
            f"At most {settings.MAX_SEATS_PER_ORDER} seats per order",
            field="seat_ids",
        )

    event = await get_event(db, payload.event_id)

    layout = get_layout()
    seats = []
    for seat_id in seat_ids:
        seat = layout.get(seat_id)
        if seat is None:
            raise NotFoundError("Seat", seat_id)
        seats.append(seat)

    resolutions = resolve_prices((seat.id for seat in seats), event.price_areas)
    not_for_sale = [seat.token for seat in seats if not resolutions[seat.id].purchasable]
    if not_for_sale:
        raise ValidationError(
            f"Seats not for sale: {', '.join(not_for_sale)}",
            field="seat_ids",
        )

    # Fail before holding seats nobody could pay for
    if not settings.TWOCHECKOUT_MERCHANT_CODE:
        raise UpstreamError("2checkout", "Payment provider is not configured")

    items = [
        OrderItem(
            seat_id=seat.token,
            seat_label=seat.label,
            price_at_booking=resolutions[seat.id].price,
        )
        for seat in seats
    ]
    order = Order(
        event=event,
        email=payload.email,
        full_name=payload.full_name.strip(),
        phone=payload.phone,
        currency=settings.CURRENCY,
        total_amount=sum(item.price_at_booking for item in items),
        status=OrderStatus.PENDING.value,
        public_token=generate_public_token(),
        items=items,
    )

    hold = await try_hold_seats(db, event.id, seat_ids, order, now=now)

    redirect_url = build_checkout_url(
        order_id=order.id,
        public_token=order.public_token,
        item_name=f"{event.title} - Order #{order.id}",
        total_amount=order.total_amount,
        currency=order.currency,
        full_name=order.full_name,
        email=order.email,
        phone=order.phone,
    )

    logger.info(
        "order_created",
        order_id=order.id,
        event_id=event.id,
        seats=len(items),
        total=order.total_amount,
        currency=order.currency,
    )
    return CheckoutSession(order=order, redirect_url=redirect_url, expires_at=hold.expires_at)


async def get_order_for_buyer(db: AsyncSession, order_id: int, token: Optional[str]) -> Order:
    """
    Load an order for a buyer. Unknown order, missing or wrong token all
    raise the same AuthorizationError.
    """
    if not token:
        raise AuthorizationError()

    result = await db.execute(select(Order).where(Order.id == order_id))
    order = result.scalar_one_or_none()
    if order is None:
        logger.warning("order_token_rejected", order_id=order_id, reason="unknown_order")
        raise AuthorizationError()

    if not tokens_match(token, order.public_token):
        logger.warning("order_token_rejected", order_id=order_id)
        raise AuthorizationError()
    return order


def require_paid(order: Order) -> None:
    if order.status != OrderStatus.PAID.value:
        raise ConflictError(
            "Order is not paid",
            code="ORDER_NOT_PAID",
            details={"status": order.status},
        )


def order_detail(order: Order) -> OrderDetailResponse:
    links = order_links(order) if order.status == OrderStatus.PAID.value else None
    return OrderDetailResponse(
        id=order.id,
        event_id=order.event_id,
        event_title=order.event.title,
        event_start=order.event.start_date,
        status=order.status,
        email=order.email,
        full_name=order.full_name,
        currency=order.currency,
        total_amount=order.total_amount,
        created_at=order.created_at,
        paid_at=order.paid_at,
        items=[OrderItemResponse.model_validate(item) for item in order.items],
        links=links,
    )


async def resend_ticket_email(db: AsyncSession, order: Order) -> None:
    """Buyer-triggered resend, limited per order per hour. Fails open without Redis."""
    require_paid(order)

    settings = get_settings()
    count = await hit_counter(f"email:resend:{order.id}", RESEND_WINDOW_SECONDS)
    if count is not None and count > settings.EMAIL_RESEND_LIMIT:
        logger.warning("ticket_email_rate_limited", order_id=order.id, count=count)
        raise RateLimitError(settings.EMAIL_RESEND_LIMIT, RESEND_WINDOW_SECONDS)

    try:
        await send_ticket_email(order)
    except UpstreamError as e:
        order.last_email_error = e.message[:1000]
        await db.commit()
        logger.error("ticket_email_resend_failed", order_id=order.id, error=e.message)
        raise

    order.email_sent_at = utcnow()
    order.last_email_error = None
    await db.flush()
