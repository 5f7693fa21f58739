"""
Ticket email delivery through the Resend HTTP API.

Delivery runs after the payment transaction has committed, in its own
session. A failed send is recorded on the order (last_email_error) and
never propagates into payment reconciliation.
"""

from html import escape
from typing import Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import UpstreamError
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_email
from boxoffice.db.base import utcnow
from boxoffice.infrastructure.twocheckout import format_amount
from boxoffice.models.order import Order
from boxoffice.services.ticket_documents import absolute_links

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 1000


def render_ticket_email(order: Order) -> str:
    event = order.event
    links = absolute_links(order)
    seats = "\n".join(
        f"{escape(item.seat_label)} - {format_amount(item.price_at_booking)} {order.currency}"
        for item in order.items
    )
    return (
        f"<h1>Your Tickets for {escape(event.title)}</h1>"
        f"<p>Thank you for your order!</p>"
        f"<h2>Order Details</h2>"
        f"<p><strong>Order ID:</strong> {order.id}</p>"
        f"<p><strong>Date:</strong> {event.start_date.strftime('%A %d %B %Y, %H:%M UTC')}</p>"
        f"<h3>Your Seats:</h3><pre>{seats}</pre>"
        f"<p><strong>Total:</strong> {format_amount(order.total_amount)} {order.currency}</p>"
        f'<p><a href="{escape(links["tickets"])}">Download Tickets</a></p>'
        f'<p><a href="{escape(links["calendar"])}">Add to Calendar</a></p>'
        f"<p>See you at the theatre!</p>"
    )


async def send_ticket_email(order: Order, client: Optional[httpx.AsyncClient] = None) -> str:
    """Send the ticket email. Returns the provider message id."""
    settings = get_settings()
    if not settings.RESEND_API_KEY:
        raise UpstreamError("email", "Email service not configured")

    payload = {
        "from": settings.EMAIL_FROM,
        "to": order.email,
        "subject": f"Your Tickets - {order.event.title}",
        "html": render_ticket_email(order),
    }
    headers = {"Authorization": f"Bearer {settings.RESEND_API_KEY}"}

    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=settings.EMAIL_TIMEOUT_SECONDS)
    try:
        response = await client.post(settings.RESEND_API_URL, json=payload, headers=headers)
    except httpx.HTTPError as e:
        raise UpstreamError("email", f"Email request failed: {e}")
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code >= 400:
        raise UpstreamError("email", f"Email API error {response.status_code}: {response.text[:200]}")

    message_id = response.json().get("id", "")
    logger.info("ticket_email_sent", order_id=order.id, message_id=message_id)
    return message_id


async def deliver_ticket_email(session_factory: async_sessionmaker, order_id: int) -> bool:
    """
    Background task: send the ticket email for a paid order and record the
    outcome on the order. Returns True when the email went out.
    """
    async with session_factory() as db:
        result = await db.execute(select(Order).where(Order.id == order_id))
        order = result.scalar_one_or_none()
        if order is None:
            logger.error("ticket_email_order_missing", order_id=order_id)
            return False

        try:
            await send_ticket_email(order)
        except UpstreamError as e:
            order.last_email_error = e.message[:MAX_ERROR_LENGTH]
            await db.commit()
            record_email(sent=False)
            logger.error("ticket_email_failed", order_id=order_id, error=e.message)
            return False

        order.email_sent_at = utcnow()
        order.last_email_error = None
        await db.commit()
        record_email(sent=True)
        return True
