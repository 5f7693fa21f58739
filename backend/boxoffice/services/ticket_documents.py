"""
Buyer-facing documents for a paid order: plain-text tickets and an iCalendar entry.
"""

from datetime import datetime, timedelta
from typing import Optional

from boxoffice.core.config import get_settings
from boxoffice.db.base import utcnow
from boxoffice.infrastructure.twocheckout import format_amount
from boxoffice.models.order import Order

DEFAULT_EVENT_LENGTH = timedelta(hours=2)
ICS_DATE_FORMAT = "%Y%m%dT%H%M%SZ"
CALENDAR_PRODID = "-//Box Office//Ticket System//EN"


def order_links(order: Order) -> dict:
    """Relative, token-carrying URLs of an order's documents."""
    base = f"/api/v1/orders/{order.id}"
    query = f"?t={order.public_token}"
    return {
        "tickets": f"{base}/tickets{query}",
        "calendar": f"{base}/calendar{query}",
        "resend_email": f"{base}/resend-email{query}",
    }


def absolute_links(order: Order) -> dict:
    site = get_settings().SITE_URL.rstrip("/")
    return {name: f"{site}{path}" for name, path in order_links(order).items()}


def render_tickets(order: Order) -> str:
    event = order.event
    lines = [
        event.title,
        event.start_date.strftime("%A %d %B %Y, %H:%M UTC"),
    ]
    if event.location:
        lines.append(event.location)
    lines += ["", f"Order #{order.id} for {order.full_name}", ""]
    for item in order.items:
        lines.append(f"{item.seat_label}  {format_amount(item.price_at_booking)} {order.currency}")
    lines += ["", f"Total: {format_amount(order.total_amount)} {order.currency}", ""]
    return "\n".join(lines)


def _escape(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def render_calendar(order: Order, now: Optional[datetime] = None) -> str:
    event = order.event
    start = event.start_date
    end = event.end_date or start + DEFAULT_EVENT_LENGTH
    seats = ", ".join(item.seat_label for item in order.items)
    description = (
        f"Order: {order.id}\n"
        f"Seats: {seats}\n"
        f"Total: {format_amount(order.total_amount)} {order.currency}"
    )

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{CALENDAR_PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:order-{order.id}@boxoffice",
        f"DTSTAMP:{(now or utcnow()).strftime(ICS_DATE_FORMAT)}",
        f"DTSTART:{start.strftime(ICS_DATE_FORMAT)}",
        f"DTEND:{end.strftime(ICS_DATE_FORMAT)}",
        f"SUMMARY:{_escape(event.title)}",
    ]
    if event.location:
        lines.append(f"LOCATION:{_escape(event.location)}")
    lines += [
        f"DESCRIPTION:{_escape(description)}",
        "STATUS:CONFIRMED",
        "BEGIN:VALARM",
        "TRIGGER:-P1D",
        f"DESCRIPTION:{_escape(f'Reminder: {event.title} tomorrow')}",
        "ACTION:DISPLAY",
        "END:VALARM",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(lines) + "\r\n"


def calendar_filename(order: Order) -> str:
    slug = "".join(ch if ch.isalnum() else "-" for ch in order.event.title)
    return f"event-{slug}.ics"
