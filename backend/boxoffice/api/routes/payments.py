"""
Inbound 2Checkout payment notifications.
Both endpoints are idempotent: the provider may deliver the same
notification several times.
"""

import json

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from boxoffice.core.exceptions import ValidationError
from boxoffice.core.logging import get_logger
from boxoffice.db.session import get_db, get_session_factory
from boxoffice.infrastructure.twocheckout import (
    HostedCheckoutChannel,
    IpnChannel,
    notification_value_text,
    parse_notification_pairs,
)
from boxoffice.schemas.admin import NotificationResponse
from boxoffice.services.email_service import deliver_ticket_email
from boxoffice.services.payment_service import NotificationResult, reconcile_payment_notification

logger = get_logger(__name__)
router = APIRouter(prefix="/payments/2checkout", tags=["Payments"])


async def read_notification_params(request: Request) -> dict:
    """Form-encoded or JSON body as an ordered str -> str mapping."""
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            raise ValidationError("Notification body is not valid JSON")
        if not isinstance(payload, dict):
            raise ValidationError("Notification body must be a JSON object")
        return parse_notification_pairs(
            (str(key), notification_value_text(value)) for key, value in payload.items()
        )

    form = await request.form()
    return parse_notification_pairs(form.multi_items())


async def _schedule_ticket_email(
    result: NotificationResult,
    db: AsyncSession,
    background_tasks: BackgroundTasks,
    session_factory: async_sessionmaker,
) -> None:
    if not result.newly_paid:
        return
    # The email task reads the order from its own session
    await db.commit()
    background_tasks.add_task(deliver_ticket_email, session_factory, int(result.order_id))


@router.post("/notify", response_model=NotificationResponse)
async def hosted_notification(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Hosted checkout notification (INS). Signature: sorted key+value pairs + secret, MD5."""
    params = await read_notification_params(request)
    logger.info(
        "payment_notification_received",
        channel="hosted",
        message_type=params.get("message_type"),
        order_id=params.get("merchant_order_id"),
    )
    result = await reconcile_payment_notification(db, params, HostedCheckoutChannel())
    await _schedule_ticket_email(result, db, background_tasks, session_factory)
    return NotificationResponse(status=result.outcome, order_id=result.order_id)


@router.post("/ipn")
async def ipn_notification(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    IPN notification. Answers with the signed ``<sig>`` acknowledgement,
    also for unknown orders so the provider stops redelivering.
    """
    params = await read_notification_params(request)
    logger.info(
        "payment_notification_received",
        channel="ipn",
        order_status=params.get("ORDERSTATUS"),
        order_id=params.get("REFNOEXT"),
    )
    channel = IpnChannel()
    result = await reconcile_payment_notification(db, params, channel)
    await _schedule_ticket_email(result, db, background_tasks, session_factory)
    return Response(content=channel.acknowledge(params), media_type="text/xml")
