"""
Reconciliation of asynchronous payment notifications.

Notifications are delivered at least once and in any order relative to the
buyer's redirect. Handling is therefore:

  1. Verify the signature. A bad signature is rejected before anything is read
     or written.
  2. Map the provider status to an OrderStatus.
  3. Apply the transition through the inventory's conditional updates, which
     turn repeats into no-ops.
  4. Record the provider status and the verified payload on the order.
"""

from dataclasses import dataclass
from typing import Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.exceptions import AuthorizationError, ConflictError, ValidationError
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_payment_notification
from boxoffice.models.order import Order, OrderStatus
from boxoffice.services.interfaces import PaymentNotificationChannel
from boxoffice.services.inventory_service import close_order, promote_to_sold

logger = get_logger(__name__)

PROCESSED = "processed"
ALREADY_PROCESSED = "already_processed"
IGNORED = "ignored"


@dataclass(frozen=True)
class NotificationResult:
    order_id: Optional[str]
    outcome: str
    status: Optional[str] = None
    newly_paid: bool = False


async def _find_order(db: AsyncSession, raw_order_id: str) -> Optional[Order]:
    try:
        order_id = int(raw_order_id)
    except ValueError:
        return None
    result = await db.execute(
        select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _record_provider_state(
    db: AsyncSession,
    order: Order,
    params: Mapping[str, str],
    channel: PaymentNotificationChannel,
) -> None:
    order.payment_status = channel.provider_status(params)
    order.ipn_payload = dict(params)
    if not order.payment_ref:
        order.payment_ref = channel.payment_ref(params)
    await db.flush()


async def reconcile_payment_notification(
    db: AsyncSession,
    params: Mapping[str, str],
    channel: PaymentNotificationChannel,
) -> NotificationResult:
    if not channel.verify(params):
        logger.warning(
            "payment_notification_rejected",
            channel=channel.name,
            order_id=channel.order_id(params),
        )
        record_payment_notification(channel.name, "rejected")
        raise AuthorizationError()

    raw_order_id = channel.order_id(params)
    if not raw_order_id:
        record_payment_notification(channel.name, "rejected")
        raise ValidationError("Notification carries no order id", field="order_id")

    order = await _find_order(db, raw_order_id)
    if order is None:
        logger.error("payment_notification_unknown_order", channel=channel.name, order_id=raw_order_id)
        record_payment_notification(channel.name, IGNORED)
        return NotificationResult(order_id=raw_order_id, outcome=IGNORED)

    order_pk = order.id
    target = channel.map_status(params)
    previous = order.status
    outcome = IGNORED
    newly_paid = False

    if target is None:
        logger.info(
            "payment_notification_no_transition",
            order_id=order.id,
            provider_status=channel.provider_status(params),
        )
    elif previous == target.value:
        outcome = ALREADY_PROCESSED
    elif target == OrderStatus.PAID:
        try:
            order = await promote_to_sold(db, order_pk, channel.payment_ref(params))
        except ConflictError as e:
            # Nothing of the promotion may survive; keep the payload for support.
            await db.rollback()
            logger.error(
                "payment_not_applied",
                order_id=order_pk,
                status=previous,
                reason=e.code,
            )
            order = await _find_order(db, raw_order_id)
        else:
            outcome = PROCESSED
            newly_paid = True
    else:
        order = await close_order(db, order_pk, target)
        if order.status == target.value:
            outcome = PROCESSED

    await _record_provider_state(db, order, params, channel)

    record_payment_notification(channel.name, outcome)
    logger.info(
        "payment_notification_handled",
        channel=channel.name,
        order_id=order.id,
        outcome=outcome,
        previous=previous,
        status=order.status,
    )
    return NotificationResult(
        order_id=str(order.id),
        outcome=outcome,
        status=order.status,
        newly_paid=newly_paid,
    )
