"""
Seat inventory: holds, sales and their expiry.

CONCURRENCY STRATEGY: Conditional writes + partial unique index
================================================================

Problem:
  Two buyers select the same seat at the same moment. Both read "free", both
  insert a lock, both get redirected to payment. Result: a double sale.

Solution:
  Seat state lives in seat_locks, and the database enforces that at most one
  lock per (event, seat) is HELD or SOLD (partial unique index
  uq_seat_locks_active_seat).

  1. Advisory read of live locks for the requested seats. Lets the common
     conflict fail fast with a list of taken seats, but decides nothing.
  2. UPDATE seat_locks SET status = 'RELEASED'
     WHERE seat_id IN (...) AND status = 'HELD' AND expires_at < :now
     Expired holds on exactly these seats stop counting before we insert.
  3. INSERT the order and one HELD lock per seat, then flush.
     If a racing transaction got there first the unique index rejects the
     insert; we roll back the whole unit and re-read which seats are live.
     Either every seat is held or none is.

  Every other transition is a conditional UPDATE whose WHERE clause names
  the expected current state, so concurrent or repeated calls converge
  (rowcount 0 means someone already did it).

Alternative approaches considered:
  - SELECT FOR UPDATE on seat rows: needs a seats table per event and does
    not exist on SQLite.
  - Redis locks: a second source of truth that can disagree with the DB.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy import and_, exists, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import ConflictError, NotFoundError, SeatsTakenError
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import hold_latency, record_hold_attempt
from boxoffice.db.base import utcnow
from boxoffice.models.order import LockStatus, Order, OrderStatus, SeatLock

logger = get_logger(__name__)


@dataclass(frozen=True)
class SeatHold:
    order_id: int
    lock_ids: List[int]
    expires_at: datetime


@dataclass(frozen=True)
class SweepResult:
    released_locks: int = 0
    expired_orders: int = 0


def _live_lock_clause(now: datetime):
    """SOLD, or HELD and not yet expired."""
    return or_(
        SeatLock.status == LockStatus.SOLD.value,
        and_(SeatLock.status == LockStatus.HELD.value, SeatLock.expires_at >= now),
    )


async def active_locks_for_event(
    db: AsyncSession,
    event_id: int,
    now: Optional[datetime] = None,
) -> Dict[str, LockStatus]:
    """Seat token -> live lock status, for the seat map overlay."""
    now = now or utcnow()
    result = await db.execute(
        select(SeatLock.seat_id, SeatLock.status).where(
            SeatLock.event_id == event_id,
            _live_lock_clause(now),
        )
    )
    return {seat_id: LockStatus(lock_status) for seat_id, lock_status in result.all()}


async def _taken_seats(
    db: AsyncSession,
    event_id: int,
    seat_ids: List[str],
    now: datetime,
) -> List[str]:
    result = await db.execute(
        select(SeatLock.seat_id).where(
            SeatLock.event_id == event_id,
            SeatLock.seat_id.in_(seat_ids),
            _live_lock_clause(now),
        )
    )
    return sorted(set(result.scalars().all()))


async def try_hold_seats(
    db: AsyncSession,
    event_id: int,
    seat_ids: Iterable[str],
    order: Order,
    hold_duration: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> SeatHold:
    """
    Persist ``order`` and hold every seat in ``seat_ids`` for it.
    Raises SeatsTakenError if any seat is held or sold; nothing is written then.
    """
    seat_ids = sorted(set(seat_ids))
    now = now or utcnow()
    hold_duration = hold_duration or timedelta(minutes=get_settings().HOLD_DURATION_MINUTES)
    expires_at = now + hold_duration
    started = time.perf_counter()

    # Step 1: advisory read
    taken = await _taken_seats(db, event_id, seat_ids, now)
    if taken:
        logger.info("seats_taken", event_id=event_id, seats=taken, stage="precheck")
        record_hold_attempt("conflict")
        raise SeatsTakenError(taken)

    # Step 2: reclaim expired holds on exactly these seats
    released = await db.execute(
        update(SeatLock)
        .where(
            SeatLock.event_id == event_id,
            SeatLock.seat_id.in_(seat_ids),
            SeatLock.status == LockStatus.HELD.value,
            SeatLock.expires_at < now,
        )
        .values(status=LockStatus.RELEASED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if released.rowcount:
        logger.info("expired_holds_reclaimed", event_id=event_id, count=released.rowcount)

    # Step 3: insert order and locks; the unique index arbitrates races
    order.event_id = event_id
    order.status = OrderStatus.PENDING.value
    locks = [
        SeatLock(
            event_id=event_id,
            seat_id=seat_id,
            status=LockStatus.HELD.value,
            expires_at=expires_at,
            order=order,
        )
        for seat_id in seat_ids
    ]
    db.add(order)
    db.add_all(locks)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        # The winner has committed by now; report only the seats it took
        taken = await _taken_seats(db, event_id, seat_ids, now)
        logger.info("seats_taken", event_id=event_id, seats=taken, stage="insert")
        record_hold_attempt("conflict")
        raise SeatsTakenError(taken)

    hold_latency.observe(time.perf_counter() - started)
    record_hold_attempt("success", len(seat_ids))
    logger.info(
        "seats_held",
        event_id=event_id,
        order_id=order.id,
        seats=seat_ids,
        expires_at=expires_at.isoformat(),
    )
    return SeatHold(order_id=order.id, lock_ids=[lock.id for lock in locks], expires_at=expires_at)


async def _load_order(db: AsyncSession, order_id: int) -> Optional[Order]:
    result = await db.execute(
        select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def promote_to_sold(
    db: AsyncSession,
    order_id: int,
    payment_ref: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    """
    PENDING -> PAID on the order and HELD -> SOLD on its locks.

    Already PAID is a no-op. Raises ConflictError when the order is closed or
    one of its holds was released and resold; the caller must roll back.
    """
    now = now or utcnow()
    values = {"status": OrderStatus.PAID.value, "paid_at": now, "updated_at": now}
    if payment_ref:
        values["payment_ref"] = payment_ref

    result = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == OrderStatus.PENDING.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        order = await _load_order(db, order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        if order.status == OrderStatus.PAID.value:
            logger.info("order_already_paid", order_id=order_id)
            return order
        logger.warning("order_not_payable", order_id=order_id, status=order.status)
        raise ConflictError(
            f"Order {order_id} is {order.status} and cannot be paid",
            code="ORDER_NOT_PAYABLE",
            details={"status": order.status},
        )

    await db.execute(
        update(SeatLock)
        .where(SeatLock.order_id == order_id, SeatLock.status == LockStatus.HELD.value)
        .values(status=LockStatus.SOLD.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    lost = await db.execute(
        select(SeatLock.seat_id).where(
            SeatLock.order_id == order_id,
            SeatLock.status == LockStatus.RELEASED.value,
        )
    )
    lost_seats = sorted(lost.scalars().all())
    if lost_seats:
        logger.error("paid_order_lost_hold", order_id=order_id, seats=lost_seats)
        raise ConflictError(
            f"Order {order_id} lost its hold on some seats",
            code="HOLD_LOST",
            details={"seats": lost_seats},
        )

    order = await _load_order(db, order_id)
    logger.info("order_paid", order_id=order_id, payment_ref=payment_ref)
    return order


# Allowed source states per closing status
_CLOSE_TRANSITIONS = {
    OrderStatus.FAILED: (OrderStatus.PENDING,),
    OrderStatus.EXPIRED: (OrderStatus.PENDING,),
    OrderStatus.REFUNDED: (OrderStatus.PENDING, OrderStatus.PAID),
}


async def close_order(
    db: AsyncSession,
    order_id: int,
    status: OrderStatus,
    now: Optional[datetime] = None,
) -> Order:
    """
    Move an order to FAILED, EXPIRED or REFUNDED and release its HELD locks.
    SOLD locks are terminal and stay. Disallowed or repeated transitions are
    logged and leave the order untouched.
    """
    status = OrderStatus(status)
    if status not in _CLOSE_TRANSITIONS:
        raise ValueError(f"{status.value} is not a closing status")
    now = now or utcnow()
    sources = [s.value for s in _CLOSE_TRANSITIONS[status]]

    result = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status.in_(sources))
        .values(status=status.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        order = await _load_order(db, order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        if order.status == status.value:
            logger.debug("order_already_closed", order_id=order_id, status=status.value)
        else:
            logger.warning(
                "order_transition_ignored",
                order_id=order_id,
                current=order.status,
                requested=status.value,
            )
        return order

    released = await db.execute(
        update(SeatLock)
        .where(SeatLock.order_id == order_id, SeatLock.status == LockStatus.HELD.value)
        .values(status=LockStatus.RELEASED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    logger.info(
        "order_closed",
        order_id=order_id,
        status=status.value,
        locks_released=released.rowcount,
    )
    return await _load_order(db, order_id)


async def release_expired(db: AsyncSession, now: Optional[datetime] = None) -> SweepResult:
    """
    Expire PENDING orders with no live lock left, then release every expired
    hold. Safe to run concurrently and repeatedly.

    Order rows are written before lock rows, matching promote_to_sold and
    close_order.
    """
    now = now or utcnow()

    has_locks = exists().where(SeatLock.order_id == Order.id)
    has_live = exists().where(SeatLock.order_id == Order.id, _live_lock_clause(now))
    orders = await db.execute(
        update(Order)
        .where(Order.status == OrderStatus.PENDING.value, has_locks, ~has_live)
        .values(status=OrderStatus.EXPIRED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    locks = await db.execute(
        update(SeatLock)
        .where(SeatLock.status == LockStatus.HELD.value, SeatLock.expires_at < now)
        .values(status=LockStatus.RELEASED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    return SweepResult(released_locks=locks.rowcount or 0, expired_orders=orders.rowcount or 0)
