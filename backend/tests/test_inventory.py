"""
Tests for seat holds, sales and expiry, including concurrent holds.
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from boxoffice.core.exceptions import ConflictError, NotFoundError, SeatsTakenError
from boxoffice.db.base import utcnow
from boxoffice.models.order import LockStatus, Order, OrderStatus, SeatLock
from boxoffice.services import inventory_service
from boxoffice.services.inventory_service import (
    active_locks_for_event,
    close_order,
    promote_to_sold,
    release_expired,
    try_hold_seats,
)
from conftest import count_locks, make_order


async def _hold(session_factory, event_id, seats, now=None):
    async with session_factory() as db:
        hold = await try_hold_seats(db, event_id, seats, make_order(event_id), now=now)
        await db.commit()
        return hold


async def _order_status(session_factory, order_id):
    async with session_factory() as db:
        order = await db.get(Order, order_id)
        return order.status


@pytest.mark.asyncio
async def test_hold_creates_locks(session_factory, test_event):
    hold = await _hold(session_factory, test_event.id, ["A-1", "A-2"])

    assert len(hold.lock_ids) == 2
    async with session_factory() as db:
        assert await count_locks(db, test_event.id, LockStatus.HELD) == 2
        active = await active_locks_for_event(db, test_event.id)
    assert active == {"A-1": LockStatus.HELD, "A-2": LockStatus.HELD}


@pytest.mark.asyncio
async def test_overlapping_hold_is_all_or_nothing(session_factory, test_event):
    await _hold(session_factory, test_event.id, ["A-1", "A-2"])

    with pytest.raises(SeatsTakenError) as exc_info:
        await _hold(session_factory, test_event.id, ["A-2", "A-3"])

    assert exc_info.value.seat_ids == ["A-2"]
    async with session_factory() as db:
        # A-3 was not held on its own
        assert await count_locks(db, test_event.id) == 2
        active = await active_locks_for_event(db, test_event.id)
        orders = (await db.execute(select(Order))).scalars().all()
    assert "A-3" not in active
    assert len(orders) == 1


@pytest.mark.asyncio
async def test_insert_conflict_reports_only_taken_seats(session_factory, test_event, monkeypatch):
    """When the unique index catches the race, free seats are not reported as taken."""
    await _hold(session_factory, test_event.id, ["A-1", "A-2"])

    real_taken_seats = inventory_service._taken_seats
    calls = []

    async def miss_first_read(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            return []
        return await real_taken_seats(*args, **kwargs)

    monkeypatch.setattr(inventory_service, "_taken_seats", miss_first_read)

    with pytest.raises(SeatsTakenError) as exc_info:
        await _hold(session_factory, test_event.id, ["A-2", "A-3"])

    assert len(calls) == 2
    assert exc_info.value.seat_ids == ["A-2"]
    assert exc_info.value.details == {"unavailable_seats": ["A-2"]}
    async with session_factory() as db:
        active = await active_locks_for_event(db, test_event.id)
    assert "A-3" not in active


@pytest.mark.asyncio
async def test_concurrent_holds_on_same_seat(session_factory, test_event):
    """Many buyers race for one seat: exactly one wins."""
    results = await asyncio.gather(
        *[_hold(session_factory, test_event.id, ["C-4"]) for _ in range(5)],
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, SeatsTakenError)]
    assert len(winners) == 1
    assert len(losers) == 4

    async with session_factory() as db:
        assert await count_locks(db, test_event.id, LockStatus.HELD) == 1


@pytest.mark.asyncio
async def test_disjoint_holds_do_not_conflict(session_factory, test_event):
    results = await asyncio.gather(
        _hold(session_factory, test_event.id, ["B-1", "B-2"]),
        _hold(session_factory, test_event.id, ["B-3"]),
    )
    assert len(results) == 2
    async with session_factory() as db:
        assert await count_locks(db, test_event.id, LockStatus.HELD) == 3


@pytest.mark.asyncio
async def test_hold_expires_after_ten_minutes(session_factory, test_event):
    t0 = utcnow()
    first = await _hold(session_factory, test_event.id, ["D-5"], now=t0)
    assert first.expires_at == t0 + timedelta(minutes=10)

    # Still held just before expiry
    with pytest.raises(SeatsTakenError):
        await _hold(session_factory, test_event.id, ["D-5"], now=t0 + timedelta(minutes=9, seconds=59))

    # Free again just after
    second = await _hold(session_factory, test_event.id, ["D-5"], now=t0 + timedelta(minutes=10, seconds=1))
    assert second.order_id != first.order_id

    async with session_factory() as db:
        result = await db.execute(select(SeatLock).where(SeatLock.order_id == first.order_id))
        old_lock = result.scalar_one()
    assert old_lock.status == LockStatus.RELEASED.value


@pytest.mark.asyncio
async def test_release_expired_expires_orders(session_factory, test_event):
    t0 = utcnow()
    hold = await _hold(session_factory, test_event.id, ["E-1", "E-2"], now=t0)

    async with session_factory() as db:
        early = await release_expired(db, now=t0 + timedelta(minutes=5))
        await db.commit()
    assert early.released_locks == 0
    assert early.expired_orders == 0

    async with session_factory() as db:
        result = await release_expired(db, now=t0 + timedelta(minutes=11))
        await db.commit()
    assert result.released_locks == 2
    assert result.expired_orders == 1
    assert await _order_status(session_factory, hold.order_id) == OrderStatus.EXPIRED.value

    # Idempotent
    async with session_factory() as db:
        again = await release_expired(db, now=t0 + timedelta(minutes=12))
        await db.commit()
    assert again.released_locks == 0
    assert again.expired_orders == 0


@pytest.mark.asyncio
async def test_sweeper_never_touches_sold_locks(session_factory, test_event):
    t0 = utcnow()
    hold = await _hold(session_factory, test_event.id, ["F-1"], now=t0)
    async with session_factory() as db:
        await promote_to_sold(db, hold.order_id, "SALE-1", now=t0 + timedelta(minutes=1))
        await db.commit()

    async with session_factory() as db:
        result = await release_expired(db, now=t0 + timedelta(days=1))
        await db.commit()
        assert await count_locks(db, test_event.id, LockStatus.SOLD) == 1
    assert result.released_locks == 0
    assert await _order_status(session_factory, hold.order_id) == OrderStatus.PAID.value


@pytest.mark.asyncio
async def test_release_expired_keeps_orders_with_a_live_hold(session_factory, test_event):
    t0 = utcnow()
    hold = await _hold(session_factory, test_event.id, ["E-3"], now=t0)
    async with session_factory() as db:
        # Second seat held later for the same order
        db.add(SeatLock(
            event_id=test_event.id,
            seat_id="E-4",
            status=LockStatus.HELD.value,
            expires_at=t0 + timedelta(minutes=20),
            order_id=hold.order_id,
        ))
        await db.commit()

    async with session_factory() as db:
        result = await release_expired(db, now=t0 + timedelta(minutes=11))
        await db.commit()

    assert result.released_locks == 1
    assert result.expired_orders == 0
    assert await _order_status(session_factory, hold.order_id) == OrderStatus.PENDING.value


@pytest.mark.asyncio
async def test_sweep_racing_payment_leaves_consistent_order(session_factory, test_event):
    """A sweep and a payment on the same expired hold: one wins, nothing is half-applied."""
    t0 = utcnow() - timedelta(minutes=11)
    hold = await _hold(session_factory, test_event.id, ["F-5", "F-6"], now=t0)

    async def sweep():
        async with session_factory() as db:
            result = await release_expired(db)
            await db.commit()
            return result

    async def pay():
        async with session_factory() as db:
            try:
                await promote_to_sold(db, hold.order_id, "SALE-RACE")
                await db.commit()
            except ConflictError:
                await db.rollback()

    await asyncio.gather(sweep(), pay())

    async with session_factory() as db:
        order = await db.get(Order, hold.order_id)
        result = await db.execute(select(SeatLock.status).where(SeatLock.order_id == hold.order_id))
        lock_statuses = set(result.scalars().all())

    if order.status == OrderStatus.PAID.value:
        assert lock_statuses == {LockStatus.SOLD.value}
    else:
        assert order.status == OrderStatus.EXPIRED.value
        assert lock_statuses == {LockStatus.RELEASED.value}


@pytest.mark.asyncio
async def test_promote_to_sold(session_factory, test_event):
    hold = await _hold(session_factory, test_event.id, ["G-1", "G-2"])

    async with session_factory() as db:
        order = await promote_to_sold(db, hold.order_id, "SALE-42")
        await db.commit()

    assert order.status == OrderStatus.PAID.value
    assert order.payment_ref == "SALE-42"
    assert order.paid_at is not None
    assert {lock.status for lock in order.locks} == {LockStatus.SOLD.value}


@pytest.mark.asyncio
async def test_promote_is_idempotent(session_factory, test_event):
    hold = await _hold(session_factory, test_event.id, ["G-3"])

    async with session_factory() as db:
        first = await promote_to_sold(db, hold.order_id, "SALE-1")
        await db.commit()
        paid_at = first.paid_at

    async with session_factory() as db:
        second = await promote_to_sold(db, hold.order_id, "SALE-2")
        await db.commit()

    assert second.status == OrderStatus.PAID.value
    assert second.payment_ref == "SALE-1"
    assert second.paid_at == paid_at
    async with session_factory() as db:
        assert await count_locks(db, test_event.id, LockStatus.SOLD) == 1


@pytest.mark.asyncio
async def test_promote_after_resale_conflicts(session_factory, test_event):
    """A late payment for an expired hold must not overwrite the new buyer."""
    t0 = utcnow()
    stale = await _hold(session_factory, test_event.id, ["H-1"], now=t0)
    fresh = await _hold(session_factory, test_event.id, ["H-1"], now=t0 + timedelta(minutes=11))

    async with session_factory() as db:
        with pytest.raises(ConflictError) as exc_info:
            await promote_to_sold(db, stale.order_id, "LATE", now=t0 + timedelta(minutes=12))
        await db.rollback()
    assert exc_info.value.code == "HOLD_LOST"

    assert await _order_status(session_factory, stale.order_id) == OrderStatus.PENDING.value
    async with session_factory() as db:
        active = await active_locks_for_event(db, test_event.id, now=t0 + timedelta(minutes=12))
        result = await db.execute(select(SeatLock).where(SeatLock.order_id == fresh.order_id))
        fresh_lock = result.scalar_one()
    assert active == {"H-1": LockStatus.HELD}
    assert fresh_lock.status == LockStatus.HELD.value


@pytest.mark.asyncio
async def test_promote_closed_order_conflicts(session_factory, test_event):
    hold = await _hold(session_factory, test_event.id, ["J-1"])
    async with session_factory() as db:
        await close_order(db, hold.order_id, OrderStatus.FAILED)
        await db.commit()

    async with session_factory() as db:
        with pytest.raises(ConflictError) as exc_info:
            await promote_to_sold(db, hold.order_id)
    assert exc_info.value.code == "ORDER_NOT_PAYABLE"


@pytest.mark.asyncio
async def test_promote_unknown_order(session_factory, test_event):
    async with session_factory() as db:
        with pytest.raises(NotFoundError):
            await promote_to_sold(db, 999999)


@pytest.mark.asyncio
async def test_close_order_releases_held_seats(session_factory, test_event):
    hold = await _hold(session_factory, test_event.id, ["K-1", "K-2"])

    async with session_factory() as db:
        order = await close_order(db, hold.order_id, OrderStatus.FAILED)
        await db.commit()
    assert order.status == OrderStatus.FAILED.value
    assert {lock.status for lock in order.locks} == {LockStatus.RELEASED.value}

    # Seats can be held again right away
    again = await _hold(session_factory, test_event.id, ["K-1", "K-2"])
    assert again.order_id != hold.order_id


@pytest.mark.asyncio
async def test_close_order_ignores_disallowed_transitions(session_factory, test_event):
    hold = await _hold(session_factory, test_event.id, ["L-1"])
    async with session_factory() as db:
        await promote_to_sold(db, hold.order_id)
        await db.commit()

    async with session_factory() as db:
        order = await close_order(db, hold.order_id, OrderStatus.EXPIRED)
        await db.commit()
    assert order.status == OrderStatus.PAID.value
    assert {lock.status for lock in order.locks} == {LockStatus.SOLD.value}


@pytest.mark.asyncio
async def test_refund_keeps_sold_locks(session_factory, test_event):
    hold = await _hold(session_factory, test_event.id, ["L-2"])
    async with session_factory() as db:
        await promote_to_sold(db, hold.order_id)
        await db.commit()

    async with session_factory() as db:
        order = await close_order(db, hold.order_id, OrderStatus.REFUNDED)
        await db.commit()
    assert order.status == OrderStatus.REFUNDED.value
    assert {lock.status for lock in order.locks} == {LockStatus.SOLD.value}


@pytest.mark.asyncio
async def test_close_order_rejects_non_closing_status(session_factory, test_event):
    hold = await _hold(session_factory, test_event.id, ["M-1"])
    async with session_factory() as db:
        with pytest.raises(ValueError):
            await close_order(db, hold.order_id, OrderStatus.PAID)


@pytest.mark.asyncio
async def test_unique_index_rejects_second_live_lock(session_factory, test_event):
    """The database itself refuses two live locks on one seat."""
    hold = await _hold(session_factory, test_event.id, ["N-1"])

    async with session_factory() as db:
        order = make_order(test_event.id)
        db.add(order)
        db.add(SeatLock(
            event_id=test_event.id,
            seat_id="N-1",
            status=LockStatus.HELD.value,
            expires_at=hold.expires_at,
            order=order,
        ))
        with pytest.raises(IntegrityError):
            await db.flush()
        await db.rollback()


@pytest.mark.asyncio
async def test_released_lock_outside_unique_index(session_factory, test_event):
    hold = await _hold(session_factory, test_event.id, ["N-2"])
    async with session_factory() as db:
        await close_order(db, hold.order_id, OrderStatus.FAILED)
        await db.commit()

    # Several RELEASED rows for one seat are fine
    for _ in range(2):
        again = await _hold(session_factory, test_event.id, ["N-2"])
        async with session_factory() as db:
            await close_order(db, again.order_id, OrderStatus.FAILED)
            await db.commit()

    async with session_factory() as db:
        assert await count_locks(db, test_event.id, LockStatus.RELEASED) == 3
