"""
Tests for the expiry sweeper and its cron endpoint.
"""

import asyncio
from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from boxoffice.core.config import get_settings
from boxoffice.db.base import utcnow
from boxoffice.models.order import LockStatus, Order, OrderStatus, SeatLock
from boxoffice.services.inventory_service import try_hold_seats
from boxoffice.services.sweeper import run_sweep, sweeper_loop
from conftest import make_order


async def _expired_hold(session_factory, event_id, seats):
    async with session_factory() as db:
        hold = await try_hold_seats(
            db, event_id, seats, make_order(event_id), now=utcnow() - timedelta(minutes=15)
        )
        await db.commit()
    return hold


@pytest.mark.asyncio
async def test_run_sweep_releases_expired_holds(session_factory, test_event):
    expired = await _expired_hold(session_factory, test_event.id, ["Q-1", "Q-2"])
    async with session_factory() as db:
        live = await try_hold_seats(db, test_event.id, ["Q-3"], make_order(test_event.id))
        await db.commit()

    result = await run_sweep(session_factory)

    assert result.released_locks == 2
    assert result.expired_orders == 1
    async with session_factory() as db:
        expired_order = await db.get(Order, expired.order_id)
        live_order = await db.get(Order, live.order_id)
        locks = (await db.execute(select(SeatLock).where(SeatLock.order_id == live.order_id))).scalars().all()
    assert expired_order.status == OrderStatus.EXPIRED.value
    assert live_order.status == OrderStatus.PENDING.value
    assert [lock.status for lock in locks] == [LockStatus.HELD.value]


@pytest.mark.asyncio
async def test_overlapping_sweeps_are_safe(session_factory, test_event):
    await _expired_hold(session_factory, test_event.id, ["R-1"])

    results = await asyncio.gather(run_sweep(session_factory), run_sweep(session_factory))

    assert sum(r.released_locks for r in results) == 1
    assert sum(r.expired_orders for r in results) == 1


@pytest.mark.asyncio
async def test_sweeper_loop_runs_until_cancelled(session_factory, test_event):
    await _expired_hold(session_factory, test_event.id, ["R-2"])

    task = asyncio.create_task(sweeper_loop(session_factory, interval_seconds=0.01))
    for _ in range(100):
        async with session_factory() as db:
            result = await db.execute(select(Order.status))
            if result.scalar_one() == OrderStatus.EXPIRED.value:
                break
        await asyncio.sleep(0.01)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    async with session_factory() as db:
        assert (await db.execute(select(Order.status))).scalar_one() == OrderStatus.EXPIRED.value


@pytest.mark.asyncio
async def test_sweep_endpoint(client: AsyncClient, session_factory, test_event):
    await _expired_hold(session_factory, test_event.id, ["M-5"])

    response = await client.post("/api/v1/maintenance/sweep")

    assert response.status_code == 200
    assert response.json() == {"released_locks": 1, "expired_orders": 1}

    again = await client.get("/api/v1/maintenance/sweep")
    assert again.json() == {"released_locks": 0, "expired_orders": 0}


@pytest.mark.asyncio
async def test_sweep_endpoint_requires_cron_secret(client: AsyncClient, test_event, monkeypatch):
    monkeypatch.setattr(get_settings(), "CRON_SECRET", "cron-secret")

    missing = await client.post("/api/v1/maintenance/sweep")
    assert missing.status_code == 403

    wrong = await client.post(
        "/api/v1/maintenance/sweep",
        headers={"Authorization": "Bearer nope"},
    )
    assert wrong.status_code == 403

    ok = await client.post(
        "/api/v1/maintenance/sweep",
        headers={"Authorization": "Bearer cron-secret"},
    )
    assert ok.status_code == 200


@pytest.mark.asyncio
async def test_expired_seats_can_be_bought_again(client: AsyncClient, session_factory, test_event):
    await _expired_hold(session_factory, test_event.id, ["N-9"])

    response = await client.post(
        "/api/v1/orders",
        json={"event_id": test_event.id, "seat_ids": ["N-9"], "email": "b@example.com", "full_name": "B"},
    )
    assert response.status_code == 201


class _UnreachableDatabase:
    """Session factory whose sessions fail to connect, like a database that is down."""

    def __init__(self):
        self.attempts = 0

    def __call__(self):
        return self

    async def __aenter__(self):
        self.attempts += 1
        raise ConnectionRefusedError(111, "Connect call failed")

    async def __aexit__(self, *exc):
        return False


@pytest.mark.asyncio
async def test_sweeper_loop_survives_connection_errors():
    factory = _UnreachableDatabase()

    task = asyncio.create_task(sweeper_loop(factory, interval_seconds=0.01))
    for _ in range(100):
        if factory.attempts >= 3:
            break
        await asyncio.sleep(0.01)

    assert factory.attempts >= 3
    assert not task.done()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
