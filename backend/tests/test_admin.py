"""
Tests for the admin console: login, event creation and pricing rules.
"""

from datetime import datetime, timezone, timedelta

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient):
    """Configured credentials return a JWT token."""
    response = await client.post("/api/v1/admin/login", json={
        "email": "admin@teatri.al",
        "password": "admin-password",
    })
    assert response.status_code == 200
    data = response.json()
    assert "access_token" in data
    assert data["token_type"] == "bearer"


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient):
    """Wrong password returns 401."""
    response = await client.post("/api/v1/admin/login", json={
        "email": "admin@teatri.al",
        "password": "wrongpassword",
    })
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_login_unknown_email(client: AsyncClient):
    response = await client.post("/api/v1/admin/login", json={
        "email": "someone@example.com",
        "password": "admin-password",
    })
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_from_login_is_accepted(client: AsyncClient, test_event):
    login = await client.post("/api/v1/admin/login", json={
        "email": "admin@teatri.al",
        "password": "admin-password",
    })
    headers = {"Authorization": f"Bearer {login.json()['access_token']}"}

    response = await client.get(f"/api/v1/admin/events/{test_event.id}/rules", headers=headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_create_event(client: AsyncClient, admin_headers):
    start = datetime.now(timezone.utc) + timedelta(days=60)
    response = await client.post(
        "/api/v1/admin/events",
        json={
            "title": "Tosca",
            "description": "Opera in three acts",
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(hours=3)).isoformat(),
            "location": "Main Hall",
        },
        headers=admin_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Tosca"
    assert data["price_areas"] == []

    listing = await client.get("/api/v1/events")
    assert "Tosca" in [e["title"] for e in listing.json()["events"]]


@pytest.mark.asyncio
async def test_create_event_unauthenticated(client: AsyncClient):
    """Unauthenticated request returns 401."""
    start = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()
    response = await client.post("/api/v1/admin/events", json={"title": "Nope", "start_date": start})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_event_with_bad_token(client: AsyncClient):
    start = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()
    response = await client.post(
        "/api/v1/admin/events",
        json={"title": "Nope", "start_date": start},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_event_end_before_start(client: AsyncClient, admin_headers):
    start = datetime.now(timezone.utc) + timedelta(days=30)
    response = await client.post(
        "/api/v1/admin/events",
        json={
            "title": "Backwards",
            "start_date": start.isoformat(),
            "end_date": (start - timedelta(hours=1)).isoformat(),
        },
        headers=admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_rules_in_priority_order(client: AsyncClient, admin_headers, test_event):
    await client.post(
        f"/api/v1/admin/events/{test_event.id}/rules",
        json={"name": "Global", "price": 200},
        headers=admin_headers,
    )

    response = await client.get(f"/api/v1/admin/events/{test_event.id}/rules", headers=admin_headers)
    assert response.status_code == 200
    assert [rule["name"] for rule in response.json()] == ["Front", "Back", "Global"]


@pytest.mark.asyncio
async def test_global_rule_prices_remaining_seats(client: AsyncClient, admin_headers, test_event):
    response = await client.post(
        f"/api/v1/admin/events/{test_event.id}/rules",
        json={"name": "Gallery", "price": 200, "priority": 0},
        headers=admin_headers,
    )
    assert response.status_code == 201
    assert response.json()["selectors"] == {}

    seat_map = await client.get(f"/api/v1/events/{test_event.id}/seats")
    seats = {seat["id"]: seat for seat in seat_map.json()["seats"]}
    assert seats["Z-1"]["price"] == 200
    assert seats["C-4"]["price"] == 1000


@pytest.mark.asyncio
async def test_create_rule_validation(client: AsyncClient, admin_headers, test_event):
    # FOR_SALE needs a price
    no_price = await client.post(
        f"/api/v1/admin/events/{test_event.id}/rules",
        json={"name": "Free?", "rows": ["A"]},
        headers=admin_headers,
    )
    assert no_price.status_code == 422

    unknown_seat = await client.post(
        f"/api/v1/admin/events/{test_event.id}/rules",
        json={"name": "Typo", "price": 100, "seats": ["A-999"]},
        headers=admin_headers,
    )
    assert unknown_seat.status_code == 400
    assert unknown_seat.json()["error"]["details"] == {"field": "seats"}

    unknown_event = await client.post(
        "/api/v1/admin/events/99999/rules",
        json={"name": "Ghost", "price": 100},
        headers=admin_headers,
    )
    assert unknown_event.status_code == 404


@pytest.mark.asyncio
async def test_delete_rule(client: AsyncClient, admin_headers, test_event):
    created = await client.post(
        f"/api/v1/admin/events/{test_event.id}/rules",
        json={"name": "Promo", "price": 1, "priority": 99, "seat_numbers": [1]},
        headers=admin_headers,
    )
    rule_id = created.json()["id"]

    seat_map = await client.get(f"/api/v1/events/{test_event.id}/seats")
    assert {s["id"]: s for s in seat_map.json()["seats"]}["A-1"]["price"] == 1

    response = await client.delete(
        f"/api/v1/admin/events/{test_event.id}/rules/{rule_id}",
        headers=admin_headers,
    )
    assert response.status_code == 204

    seat_map = await client.get(f"/api/v1/events/{test_event.id}/seats")
    assert {s["id"]: s for s in seat_map.json()["seats"]}["A-1"]["price"] == 1000

    again = await client.delete(
        f"/api/v1/admin/events/{test_event.id}/rules/{rule_id}",
        headers=admin_headers,
    )
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_rules_require_admin(client: AsyncClient, test_event):
    response = await client.get(f"/api/v1/admin/events/{test_event.id}/rules")
    assert response.status_code == 401
