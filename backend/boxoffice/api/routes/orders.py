"""
Checkout and buyer self-service endpoints.
Every order read requires the order's public token in the ``t`` query parameter.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import PlainTextResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.db.session import get_db
from boxoffice.schemas.order import OrderCreate, OrderCreatedResponse, OrderDetailResponse, EmailResendResponse
from boxoffice.services.order_service import (
    create_order,
    get_order_for_buyer,
    order_detail,
    require_paid,
    resend_ticket_email,
)
from boxoffice.services.ticket_documents import calendar_filename, render_calendar, render_tickets

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", response_model=OrderCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_order_endpoint(order_data: OrderCreate, db: AsyncSession = Depends(get_db)):
    """
    Price the selected seats, hold them for HOLD_DURATION_MINUTES and return
    the payment redirect. 409 SEATS_TAKEN if any seat is held or sold.
    """
    checkout = await create_order(db, order_data)
    return OrderCreatedResponse(
        order_id=checkout.order.id,
        public_token=checkout.order.public_token,
        redirect_url=checkout.redirect_url,
        expires_at=checkout.expires_at,
        total_amount=checkout.order.total_amount,
        currency=checkout.order.currency,
    )


@router.get("/{order_id}", response_model=OrderDetailResponse)
async def get_order_endpoint(
    order_id: int,
    t: Optional[str] = Query(None, description="Order public token"),
    db: AsyncSession = Depends(get_db),
):
    order = await get_order_for_buyer(db, order_id, t)
    return order_detail(order)


@router.get("/{order_id}/tickets", response_class=PlainTextResponse)
async def get_tickets_endpoint(
    order_id: int,
    t: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    order = await get_order_for_buyer(db, order_id, t)
    require_paid(order)
    return PlainTextResponse(render_tickets(order))


@router.get("/{order_id}/calendar")
async def get_calendar_endpoint(
    order_id: int,
    t: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    order = await get_order_for_buyer(db, order_id, t)
    require_paid(order)
    return Response(
        content=render_calendar(order),
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{calendar_filename(order)}"'},
    )


@router.post("/{order_id}/resend-email", response_model=EmailResendResponse)
async def resend_email_endpoint(
    order_id: int,
    t: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    order = await get_order_for_buyer(db, order_id, t)
    await resend_ticket_email(db, order)
    return EmailResendResponse(message="Tickets sent", order_id=order.id)
