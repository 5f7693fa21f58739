"""
Pydantic schemas for orders and checkout.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class OrderCreate(BaseModel):
    event_id: int
    seat_ids: list[str] = Field(..., min_length=1)
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)


class OrderCreatedResponse(BaseModel):
    order_id: int
    public_token: str
    redirect_url: str
    expires_at: datetime
    total_amount: int
    currency: str


class OrderItemResponse(BaseModel):
    seat_id: str
    seat_label: str
    price_at_booking: int

    model_config = {"from_attributes": True}


class OrderLinks(BaseModel):
    tickets: str
    calendar: str
    resend_email: str


class OrderDetailResponse(BaseModel):
    """What a buyer holding the public token may see. No lock internals."""

    id: int
    event_id: int
    event_title: str
    event_start: datetime
    status: str
    email: str
    full_name: str
    currency: str
    total_amount: int
    created_at: datetime
    paid_at: Optional[datetime]
    items: list[OrderItemResponse]
    links: Optional[OrderLinks] = None


class EmailResendResponse(BaseModel):
    message: str
    order_id: int
