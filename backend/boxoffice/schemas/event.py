"""
Pydantic schemas for events, price areas and seat maps.
"""

import json
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from boxoffice.services.pricing import SaleStatus


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    start_date: datetime
    end_date: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=255)
    image_url: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def check_window(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class EventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    start_date: datetime
    end_date: Optional[datetime]
    location: Optional[str]
    image_url: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class PriceAreaCreate(BaseModel):
    """
    Admin input for a pricing rule. Each selector list that is given
    constrains the match; leaving all of them out matches every seat.
    """

    name: str = Field(..., min_length=1, max_length=255)
    sale_status: SaleStatus = SaleStatus.FOR_SALE
    price: Optional[int] = Field(None, ge=0)
    priority: int = 0
    color: Optional[str] = Field(None, max_length=20)
    seats: Optional[list[str]] = None
    rows: Optional[list[str]] = None
    sections: Optional[list[str]] = None
    seat_numbers: Optional[list[int]] = None

    @model_validator(mode="after")
    def check_price(self):
        if self.sale_status == SaleStatus.FOR_SALE and self.price is None:
            raise ValueError("price is required for FOR_SALE areas")
        return self


class PriceAreaResponse(BaseModel):
    id: int
    event_id: int
    name: str
    sale_status: str
    price: Optional[int]
    priority: int
    color: Optional[str]
    selectors: Any

    model_config = {"from_attributes": True}

    @field_validator("selectors", mode="before")
    @classmethod
    def decode_selectors(cls, value):
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return value
        return value


class EventDetailResponse(EventResponse):
    price_areas: list[PriceAreaResponse] = []


class SeatStateResponse(BaseModel):
    id: str
    label: str
    section: str
    row: Optional[str]
    number: int
    x: int
    y: int
    tier: str
    status: str  # AVAILABLE, HELD, SOLD, NOT_FOR_SALE, ADMIN_RESERVED
    price: Optional[int]
    color: Optional[str]
    area: Optional[str]


class SeatMapResponse(BaseModel):
    event_id: int
    currency: str
    seats: list[SeatStateResponse]
