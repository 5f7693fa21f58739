from boxoffice.schemas.admin import AdminLogin, Token, SweepResponse, NotificationResponse
from boxoffice.schemas.event import (
    EventCreate, EventResponse, EventListResponse, EventDetailResponse,
    PriceAreaCreate, PriceAreaResponse, SeatStateResponse, SeatMapResponse,
)
from boxoffice.schemas.order import (
    OrderCreate, OrderCreatedResponse, OrderItemResponse, OrderDetailResponse, EmailResendResponse,
)

__all__ = [
    "AdminLogin", "Token", "SweepResponse", "NotificationResponse",
    "EventCreate", "EventResponse", "EventListResponse", "EventDetailResponse",
    "PriceAreaCreate", "PriceAreaResponse", "SeatStateResponse", "SeatMapResponse",
    "OrderCreate", "OrderCreatedResponse", "OrderItemResponse", "OrderDetailResponse", "EmailResendResponse",
]
