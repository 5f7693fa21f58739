from boxoffice.models.event import Event, PriceArea
from boxoffice.models.order import Order, OrderItem, SeatLock, OrderStatus, LockStatus

__all__ = ["Event", "PriceArea", "Order", "OrderItem", "SeatLock", "OrderStatus", "LockStatus"]
