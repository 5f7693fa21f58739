"""
Orders, their line items and the seat locks backing them.

Key design decisions:
- At most one HELD or SOLD lock per (event, seat). A partial unique index
  enforces it, so two racing checkouts cannot both insert a live lock; the
  loser gets an IntegrityError instead of a silent double sale.
- Expired holds keep status HELD until a sweep (or the next hold on the same
  seat) flips them to RELEASED. SOLD and RELEASED are terminal.
- Order items freeze the price charged at booking time.
- public_token is the only credential for buyer-facing order access.
"""

import enum

from sqlalchemy import Column, Integer, String, ForeignKey, Index, CheckConstraint, JSON, text
from sqlalchemy.orm import relationship

from boxoffice.db.base import Base, TimestampMixin, UTCDateTime


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    REFUNDED = "REFUNDED"


class LockStatus(str, enum.Enum):
    HELD = "HELD"
    SOLD = "SOLD"
    RELEASED = "RELEASED"


ACTIVE_LOCK_CONDITION = text("status IN ('HELD', 'SOLD')")


class Order(Base, TimestampMixin):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    currency = Column(String(3), nullable=False)
    total_amount = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    public_token = Column(String(128), nullable=False, unique=True)

    # Payment collaborator state
    payment_ref = Column(String(255), nullable=True)
    payment_status = Column(String(50), nullable=True)
    ipn_payload = Column(JSON, nullable=True)
    paid_at = Column(UTCDateTime(), nullable=True)

    # Ticket email delivery
    email_sent_at = Column(UTCDateTime(), nullable=True)
    last_email_error = Column(String(1000), nullable=True)

    event = relationship("Event", lazy="selectin")
    items = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    locks = relationship("SeatLock", back_populates="order", lazy="selectin", order_by="SeatLock.id")

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="check_order_total_non_negative"),
        CheckConstraint(
            "status IN ('PENDING', 'PAID', 'FAILED', 'EXPIRED', 'REFUNDED')",
            name="check_order_status",
        ),
        Index("ix_orders_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, event={self.event_id}, status={self.status}, total={self.total_amount})>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    seat_id = Column(String(100), nullable=False)
    seat_label = Column(String(255), nullable=False)
    price_at_booking = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("price_at_booking >= 0", name="check_order_item_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<OrderItem(order={self.order_id}, seat={self.seat_id}, price={self.price_at_booking})>"


class SeatLock(Base, TimestampMixin):
    __tablename__ = "seat_locks"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    seat_id = Column(String(100), nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=LockStatus.HELD.value)
    expires_at = Column(UTCDateTime(), nullable=False)

    order = relationship("Order", back_populates="locks")

    __table_args__ = (
        CheckConstraint("status IN ('HELD', 'SOLD', 'RELEASED')", name="check_seat_lock_status"),
        # One live lock per seat and event
        Index(
            "uq_seat_locks_active_seat",
            "event_id",
            "seat_id",
            unique=True,
            postgresql_where=ACTIVE_LOCK_CONDITION,
            sqlite_where=ACTIVE_LOCK_CONDITION,
        ),
        # Sweeper scan: HELD locks ordered by expiry
        Index("ix_seat_locks_status_expires", "status", "expires_at"),
        Index("ix_seat_locks_event_seat", "event_id", "seat_id"),
    )

    def __repr__(self) -> str:
        return f"<SeatLock(event={self.event_id}, seat={self.seat_id}, status={self.status})>"
