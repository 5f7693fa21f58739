"""
Event and its pricing rules (price areas).

Key design decisions:
- Price areas are created and deleted by admins, never updated in place
- Selectors are kept as the JSON text the admin submitted; they are parsed
  into typed selectors by the pricing resolver on every read
- Prices are integer minor units of the configured currency
"""

from sqlalchemy import Column, Integer, String, ForeignKey, Index, CheckConstraint, Text
from sqlalchemy.orm import relationship

from boxoffice.db.base import Base, TimestampMixin, UTCDateTime
from boxoffice.services.pricing import SaleStatus


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(2000), nullable=True)
    start_date = Column(UTCDateTime(), nullable=False)
    end_date = Column(UTCDateTime(), nullable=True)
    location = Column(String(255), nullable=True)
    image_url = Column(String(1000), nullable=True)

    price_areas = relationship(
        "PriceArea",
        back_populates="event",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by=lambda: [PriceArea.priority.desc(), PriceArea.id],
    )

    __table_args__ = (
        CheckConstraint("end_date IS NULL OR end_date >= start_date", name="check_event_window"),
        Index("ix_events_start_date", "start_date"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, start={self.start_date})>"


class PriceArea(Base, TimestampMixin):
    __tablename__ = "price_areas"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    selectors = Column(Text, nullable=False, default="{}")
    sale_status = Column(String(20), nullable=False, default=SaleStatus.FOR_SALE.value)
    price = Column(Integer, nullable=True)
    priority = Column(Integer, nullable=False, default=0)
    color = Column(String(20), nullable=True)

    event = relationship("Event", back_populates="price_areas")

    __table_args__ = (
        CheckConstraint(
            "sale_status IN ('FOR_SALE', 'NOT_FOR_SALE', 'ADMIN_RESERVED')",
            name="check_price_area_sale_status",
        ),
        CheckConstraint("price IS NULL OR price >= 0", name="check_price_area_price_non_negative"),
        Index("ix_price_areas_event_priority", "event_id", "priority"),
    )

    def __repr__(self) -> str:
        return f"<PriceArea(id={self.id}, event={self.event_id}, name={self.name}, priority={self.priority})>"
