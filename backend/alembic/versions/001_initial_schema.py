"""Initial schema: events, price areas, orders, order items and seat locks.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_LOCK_CONDITION = sa.text("status IN ('HELD', 'SOLD')")


def upgrade() -> None:
    # Events table
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(2000), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("image_url", sa.String(1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("end_date IS NULL OR end_date >= start_date", name="check_event_window"),
    )
    op.create_index("ix_events_id", "events", ["id"])
    # Listings filter and sort on start date
    op.create_index("ix_events_start_date", "events", ["start_date"])

    # Price areas (pricing rules)
    op.create_table(
        "price_areas",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("selectors", sa.Text(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("sale_status", sa.String(20), nullable=False, server_default=sa.text("'FOR_SALE'")),
        sa.Column("price", sa.Integer(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("color", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "sale_status IN ('FOR_SALE', 'NOT_FOR_SALE', 'ADMIN_RESERVED')",
            name="check_price_area_sale_status",
        ),
        sa.CheckConstraint("price IS NULL OR price >= 0", name="check_price_area_price_non_negative"),
    )
    op.create_index("ix_price_areas_id", "price_areas", ["id"])
    # Seat maps load every rule of an event in priority order
    op.create_index("ix_price_areas_event_priority", "price_areas", ["event_id", "priority"])

    # Orders
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("total_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("public_token", sa.String(128), nullable=False),
        sa.Column("payment_ref", sa.String(255), nullable=True),
        sa.Column("payment_status", sa.String(50), nullable=True),
        sa.Column("ipn_payload", sa.JSON(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("email_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_email_error", sa.String(1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("public_token", name="uq_orders_public_token"),
        sa.CheckConstraint("total_amount >= 0", name="check_order_total_non_negative"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'PAID', 'FAILED', 'EXPIRED', 'REFUNDED')",
            name="check_order_status",
        ),
    )
    op.create_index("ix_orders_id", "orders", ["id"])
    op.create_index("ix_orders_event_id", "orders", ["event_id"])
    # The sweeper scans PENDING orders
    op.create_index("ix_orders_status", "orders", ["status"])

    # Order items
    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("seat_id", sa.String(100), nullable=False),
        sa.Column("seat_label", sa.String(255), nullable=False),
        sa.Column("price_at_booking", sa.Integer(), nullable=False),
        sa.CheckConstraint("price_at_booking >= 0", name="check_order_item_price_non_negative"),
    )
    op.create_index("ix_order_items_id", "order_items", ["id"])
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    # Seat locks
    op.create_table(
        "seat_locks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("seat_id", sa.String(100), nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'HELD'")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('HELD', 'SOLD', 'RELEASED')", name="check_seat_lock_status"),
    )
    op.create_index("ix_seat_locks_id", "seat_locks", ["id"])
    op.create_index("ix_seat_locks_order_id", "seat_locks", ["order_id"])
    op.create_index("ix_seat_locks_event_seat", "seat_locks", ["event_id", "seat_id"])
    # Sweeper: HELD locks by expiry
    op.create_index("ix_seat_locks_status_expires", "seat_locks", ["status", "expires_at"])
    # ONE LIVE LOCK PER SEAT: the arbiter for concurrent holds.
    # Two transactions inserting a HELD lock for the same (event, seat) cannot
    # both commit; RELEASED rows are outside the index so seats can be resold.
    op.create_index(
        "uq_seat_locks_active_seat",
        "seat_locks",
        ["event_id", "seat_id"],
        unique=True,
        postgresql_where=ACTIVE_LOCK_CONDITION,
        sqlite_where=ACTIVE_LOCK_CONDITION,
    )


def downgrade() -> None:
    op.drop_index("uq_seat_locks_active_seat", table_name="seat_locks")
    op.drop_table("seat_locks")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("price_areas")
    op.drop_table("events")
