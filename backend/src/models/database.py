"""
Database models for the SK food ordering service.
"""

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean, DateTime, Integer, String, Text, Numeric, JSON, Uuid,
    Column, Index, CheckConstraint
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func, text


Base = declarative_base()


class OrderStatus(str, Enum):
    """Order fulfilment status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    HANDED_OFF = "handed_off"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class MenuItem(Base):
    """Menu item offered to customers."""
    __tablename__ = 'menu_items'

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    category = Column(String(100), nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    image = Column(Text, nullable=False, default="")
    dietary = Column(JSON, nullable=False, default=list)
    price_range_label = Column(String(50), nullable=False, default="")
    featured = Column(Boolean, nullable=False, default=False)
    seasonal = Column(Boolean, nullable=False, default=False)
    available = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint('price >= 0', name='check_menu_price_positive'),
        Index('idx_menu_category_available', 'category', 'available'),
    )

    def __repr__(self):
        return f"<MenuItem(name='{self.name}', price={self.price})>"


class Order(Base):
    """Customer order; `tracking_id` is the public, shareable reference."""
    __tablename__ = 'orders'

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    tracking_id = Column(String(32), unique=True, nullable=False, index=True)

    # Customer / delivery
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(32), nullable=False)
    delivery_address = Column(Text, nullable=False)

    # Cart snapshot: [{menu_item_id, name, price, quantity}]
    items = Column(JSON, nullable=False, default=list)
    total_amount = Column(Numeric(10, 2), nullable=False)

    status = Column(String(20), nullable=False,
                    default=OrderStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False,
                            default=PaymentStatus.PENDING.value)
    payment_reference = Column(String(255))
    dispatch_ref = Column(String(255))

    created_at = Column(DateTime(timezone=True),
                        server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(
    ), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('total_amount >= 0', name='check_order_total_positive'),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'preparing', 'handed_off', 'delivered', 'cancelled')",
            name='check_valid_order_status'),
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'refunded')",
            name='check_valid_payment_status'),
        Index('idx_order_status_created', 'status', 'created_at'),
    )

    def __repr__(self):
        return f"<Order(tracking_id='{self.tracking_id}', status='{self.status}')>"


class DaySequence(Base):
    """Per-calendar-day counter backing tracking identifier allocation.

    Only the tracking id allocator writes to this table, and only through a
    single atomic upsert-increment. Rows are never deleted here.
    """
    __tablename__ = 'day_sequences'

    date = Column(String(8), primary_key=True)
    counter = Column(Integer, nullable=False, server_default=text('0'))
    updated_at = Column(DateTime(timezone=True),
                        server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('length("date") = 8', name='ck_day_seq_date_len'),
        CheckConstraint('counter >= 0', name='ck_day_seq_non_negative'),
    )

    def __repr__(self):
        return f"<DaySequence(date='{self.date}', counter={self.counter})>"
