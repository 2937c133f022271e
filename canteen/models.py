"""
SQLAlchemy Database Models

Order records and the durable counter behind order numbers.

Orders are written only through the Order Store: created once, then mutated
exclusively by compare-and-set status transitions and the soft-delete flag.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, DateTime, Text, Enum, Boolean, JSON, Index

from canteen.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_order_id() -> str:
    return uuid.uuid4().hex


class OrderStatus(str, enum.Enum):
    """Order lifecycle states. Legal edges live in services.status_machine."""
    PLACED = "placed"
    ACCEPTED = "accepted"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    WALLET = "wallet"


class Order(Base):
    """
    Main Order table - one row per placed order.

    Tracks the lifecycle from placement to completion or cancellation.
    """
    __tablename__ = "orders"

    # Opaque identifier, distinct from the human-readable order number
    id = Column(String(32), primary_key=True, default=new_order_id)
    order_number = Column(String(32), nullable=False, unique=True, index=True)

    # =========================================================================
    # CUSTOMER INFORMATION
    # =========================================================================
    customer_ref = Column(String(64), nullable=False)
    customer_name = Column(String(100), nullable=False)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    items = Column(JSON, nullable=False)  # [{menu_item_ref, name, quantity, unit_price, subtotal}]
    special_instructions = Column(Text, nullable=True)

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(Float, nullable=False)
    service_fee = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False)

    # =========================================================================
    # PAYMENT INFO (not interpreted by the status machine)
    # =========================================================================
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    payment_method = Column(Enum(PaymentMethod), default=PaymentMethod.CASH, nullable=False)

    # =========================================================================
    # ORDER STATUS
    # =========================================================================
    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PLACED,
        nullable=False,
        index=True
    )
    estimated_ready_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_orders_customer_created", "customer_ref", "created_at"),
        Index("ix_orders_status_created", "status", "created_at"),
        Index("ix_orders_created", "created_at"),
    )

    def __repr__(self):
        return f"<Order {self.order_number} - {self.customer_name} - {self.status.value}>"


class OrderSequence(Base):
    """Durable monotonic counters, one row per sequence name."""
    __tablename__ = "order_sequences"

    name = Column(String(50), primary_key=True)
    value = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<OrderSequence {self.name}={self.value}>"
