from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, BigInteger, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database import Base


# Bumped whenever the stored order layout changes; decode_order rejects unknown versions.
ORDER_SCHEMA_VERSION = 1


class OrderStatus(str, Enum):
    """Order status enumeration."""
    PENDING = "PENDING"           # Placed, stock reserved
    PROCESSING = "PROCESSING"     # Being prepared
    SHIPPED = "SHIPPED"           # Handed to carrier
    DELIVERED = "DELIVERED"       # Received by customer

    # Reversed states - stock given back
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"


class StockAction(str, Enum):
    """Stock side effect applied alongside an order status change."""
    DEDUCT = "DEDUCT"
    RESTORE = "RESTORE"
    NONE = "NONE"


class Order(Base):
    """
    Customer order.
    Only `status` and `tracking_number` change after creation.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_order_status_date', 'status', 'order_date'),
        Index('ix_order_customer_date', 'customer_id', 'order_date'),
    )

    # Assigned by OrderIDAllocator, never autoincremented by the database
    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)

    # Customer
    customer_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    customer_username: Mapped[str] = mapped_column(String(150), nullable=False)

    # Status - VARCHAR so that unknown values surface in decoding instead of the driver
    status: Mapped[str] = mapped_column(
        String(20),
        default=OrderStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="PENDING, PROCESSING, SHIPPED, DELIVERED, CANCELLED, RETURNED"
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Sum of item totals"
    )

    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    shipping_address: Mapped[str] = mapped_column(Text, nullable=False)

    # Epoch milliseconds
    order_date: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    estimated_delivery: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    schema_version: Mapped[int] = mapped_column(
        Integer,
        default=ORDER_SCHEMA_VERSION,
        nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position"
    )
    status_history: Mapped[List["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id"
    )

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, status='{self.status}', total={self.total_amount})>"


class OrderItem(Base):
    """Order line item model."""
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False
    )
    # Product snapshot (stored for historical record)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="items")


class OrderStatusHistory(Base):
    """Order status change history, including the stock action applied."""
    __tablename__ = "order_status_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    from_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    stock_action: Mapped[str] = mapped_column(
        String(10),
        default=StockAction.NONE.value,
        nullable=False
    )
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    changed_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="status_history")
