"""Order model."""
import enum
from sqlalchemy import Column, String, Numeric, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base


class OrderStatus(str, enum.Enum):
    OPEN = 'open'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class OrderPaymentStatus(str, enum.Enum):
    PENDING = 'pending'
    PAID = 'paid'


class OrderFulfillmentStatus(str, enum.Enum):
    UNFULFILLED = 'unfulfilled'
    FULFILLED = 'fulfilled'


class Order(Base):
    """
    Placed order.

    Totals are derived from the order items at placement:
    total = subtotal_amount - discount_total + tax_amount.
    """

    __tablename__ = 'orders'

    id = Column(String(36), primary_key=True)
    customer_id = Column(String(36), nullable=True, index=True)
    currency = Column(String(3), nullable=False)

    subtotal_amount = Column(Numeric(10, 2), nullable=False, default=0, server_default='0')
    discount_total = Column(Numeric(10, 2), nullable=False, default=0, server_default='0')
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0, server_default='0')
    total_amount = Column(Numeric(10, 2), nullable=False, default=0, server_default='0')

    status = Column(String(20), nullable=False, default=OrderStatus.OPEN.value)
    payment_status = Column(String(20), nullable=False, default=OrderPaymentStatus.PENDING.value)
    fulfillment_status = Column(String(20), nullable=False, default=OrderFulfillmentStatus.UNFULFILLED.value)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan')
    discounts = relationship('OrderDiscount', back_populates='order', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Order(id={self.id}, total={self.total_amount}, status={self.status})>"
