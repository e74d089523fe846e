"""Order Item Discount model (line-item allocation)."""
from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base


class OrderItemDiscount(Base):
    """Share of an order discount allocated to one order item."""

    __tablename__ = 'order_item_discounts'

    id = Column(String(36), primary_key=True)
    order_item_id = Column(String(36), ForeignKey('order_items.id', ondelete='CASCADE'), nullable=False, index=True)
    order_discount_id = Column(String(36), ForeignKey('order_discounts.id', ondelete='CASCADE'), nullable=False, index=True)
    discount_id = Column(String(36), ForeignKey('discounts.id', ondelete='RESTRICT'), nullable=True)

    amount = Column(Numeric(10, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    order_item = relationship('OrderItem', back_populates='discounts')
    order_discount = relationship('OrderDiscount', back_populates='item_discounts')

    def __repr__(self):
        return f"<OrderItemDiscount(order_item_id={self.order_item_id}, amount={self.amount})>"
