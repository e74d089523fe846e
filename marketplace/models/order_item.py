"""Order Item model."""
from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base


class OrderItem(Base):
    """Order line snapshot (line_total = line_subtotal - discount_amount)."""

    __tablename__ = 'order_items'

    id = Column(String(36), primary_key=True)
    order_id = Column(String(36), ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    listing_id = Column(String(36), nullable=True)
    variant_id = Column(String(36), nullable=True)

    title = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    line_subtotal = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    line_total = Column(Numeric(10, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    order = relationship('Order', back_populates='items')
    discounts = relationship('OrderItemDiscount', back_populates='order_item', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<OrderItem(id={self.id}, listing_id={self.listing_id}, qty={self.quantity})>"
