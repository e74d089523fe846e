"""Order Discount model (discount snapshot at order time)."""
from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base


class OrderDiscount(Base):
    """
    Discount applied to an order.

    Code, type and value are copied from the discount so later edits to
    the discount do not change past orders.
    """

    __tablename__ = 'order_discounts'

    id = Column(String(36), primary_key=True)
    order_id = Column(String(36), ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    discount_id = Column(String(36), ForeignKey('discounts.id', ondelete='RESTRICT'), nullable=True)

    code = Column(String(100), nullable=True)
    type = Column(String(50), nullable=False)
    value_type = Column(String(20), nullable=False)
    value = Column(Numeric(10, 2), nullable=False)

    amount = Column(Numeric(10, 2), nullable=False)  # Total discount amount applied
    currency = Column(String(3), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    order = relationship('Order', back_populates='discounts')
    discount = relationship('Discount')
    item_discounts = relationship('OrderItemDiscount', back_populates='order_discount', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<OrderDiscount(id={self.id}, discount_id={self.discount_id}, amount={self.amount})>"
