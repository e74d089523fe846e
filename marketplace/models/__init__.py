"""Models package - exports all SQLAlchemy models."""
from marketplace.models.discount import Discount, DiscountTarget, DiscountCustomer
from marketplace.models.order import Order, OrderStatus, OrderPaymentStatus, OrderFulfillmentStatus
from marketplace.models.order_item import OrderItem
from marketplace.models.order_discount import OrderDiscount
from marketplace.models.order_item_discount import OrderItemDiscount

__all__ = [
    'Discount', 'DiscountTarget', 'DiscountCustomer',
    'Order', 'OrderStatus', 'OrderPaymentStatus', 'OrderFulfillmentStatus',
    'OrderItem', 'OrderDiscount', 'OrderItemDiscount',
]
