"""
Order assembly from a cart and at most one pre-selected discount.

Choosing between several discounts is done beforehand with
discount_service.evaluate_best_discounts_per_item(); this module only
applies the discount it is given.
"""
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from marketplace.domain import (
    CartItem, Discount, Order, OrderBundle, OrderDiscount,
    OrderDiscountResult, OrderItem, OrderItemDiscount, OrderItemDiscountAllocation
)
from marketplace.services.discount_service import evaluate_amount_off_products_discount
from marketplace.utils.money import ZERO, round_money, sum_money

logger = logging.getLogger(__name__)

IdFactory = Callable[[], str]


def new_id() -> str:
    return str(uuid.uuid4())


def _create_order_items(order_id: str, cart_items: Sequence[CartItem], id_factory: IdFactory) -> List[OrderItem]:
    order_items = []
    for item in cart_items:
        subtotal = round_money(item.line_subtotal)
        order_items.append(OrderItem(
            id=id_factory(),
            order_id=order_id,
            cart_item_id=item.id,
            listing_id=item.listing_id,
            variant_id=item.variant_id,
            name=item.name,
            unit_price=item.price,
            quantity=item.quantity,
            subtotal=subtotal,
            discount_amount=ZERO,
            tax_amount=ZERO,
            line_total=subtotal
        ))
    return order_items


def _create_order_discount(
    order_id: str,
    discount: Discount,
    result: OrderDiscountResult,
    currency: str,
    id_factory: IdFactory
) -> OrderDiscount:
    return OrderDiscount(
        id=id_factory(),
        order_id=order_id,
        discount_id=discount.id,
        code=discount.code,
        type=discount.type,
        value_type=discount.value_type,
        value=discount.value,
        amount=result.total_amount,
        currency=currency
    )


def _apply_discount_to_order_items(
    order_items: List[OrderItem],
    result: OrderDiscountResult,
    order_discount: OrderDiscount,
    id_factory: IdFactory
) -> Tuple[List[OrderItem], List[OrderItemDiscount]]:
    """
    Apply allocations to matching items.

    The allocation amount replaces the item's discount amount; items
    without an allocation are returned unchanged.
    """
    allocations: Dict[str, OrderItemDiscountAllocation] = {a.cart_item_id: a for a in result.allocations}
    updated_items = []
    item_discounts = []

    for item in order_items:
        allocation = allocations.get(item.cart_item_id)
        if allocation is None:
            updated_items.append(item)
            continue

        item_discounts.append(OrderItemDiscount(
            id=id_factory(),
            order_item_id=item.id,
            order_discount_id=order_discount.id,
            discount_id=allocation.discount_id,
            amount=allocation.amount
        ))
        updated_items.append(replace(
            item,
            discount_amount=allocation.amount,
            line_total=item.subtotal - allocation.amount
        ))

    return updated_items, item_discounts


def calculate_order_totals(order_items: Sequence[OrderItem]) -> Dict[str, object]:
    """Order totals derived strictly from the items."""
    subtotal = sum_money(i.subtotal for i in order_items)
    discount_total = sum_money(i.discount_amount for i in order_items)
    tax_total = sum_money(i.tax_amount for i in order_items)

    return {
        'subtotal': subtotal,
        'discount_total': discount_total,
        'tax_total': tax_total,
        'total': subtotal - discount_total + tax_total
    }


def create_order_from_cart(
    cart_items: Sequence[CartItem],
    currency: str,
    discount: Optional[Discount] = None,
    customer_id: Optional[str] = None,
    id_factory: Optional[IdFactory] = None,
    now: Optional[datetime] = None
) -> OrderBundle:
    """
    Build an order, its items and discount records from a cart.

    An ineligible or zero-yield discount is simply not applied; the
    order is still created with no discount.

    Args:
        cart_items: Lines being checked out
        currency: Order currency (from store/market configuration)
        discount: The single discount chosen by the caller, if any
        customer_id: Customer placing the order, None for guests
        id_factory: Identifier generator, uuid4 strings by default
        now: Creation timestamp, also used for the discount window
    """
    id_factory = id_factory or new_id
    now = now or datetime.now(timezone.utc)
    order_id = id_factory()

    order_items = _create_order_items(order_id, cart_items, id_factory)
    order_discount = None
    order_item_discounts: List[OrderItemDiscount] = []

    if discount is not None:
        result = evaluate_amount_off_products_discount(cart_items, discount, customer_id, now=now)
        if result is not None:
            order_discount = _create_order_discount(order_id, discount, result, currency, id_factory)
            order_items, order_item_discounts = _apply_discount_to_order_items(
                order_items, result, order_discount, id_factory
            )
        else:
            logger.info(f"[ORDER] Discount {discount.id} not applied to order {order_id}")

    totals = calculate_order_totals(order_items)

    order = Order(
        id=order_id,
        customer_id=customer_id,
        currency=currency,
        subtotal=totals['subtotal'],
        discount_total=totals['discount_total'],
        tax_total=totals['tax_total'],
        total=totals['total'],
        created_at=now
    )

    return OrderBundle(
        order=order,
        order_items=tuple(order_items),
        order_discount=order_discount,
        order_item_discounts=tuple(order_item_discounts)
    )
