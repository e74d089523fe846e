"""
Discount evaluation engine.

Pure computation: cart items and discounts in, allocations out.
Each cart item receives at most one discount (no stacking).
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from marketplace.domain import (
    CartItem, Discount, DiscountValueType,
    OrderDiscountResult, OrderItemDiscountAllocation
)
from marketplace.services.discount_eligibility_service import (
    discount_applies_to_item, is_discount_usable
)
from marketplace.utils.money import ZERO, round_money, sum_money

logger = logging.getLogger(__name__)


def calculate_item_discount_amount(item: CartItem, discount: Discount) -> Decimal:
    """
    Discount amount for one line with one discount, or 0 when it does
    not apply.

    Fixed discounts are an amount off per unit, capped at the line
    subtotal so a line total never goes negative.
    """
    if not discount_applies_to_item(discount, item):
        return ZERO

    line_subtotal = item.line_subtotal
    amount = ZERO

    if discount.value_type == DiscountValueType.PERCENTAGE:
        amount = round_money(line_subtotal * discount.value / 100)
    elif discount.value_type == DiscountValueType.FIXED:
        amount = round_money(min(discount.value * item.quantity, line_subtotal))

    return amount if amount > 0 else ZERO


def evaluate_amount_off_products_discount(
    items: Sequence[CartItem],
    discount: Discount,
    customer_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> Optional[OrderDiscountResult]:
    """
    Evaluate a single discount against the cart.

    Returns None when the discount is not usable or yields nothing.
    Calling this repeatedly for several discounts would stack them;
    use evaluate_best_discounts_per_item() to choose between discounts.
    """
    if not is_discount_usable(discount, items, customer_id, now):
        return None

    allocations = []
    for item in items:
        amount = calculate_item_discount_amount(item, discount)
        if amount <= 0:
            continue
        allocations.append(OrderItemDiscountAllocation(
            cart_item_id=item.id,
            discount_id=discount.id,
            amount=amount
        ))

    if not allocations:
        return None

    return OrderDiscountResult(
        discount_id=discount.id,
        total_amount=round_money(sum_money(a.amount for a in allocations)),
        allocations=tuple(allocations)
    )


def _best_discount_for_item(item: CartItem, discounts: List[Discount]):
    """Highest-yield discount for one item. Earlier discounts win ties."""
    best_discount = None
    best_amount = ZERO

    for discount in discounts:
        amount = calculate_item_discount_amount(item, discount)
        if amount > best_amount:
            best_amount = amount
            best_discount = discount

    return best_discount, best_amount


def _primary_discount_id(discount_totals: Dict[str, Decimal]) -> str:
    """Discount with the largest accumulated savings; first seen wins ties."""
    primary_id = None
    for discount_id, total in discount_totals.items():
        if primary_id is None or total > discount_totals[primary_id]:
            primary_id = discount_id
    return primary_id


def evaluate_best_discounts_per_item(
    items: Sequence[CartItem],
    discounts: Sequence[Discount],
    customer_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> Optional[OrderDiscountResult]:
    """
    Pick, independently for each cart item, the single discount that
    saves the most on that item.

    Whole-cart eligibility is checked once per discount; targeting and
    ownership are checked per item. The result's discount_id is the
    primary discount (largest total savings) and is informational only:
    every allocation carries its own winning discount id.
    """
    if not items or not discounts:
        return None

    eligible = [d for d in discounts if is_discount_usable(d, items, customer_id, now)]
    if not eligible:
        return None

    allocations = []
    discount_totals: Dict[str, Decimal] = {}
    discount_by_item: Dict[str, str] = {}

    for item in items:
        if item.id in discount_by_item:
            continue
        best_discount, best_amount = _best_discount_for_item(item, eligible)
        if best_discount is None or best_amount <= 0:
            continue

        allocations.append(OrderItemDiscountAllocation(
            cart_item_id=item.id,
            discount_id=best_discount.id,
            amount=best_amount
        ))
        discount_by_item[item.id] = best_discount.id
        discount_totals[best_discount.id] = discount_totals.get(best_discount.id, ZERO) + best_amount

    if not allocations:
        return None

    primary_id = _primary_discount_id(discount_totals)
    logger.debug(
        f"[DISCOUNT] best per item: {len(allocations)} allocations, "
        f"{len(discount_totals)} discounts used, primary {primary_id}"
    )

    return OrderDiscountResult(
        discount_id=primary_id,
        total_amount=round_money(sum_money(a.amount for a in allocations)),
        allocations=tuple(allocations)
    )
