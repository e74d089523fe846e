"""
Discount eligibility rules.

A discount is usable for a checkout only when it is active, the
customer is eligible and its minimums are met by the items it can
reach. It is usable for a given line only when it also applies to it.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from marketplace.domain import (
    CartItem, Discount, DiscountOwnerType, CustomerEligibilityType, OrderDiscountResult
)
from marketplace.utils.money import ZERO, round_money, sum_money

logger = logging.getLogger(__name__)

REASON_NOT_ACTIVE = 'Discount is not active'
REASON_NOT_ELIGIBLE = 'Not eligible for this discount'
REASON_NO_ITEMS = 'Discount does not apply to any items in cart'


def _aligned(now: datetime, moment: datetime) -> datetime:
    """Give `moment` the same awareness as `now`. Naive values are UTC."""
    if now.tzinfo is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    if now.tzinfo is None and moment.tzinfo is not None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def is_discount_active(discount: Discount, now: Optional[datetime] = None) -> bool:
    if not discount.is_active:
        return False
    now = now or datetime.now(timezone.utc)
    if discount.starts_at and now < _aligned(now, discount.starts_at):
        return False
    if discount.ends_at and now > _aligned(now, discount.ends_at):
        return False
    return True


def is_customer_eligible(discount: Discount, customer_id: Optional[str] = None) -> bool:
    if discount.customer_eligibility == CustomerEligibilityType.ALL:
        return True
    # Guests never match a specific customer list
    if not customer_id:
        return False
    return customer_id in discount.eligible_customer_ids


def discount_applies_to_item(discount: Discount, item: CartItem) -> bool:
    """Ownership boundary first, then product targeting."""
    if discount.owner_type == DiscountOwnerType.SELLER:
        if item.store_id != discount.owner_id:
            return False
    return any(target.matches(item.listing_id) for target in discount.targets)


def applicable_items(discount: Discount, items: Iterable[CartItem]) -> List[CartItem]:
    return [item for item in items if discount_applies_to_item(discount, item)]


def meets_minimum_requirements(discount: Discount, items: Iterable[CartItem]) -> bool:
    """
    Check minimum purchase amount/quantity against the items the
    discount can reach, not the whole cart.

    Fails closed when the discount reaches no item.
    """
    reachable = applicable_items(discount, items)
    if not reachable:
        return False

    subtotal = sum_money(item.line_subtotal for item in reachable)
    quantity = sum(item.quantity for item in reachable)

    if discount.min_purchase_amount is not None and subtotal < discount.min_purchase_amount:
        return False
    if discount.min_purchase_quantity is not None and quantity < discount.min_purchase_quantity:
        return False
    return True


def is_discount_usable(
    discount: Discount,
    items: Iterable[CartItem],
    customer_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> bool:
    """All three whole-cart checks."""
    if not is_discount_active(discount, now):
        logger.debug(f"[DISCOUNT] {discount.id} skipped: not active")
        return False
    if not is_customer_eligible(discount, customer_id):
        logger.debug(f"[DISCOUNT] {discount.id} skipped: customer {customer_id} not eligible")
        return False
    if not meets_minimum_requirements(discount, items):
        logger.debug(f"[DISCOUNT] {discount.id} skipped: minimum requirements not met")
        return False
    return True


# =====================================================
# CHECKOUT ELIGIBILITY REPORT
# =====================================================

@dataclass(frozen=True)
class DiscountEligibility:
    """Why a discount can or cannot be used for a cart."""
    discount: Discount
    can_apply: bool
    total_amount: Decimal = ZERO
    reason: Optional[str] = None
    missing_amount: Optional[Decimal] = None
    missing_quantity: Optional[int] = None
    result: Optional[OrderDiscountResult] = None


def explain_discount(
    discount: Discount,
    items: List[CartItem],
    customer_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> Optional[DiscountEligibility]:
    """
    Describe a discount for the checkout page.

    Returns None when the discount reaches no cart item, since such
    discounts are not shown at all. Checks stop at the first failure.
    """
    reachable = applicable_items(discount, items)
    if not reachable:
        return None

    subtotal = sum_money(item.line_subtotal for item in reachable)
    quantity = sum(item.quantity for item in reachable)

    if not is_discount_active(discount, now):
        return DiscountEligibility(discount, False, reason=REASON_NOT_ACTIVE)

    if not is_customer_eligible(discount, customer_id):
        return DiscountEligibility(discount, False, reason=REASON_NOT_ELIGIBLE)

    minimum_amount = discount.min_purchase_amount
    if minimum_amount is not None and subtotal < minimum_amount:
        currency = discount.currency or '€'
        return DiscountEligibility(
            discount, False,
            reason=f'Minimum purchase of {currency}{round_money(minimum_amount)} required',
            missing_amount=round_money(minimum_amount - subtotal)
        )

    minimum_quantity = discount.min_purchase_quantity
    if minimum_quantity is not None and quantity < minimum_quantity:
        return DiscountEligibility(
            discount, False,
            reason=f'Minimum quantity of {minimum_quantity} items required',
            missing_quantity=minimum_quantity - quantity
        )

    # Imported here: discount_service depends on this module
    from marketplace.services.discount_service import evaluate_amount_off_products_discount

    result = evaluate_amount_off_products_discount(items, discount, customer_id, now=now)
    if result is None:
        return DiscountEligibility(discount, False, reason=REASON_NO_ITEMS)

    return DiscountEligibility(discount, True, total_amount=result.total_amount, result=result)
