"""
Checkout service - loads discounts, picks the best ones and places orders.

The discount engine itself is pure; this module is the layer that reads
discount rows and writes the order bundle in one transaction.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from marketplace import domain
from marketplace.blueprints.metrics import discount_evaluations_total, orders_placed_total
from marketplace.exceptions import (
    BusinessLogicError, DiscountUsageLimitError, MarketplaceError, NotFoundError
)
from marketplace.models import (
    Discount, Order, OrderDiscount, OrderItem, OrderItemDiscount
)
from marketplace.services.discount_eligibility_service import (
    REASON_NO_ITEMS, DiscountEligibility, explain_discount
)
from marketplace.services.discount_service import evaluate_best_discounts_per_item
from marketplace.services.order_service import IdFactory, create_order_from_cart
from marketplace.utils.money import to_decimal

logger = logging.getLogger(__name__)

REASON_USAGE_LIMIT = 'Discount usage limit reached'


@dataclass(frozen=True)
class BestDiscount:
    """Best-per-item evaluation plus the details checkout displays."""
    result: domain.OrderDiscountResult
    primary_discount: domain.Discount
    applied_discounts: Tuple[domain.Discount, ...]

    @property
    def applied_discount_names(self) -> List[str]:
        return [d.name or 'Unknown Discount' for d in self.applied_discounts]

    @property
    def display_name(self) -> str:
        names = self.applied_discount_names
        return ', '.join(names) if len(names) > 1 else self.primary_discount.name


def parse_cart_items(raw_items: Any) -> List[domain.CartItem]:
    """
    Build CartItem values from request data.

    Raises:
        BusinessLogicError: when an item is missing fields or has an
            invalid price/quantity.
    """
    if not isinstance(raw_items, list):
        raise BusinessLogicError('items must be a list')

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise BusinessLogicError(f'Item {index} must be an object')

        for key in ('id', 'listing_id', 'price', 'quantity'):
            if raw.get(key) is None:
                raise BusinessLogicError(f'Item {index} is missing "{key}"')

        try:
            price = to_decimal(raw['price'])
        except ValueError:
            raise BusinessLogicError(f'Item {index} has an invalid price')
        if not price.is_finite() or price < 0:
            raise BusinessLogicError(f'Item {index} has an invalid price')

        quantity = raw['quantity']
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise BusinessLogicError(f'Item {index}: quantity must be a positive integer')

        items.append(domain.CartItem(
            id=str(raw['id']),
            listing_id=str(raw['listing_id']),
            variant_id=str(raw['variant_id']) if raw.get('variant_id') else None,
            store_id=str(raw['store_id']) if raw.get('store_id') else None,
            price=price,
            quantity=quantity,
            name=str(raw.get('name') or ''),
            currency=raw.get('currency')
        ))
    return items


def _active_filters(now: datetime):
    return (
        Discount.is_active.is_(True),
        or_(Discount.starts_at.is_(None), Discount.starts_at <= now),
        or_(Discount.ends_at.is_(None), Discount.ends_at >= now)
    )


def load_checkout_discounts(
    session: Session,
    now: Optional[datetime] = None,
    exclude_discount_id: Optional[str] = None,
    exclude_with_codes: bool = False
) -> List[domain.Discount]:
    """
    Active discounts inside their date window with uses left.

    Ordered by creation so the engine's "first seen wins" ties are
    stable between calls.
    """
    now = now or datetime.now(timezone.utc)
    query = session.query(Discount).options(
        selectinload(Discount.targets),
        selectinload(Discount.customers)
    ).filter(
        *_active_filters(now),
        or_(Discount.usage_limit.is_(None), Discount.usage_count < Discount.usage_limit)
    )

    if exclude_discount_id:
        query = query.filter(Discount.id != exclude_discount_id)
    if exclude_with_codes:
        query = query.filter(Discount.code.is_(None))

    rows = query.order_by(Discount.created_at, Discount.id).all()
    return [row.to_domain() for row in rows]


def get_discount_by_code(session: Session, code: str, now: Optional[datetime] = None) -> domain.Discount:
    """Look up an active, in-window discount by its code (case-insensitive)."""
    cleaned = (code or '').strip()
    if not cleaned:
        raise BusinessLogicError('Discount code is required')

    now = now or datetime.now(timezone.utc)
    row = session.query(Discount).filter(
        func.lower(Discount.code) == cleaned.lower(),
        *_active_filters(now)
    ).first()
    if not row:
        raise NotFoundError(f'Discount code "{cleaned}" not found or expired')
    return row.to_domain()


def get_automatic_discounts_for_checkout(
    session: Session,
    items: Sequence[domain.CartItem],
    customer_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> List[DiscountEligibility]:
    """Eligibility report for every discount that touches the cart."""
    now = now or datetime.now(timezone.utc)
    reports = []
    for discount in load_checkout_discounts(session, now):
        report = explain_discount(discount, list(items), customer_id, now)
        if report is None:
            continue
        reports.append(report)
        discount_evaluations_total.labels(outcome='applicable' if report.can_apply else 'rejected').inc()
    return reports


def find_best_discount_for_checkout(
    session: Session,
    items: Sequence[domain.CartItem],
    customer_id: Optional[str] = None,
    exclude_discount_id: Optional[str] = None,
    exclude_with_codes: bool = False,
    now: Optional[datetime] = None
) -> Optional[BestDiscount]:
    """Best discount per item across all loaded discounts, or None."""
    now = now or datetime.now(timezone.utc)
    discounts = load_checkout_discounts(session, now, exclude_discount_id, exclude_with_codes)
    result = evaluate_best_discounts_per_item(items, discounts, customer_id, now=now)

    if result is None:
        discount_evaluations_total.labels(outcome='none').inc()
        return None

    by_id: Dict[str, domain.Discount] = {d.id: d for d in discounts}
    discount_evaluations_total.labels(outcome='applied').inc()
    return BestDiscount(
        result=result,
        primary_discount=by_id[result.discount_id],
        applied_discounts=tuple(by_id[d_id] for d_id in result.applied_discount_ids)
    )


def evaluate_discount_for_checkout(
    session: Session,
    discount_id: str,
    items: Sequence[domain.CartItem],
    customer_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> DiscountEligibility:
    """
    Evaluate one chosen discount (e.g. entered by code) against the cart.

    Unlike the automatic listing, a discount that reaches no item is
    reported with a reason instead of being hidden. When it applies,
    `result` holds the per-item allocations.

    Raises:
        NotFoundError: when the discount does not exist.
    """
    now = now or datetime.now(timezone.utc)
    row = session.query(Discount).options(
        selectinload(Discount.targets),
        selectinload(Discount.customers)
    ).filter(Discount.id == discount_id).first()
    if not row:
        raise NotFoundError(f'Discount {discount_id} not found')

    discount = row.to_domain()
    if not row.has_remaining_uses:
        report = DiscountEligibility(discount, False, reason=REASON_USAGE_LIMIT)
    else:
        report = explain_discount(discount, list(items), customer_id, now)
        if report is None:
            report = DiscountEligibility(discount, False, reason=REASON_NO_ITEMS)

    discount_evaluations_total.labels(outcome='applicable' if report.can_apply else 'rejected').inc()
    logger.debug(f"[DISCOUNT] {discount.id} evaluated for checkout: can_apply={report.can_apply}")
    return report


def place_order(
    session: Session,
    cart_items: Sequence[domain.CartItem],
    currency: str,
    discount_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    now: Optional[datetime] = None,
    id_factory: Optional[IdFactory] = None
) -> domain.OrderBundle:
    """
    Create and persist an order with at most one discount.

    The discount row is locked while its usage count is checked and
    incremented. The count only moves when the discount was applied.
    """
    if not cart_items:
        raise BusinessLogicError('The cart is empty')
    if not currency:
        raise BusinessLogicError('currency is required')

    try:
        discount_row = None
        discount = None
        if discount_id:
            discount_row = session.query(Discount).filter(
                Discount.id == discount_id
            ).with_for_update().first()
            if not discount_row:
                raise NotFoundError(f'Discount {discount_id} not found')
            if not discount_row.has_remaining_uses:
                raise DiscountUsageLimitError(discount_row.id, discount_row.usage_limit)
            discount = discount_row.to_domain()

        bundle = create_order_from_cart(
            cart_items,
            currency=currency,
            discount=discount,
            customer_id=customer_id,
            id_factory=id_factory,
            now=now
        )

        _add_bundle(session, bundle)
        if bundle.order_discount is not None:
            discount_row.usage_count = (discount_row.usage_count or 0) + 1

        session.commit()

    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except Exception as e:
        session.rollback()
        logger.error(f"[CHECKOUT] Failed to place order: {e}")
        raise MarketplaceError(f'Error placing order: {str(e)}') from e

    orders_placed_total.labels(discounted=str(bundle.order_discount is not None).lower()).inc()
    logger.info(
        f"[ORDER] Placed order {bundle.order.id}: subtotal={bundle.order.subtotal} "
        f"discount={bundle.order.discount_total} total={bundle.order.total}"
    )
    return bundle


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _add_bundle(session: Session, bundle: domain.OrderBundle) -> None:
    """Stage the order, its items and discount records on the session."""
    order = bundle.order
    session.add(Order(
        id=order.id,
        customer_id=order.customer_id,
        currency=order.currency,
        subtotal_amount=order.subtotal,
        discount_total=order.discount_total,
        tax_amount=order.tax_total,
        total_amount=order.total,
        status=order.status,
        payment_status=order.payment_status,
        fulfillment_status=order.fulfillment_status,
        created_at=order.created_at
    ))
    session.flush()

    for item in bundle.order_items:
        session.add(OrderItem(
            id=item.id,
            order_id=item.order_id,
            listing_id=item.listing_id,
            variant_id=item.variant_id,
            title=item.name or item.listing_id,
            quantity=item.quantity,
            unit_price=item.unit_price,
            currency=order.currency,
            line_subtotal=item.subtotal,
            discount_amount=item.discount_amount,
            tax_amount=item.tax_amount,
            line_total=item.line_total
        ))

    if bundle.order_discount is not None:
        snapshot = bundle.order_discount
        session.add(OrderDiscount(
            id=snapshot.id,
            order_id=snapshot.order_id,
            discount_id=snapshot.discount_id,
            code=snapshot.code,
            type=snapshot.type,
            value_type=snapshot.value_type.value,
            value=snapshot.value,
            amount=snapshot.amount,
            currency=snapshot.currency
        ))
    session.flush()

    for allocation in bundle.order_item_discounts:
        session.add(OrderItemDiscount(
            id=allocation.id,
            order_item_id=allocation.order_item_id,
            order_discount_id=allocation.order_discount_id,
            discount_id=allocation.discount_id,
            amount=allocation.amount
        ))
