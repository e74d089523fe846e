"""
Plain value types consumed and produced by the discount engine.

Nothing here touches the database: checkout code builds these from
request payloads or ORM rows and hands them to the services.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple, FrozenSet

from marketplace.utils.money import to_decimal


class DiscountValueType(str, enum.Enum):
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'


class DiscountOwnerType(str, enum.Enum):
    ADMIN = 'admin'
    SELLER = 'seller'


class CustomerEligibilityType(str, enum.Enum):
    ALL = 'all'
    SPECIFIC = 'specific'


class DiscountTargetType(str, enum.Enum):
    ALL_PRODUCTS = 'all_products'
    LISTING_IDS = 'listing_ids'


AMOUNT_OFF_PRODUCTS = 'amount_off_products'


@dataclass(frozen=True)
class CartItem:
    """A cart line awaiting checkout."""
    id: str
    listing_id: str
    store_id: Optional[str]
    price: Decimal
    quantity: int
    name: str = ''
    variant_id: Optional[str] = None
    currency: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'price', to_decimal(self.price))

    @property
    def line_subtotal(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class DiscountTarget:
    type: DiscountTargetType
    listing_ids: FrozenSet[str] = frozenset()

    def __post_init__(self):
        object.__setattr__(self, 'listing_ids', frozenset(self.listing_ids))

    @classmethod
    def all_products(cls) -> 'DiscountTarget':
        return cls(DiscountTargetType.ALL_PRODUCTS)

    @classmethod
    def listings(cls, *listing_ids: str) -> 'DiscountTarget':
        return cls(DiscountTargetType.LISTING_IDS, frozenset(listing_ids))

    def matches(self, listing_id: str) -> bool:
        if self.type == DiscountTargetType.ALL_PRODUCTS:
            return True
        return listing_id in self.listing_ids


@dataclass(frozen=True)
class Discount:
    """
    An "amount off products" promotional rule.

    Seller-owned discounts (owner_type == SELLER) only reach cart items
    whose store_id equals owner_id.
    """
    id: str
    value_type: DiscountValueType
    value: Decimal
    targets: Tuple[DiscountTarget, ...]
    owner_type: DiscountOwnerType = DiscountOwnerType.ADMIN
    owner_id: Optional[str] = None
    is_active: bool = True
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    min_purchase_amount: Optional[Decimal] = None
    min_purchase_quantity: Optional[int] = None
    customer_eligibility: CustomerEligibilityType = CustomerEligibilityType.ALL
    eligible_customer_ids: FrozenSet[str] = frozenset()
    name: str = ''
    code: Optional[str] = None
    type: str = AMOUNT_OFF_PRODUCTS
    currency: Optional[str] = None
    usage_limit: Optional[int] = None
    usage_count: int = 0

    def __post_init__(self):
        object.__setattr__(self, 'value', to_decimal(self.value))
        object.__setattr__(self, 'targets', tuple(self.targets))
        object.__setattr__(self, 'eligible_customer_ids', frozenset(self.eligible_customer_ids))
        if self.min_purchase_amount is not None:
            object.__setattr__(self, 'min_purchase_amount', to_decimal(self.min_purchase_amount))


@dataclass(frozen=True)
class OrderItemDiscountAllocation:
    cart_item_id: str
    discount_id: str
    amount: Decimal


@dataclass(frozen=True)
class OrderDiscountResult:
    """Outcome of evaluating one or more discounts against a cart."""
    discount_id: str
    total_amount: Decimal
    allocations: Tuple[OrderItemDiscountAllocation, ...]

    def allocation_for(self, cart_item_id: str) -> Optional[OrderItemDiscountAllocation]:
        return next((a for a in self.allocations if a.cart_item_id == cart_item_id), None)

    @property
    def applied_discount_ids(self) -> Tuple[str, ...]:
        seen = []
        for allocation in self.allocations:
            if allocation.discount_id not in seen:
                seen.append(allocation.discount_id)
        return tuple(seen)


@dataclass(frozen=True)
class OrderItem:
    id: str
    order_id: str
    cart_item_id: str
    listing_id: str
    variant_id: Optional[str]
    name: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class OrderDiscount:
    """Snapshot of a discount at the moment it was used."""
    id: str
    order_id: str
    discount_id: str
    code: Optional[str]
    type: str
    value_type: DiscountValueType
    value: Decimal
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class OrderItemDiscount:
    id: str
    order_item_id: str
    order_discount_id: str
    discount_id: str
    amount: Decimal


@dataclass(frozen=True)
class Order:
    id: str
    customer_id: Optional[str]
    currency: str
    subtotal: Decimal
    discount_total: Decimal
    tax_total: Decimal
    total: Decimal
    created_at: datetime
    status: str = 'open'
    payment_status: str = 'pending'
    fulfillment_status: str = 'unfulfilled'


@dataclass(frozen=True)
class OrderBundle:
    """Everything the persistence layer writes for one placed order."""
    order: Order
    order_items: Tuple[OrderItem, ...]
    order_discount: Optional[OrderDiscount] = None
    order_item_discounts: Tuple[OrderItemDiscount, ...] = field(default_factory=tuple)
