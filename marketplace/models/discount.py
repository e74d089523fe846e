"""Discount models: the rule, its targets and its eligible customers."""
import uuid
from sqlalchemy import Column, String, Numeric, Integer, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base
from marketplace import domain


class Discount(Base):
    """Discount (promotional rule created by an admin or a seller)."""

    __tablename__ = 'discounts'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(String(50), nullable=False, default=domain.AMOUNT_OFF_PRODUCTS)
    name = Column(String(255), nullable=False)
    code = Column(String(100), nullable=True, index=True)
    value_type = Column(String(20), nullable=False)  # 'fixed' | 'percentage'
    value = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=True)  # Needed for fixed discounts

    usage_limit = Column(Integer, nullable=True)  # NULL = unlimited
    usage_count = Column(Integer, nullable=False, default=0, server_default='0')

    # Minimum purchase requirements (NULL = no minimum)
    min_purchase_amount = Column(Numeric(10, 2), nullable=True)
    min_purchase_quantity = Column(Integer, nullable=True)

    customer_eligibility_type = Column(String(20), nullable=False, default='all')

    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Ownership: store id when owner_type = 'seller', NULL for admin
    owner_type = Column(String(20), nullable=False, default='admin')
    owner_id = Column(String(36), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    targets = relationship('DiscountTarget', back_populates='discount', cascade='all, delete-orphan')
    customers = relationship('DiscountCustomer', back_populates='discount', cascade='all, delete-orphan')

    @property
    def has_remaining_uses(self):
        return self.usage_limit is None or (self.usage_count or 0) < self.usage_limit

    def to_domain(self) -> domain.Discount:
        """Convert the row and its targets/customers to the engine's value type."""
        return domain.Discount(
            id=self.id,
            type=self.type,
            name=self.name,
            code=self.code,
            value_type=domain.DiscountValueType(self.value_type),
            value=self.value,
            currency=self.currency,
            targets=tuple(t.to_domain() for t in self.targets),
            owner_type=domain.DiscountOwnerType(self.owner_type),
            owner_id=self.owner_id,
            is_active=bool(self.is_active),
            starts_at=self.starts_at,
            ends_at=self.ends_at,
            min_purchase_amount=self.min_purchase_amount,
            min_purchase_quantity=self.min_purchase_quantity,
            customer_eligibility=domain.CustomerEligibilityType(self.customer_eligibility_type),
            eligible_customer_ids=frozenset(c.customer_id for c in self.customers),
            usage_limit=self.usage_limit,
            usage_count=self.usage_count or 0
        )

    @classmethod
    def from_domain(cls, discount: domain.Discount) -> 'Discount':
        row = cls(
            id=discount.id,
            type=discount.type,
            name=discount.name,
            code=discount.code,
            value_type=discount.value_type.value,
            value=discount.value,
            currency=discount.currency,
            usage_limit=discount.usage_limit,
            usage_count=discount.usage_count,
            min_purchase_amount=discount.min_purchase_amount,
            min_purchase_quantity=discount.min_purchase_quantity,
            customer_eligibility_type=discount.customer_eligibility.value,
            starts_at=discount.starts_at,
            ends_at=discount.ends_at,
            is_active=discount.is_active,
            owner_type=discount.owner_type.value,
            owner_id=discount.owner_id
        )
        row.targets = [DiscountTarget.from_domain(t) for t in discount.targets]
        row.customers = [DiscountCustomer(customer_id=c) for c in sorted(discount.eligible_customer_ids)]
        return row

    def __repr__(self):
        return f"<Discount(id={self.id}, code={self.code}, {self.value_type}={self.value})>"


class DiscountTarget(Base):
    """Products a discount can reach: all products or a list of listings."""

    __tablename__ = 'discount_targets'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    discount_id = Column(String(36), ForeignKey('discounts.id', ondelete='CASCADE'), nullable=False, index=True)
    target_type = Column(String(20), nullable=False)  # 'all_products' | 'listing_ids'
    listing_ids = Column(JSON, nullable=True)  # NULL for all_products

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    discount = relationship('Discount', back_populates='targets')

    def to_domain(self) -> domain.DiscountTarget:
        return domain.DiscountTarget(
            type=domain.DiscountTargetType(self.target_type),
            listing_ids=frozenset(self.listing_ids or ())
        )

    @classmethod
    def from_domain(cls, target: domain.DiscountTarget) -> 'DiscountTarget':
        listing_ids = sorted(target.listing_ids) if target.type == domain.DiscountTargetType.LISTING_IDS else None
        return cls(target_type=target.type.value, listing_ids=listing_ids)

    def __repr__(self):
        return f"<DiscountTarget(discount_id={self.discount_id}, type={self.target_type})>"


class DiscountCustomer(Base):
    """Customer allowed to use a discount with 'specific' eligibility."""

    __tablename__ = 'discount_customers'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    discount_id = Column(String(36), ForeignKey('discounts.id', ondelete='CASCADE'), nullable=False, index=True)
    customer_id = Column(String(36), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    discount = relationship('Discount', back_populates='customers')

    def __repr__(self):
        return f"<DiscountCustomer(discount_id={self.discount_id}, customer_id={self.customer_id})>"
