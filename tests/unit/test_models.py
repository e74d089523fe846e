"""
Unit tests for converting discount rows to engine values.
"""

from datetime import datetime
from decimal import Decimal

from marketplace import models
from marketplace.domain import CustomerEligibilityType, DiscountOwnerType, DiscountTarget


class TestDiscountModel:
    """Tests for Discount.from_domain / to_domain."""

    def test_conversion_keeps_rules(self, make_discount):
        discount = make_discount(
            value='12.50',
            code='SPRING',
            currency='EUR',
            targets=(DiscountTarget.listings('L2', 'L1'),),
            owner_type=DiscountOwnerType.SELLER,
            owner_id='S1',
            min_purchase_amount=Decimal('20'),
            min_purchase_quantity=2,
            customer_eligibility=CustomerEligibilityType.SPECIFIC,
            eligible_customer_ids=frozenset({'c2', 'c1'}),
            starts_at=datetime(2025, 1, 1),
            ends_at=datetime(2025, 12, 31),
            usage_limit=5,
            usage_count=2
        )

        row = models.Discount.from_domain(discount)

        assert row.targets[0].listing_ids == ['L1', 'L2']
        assert [c.customer_id for c in row.customers] == ['c1', 'c2']
        assert row.to_domain() == discount

    def test_all_products_target_has_no_listing_ids(self, make_discount):
        row = models.Discount.from_domain(make_discount())
        assert row.targets[0].target_type == 'all_products'
        assert row.targets[0].listing_ids is None

    def test_has_remaining_uses(self, make_discount):
        assert models.Discount.from_domain(make_discount()).has_remaining_uses is True
        assert models.Discount.from_domain(make_discount(usage_limit=2, usage_count=1)).has_remaining_uses is True
        assert models.Discount.from_domain(make_discount(usage_limit=2, usage_count=2)).has_remaining_uses is False
