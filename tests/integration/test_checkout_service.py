"""
Integration tests for the checkout service (database backed).
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from marketplace import models
from marketplace.domain import DiscountTarget, DiscountValueType
from marketplace.exceptions import BusinessLogicError, DiscountUsageLimitError, NotFoundError
from marketplace.services import checkout_service
from marketplace.services.discount_eligibility_service import REASON_NO_ITEMS, REASON_NOT_ELIGIBLE


class TestLoadCheckoutDiscounts:
    """Tests for loading usable discounts."""

    def test_filters_inactive_expired_and_used_up(self, session, make_discount, saved_discount, now):
        live = saved_discount(make_discount())
        saved_discount(make_discount(is_active=False))
        saved_discount(make_discount(ends_at=now - timedelta(days=1)))
        saved_discount(make_discount(starts_at=now + timedelta(days=1)))
        saved_discount(make_discount(usage_limit=3, usage_count=3))

        loaded = checkout_service.load_checkout_discounts(session, now)

        assert [d.id for d in loaded] == [live.id]

    def test_ordered_by_creation(self, session, make_discount, saved_discount, now):
        newer = saved_discount(make_discount(), created_at=now - timedelta(hours=1))
        older = saved_discount(make_discount(), created_at=now - timedelta(days=3))

        loaded = checkout_service.load_checkout_discounts(session, now)

        assert [d.id for d in loaded] == [older.id, newer.id]

    def test_exclusions(self, session, make_discount, saved_discount, now):
        coded = saved_discount(make_discount(code='WELCOME'))
        automatic = saved_discount(make_discount())

        assert [d.id for d in checkout_service.load_checkout_discounts(
            session, now, exclude_discount_id=coded.id)] == [automatic.id]
        assert [d.id for d in checkout_service.load_checkout_discounts(
            session, now, exclude_with_codes=True)] == [automatic.id]

    def test_loads_targets_and_customers(self, session, vip_discount, saved_discount, now):
        saved_discount(vip_discount)

        [loaded] = checkout_service.load_checkout_discounts(session, now)

        assert loaded.eligible_customer_ids == frozenset({'cust-vip'})
        assert loaded.targets == (DiscountTarget.all_products(),)


class TestGetDiscountByCode:
    """Tests for discount code lookup."""

    def test_case_insensitive(self, session, make_discount, saved_discount):
        discount = saved_discount(make_discount(code='Summer25'))
        assert checkout_service.get_discount_by_code(session, ' summer25 ').id == discount.id

    def test_unknown_code(self, session):
        with pytest.raises(NotFoundError):
            checkout_service.get_discount_by_code(session, 'NOPE')

    def test_blank_code(self, session):
        with pytest.raises(BusinessLogicError):
            checkout_service.get_discount_by_code(session, '  ')

    def test_inactive_code(self, session, make_discount, saved_discount, now):
        saved_discount(make_discount(code='OLD', is_active=False))
        with pytest.raises(NotFoundError):
            checkout_service.get_discount_by_code(session, 'OLD', now=now)

    def test_expired_code(self, session, make_discount, saved_discount, now):
        saved_discount(make_discount(code='GONE', ends_at=now - timedelta(days=30)))
        with pytest.raises(NotFoundError):
            checkout_service.get_discount_by_code(session, 'GONE', now=now)

    def test_not_started_code(self, session, make_discount, saved_discount, now):
        saved_discount(make_discount(code='SOON', starts_at=now + timedelta(days=1)))
        with pytest.raises(NotFoundError):
            checkout_service.get_discount_by_code(session, 'SOON', now=now)

    def test_code_inside_window(self, session, make_discount, saved_discount, now):
        discount = saved_discount(make_discount(
            code='LIVE', starts_at=now - timedelta(days=1), ends_at=now + timedelta(days=1)
        ))
        assert checkout_service.get_discount_by_code(session, 'LIVE', now=now).id == discount.id


class TestCheckoutEvaluation:
    """Tests for automatic discount reports and best discount."""

    def test_automatic_discounts_report(self, session, make_item, make_discount, saved_discount, seller_discount, now):
        applicable = saved_discount(make_discount(value='10', name='Ten'))
        short = saved_discount(make_discount(value='20', min_purchase_amount=Decimal('100')))
        saved_discount(seller_discount)  # reaches no item, hidden

        reports = checkout_service.get_automatic_discounts_for_checkout(
            session, [make_item(price='40', store_id='S2')], now=now
        )

        by_id = {r.discount.id: r for r in reports}
        assert set(by_id) == {applicable.id, short.id}
        assert by_id[applicable.id].can_apply is True
        assert by_id[applicable.id].total_amount == Decimal('4.00')
        assert by_id[short.id].can_apply is False
        assert by_id[short.id].missing_amount == Decimal('60.00')

    def test_best_discount(self, session, make_item, make_discount, saved_discount, now):
        fixed = saved_discount(make_discount(value='5', value_type=DiscountValueType.FIXED, name='Five off'))
        percent = saved_discount(make_discount(value='10', name='Ten percent'))
        cheap, pricey = make_item(price='10'), make_item(price='200')

        best = checkout_service.find_best_discount_for_checkout(session, [cheap, pricey], now=now)

        assert best.primary_discount.id == percent.id
        assert best.result.total_amount == Decimal('25.00')
        assert best.applied_discount_names == ['Five off', 'Ten percent']
        assert best.display_name == 'Five off, Ten percent'
        assert {d.id for d in best.applied_discounts} == {fixed.id, percent.id}

    def test_best_discount_single_name(self, session, make_item, make_discount, saved_discount, now):
        saved_discount(make_discount(name='Only one'))
        best = checkout_service.find_best_discount_for_checkout(session, [make_item()], now=now)
        assert best.display_name == 'Only one'

    def test_no_best_discount(self, session, make_item, now):
        assert checkout_service.find_best_discount_for_checkout(session, [make_item()], now=now) is None


class TestEvaluateDiscountForCheckout:
    """Tests for evaluating one chosen discount against the cart."""

    def test_applies(self, session, make_item, make_discount, saved_discount, now):
        discount = saved_discount(make_discount(value='10', code='SAVE10'))
        item = make_item(price='10', quantity=2)

        report = checkout_service.evaluate_discount_for_checkout(session, discount.id, [item], now=now)

        assert report.can_apply is True
        assert report.reason is None
        assert report.total_amount == Decimal('2.00')
        assert report.result.allocations[0].cart_item_id == item.id
        assert report.result.allocations[0].amount == Decimal('2.00')

    def test_minimum_not_met(self, session, make_item, make_discount, saved_discount, now):
        discount = saved_discount(make_discount(min_purchase_amount=Decimal('50')))

        report = checkout_service.evaluate_discount_for_checkout(
            session, discount.id, [make_item(price='40')], now=now
        )

        assert report.can_apply is False
        assert report.result is None
        assert report.missing_amount == Decimal('10.00')
        assert 'Minimum purchase' in report.reason

    def test_reaches_no_item(self, session, make_item, seller_discount, saved_discount, now):
        saved_discount(seller_discount)

        report = checkout_service.evaluate_discount_for_checkout(
            session, seller_discount.id, [make_item(store_id='S2')], now=now
        )

        assert report.can_apply is False
        assert report.reason == REASON_NO_ITEMS

    def test_customer_not_eligible(self, session, make_item, vip_discount, saved_discount, now):
        saved_discount(vip_discount)

        report = checkout_service.evaluate_discount_for_checkout(
            session, vip_discount.id, [make_item()], customer_id='cust-other', now=now
        )

        assert report.can_apply is False
        assert report.reason == REASON_NOT_ELIGIBLE

    def test_usage_limit_reached(self, session, make_item, make_discount, saved_discount, now):
        discount = saved_discount(make_discount(usage_limit=1, usage_count=1))

        report = checkout_service.evaluate_discount_for_checkout(session, discount.id, [make_item()], now=now)

        assert report.can_apply is False
        assert report.reason == checkout_service.REASON_USAGE_LIMIT

    def test_unknown_discount(self, session, make_item, now):
        with pytest.raises(NotFoundError):
            checkout_service.evaluate_discount_for_checkout(session, 'missing', [make_item()], now=now)


class TestPlaceOrder:
    """Tests for placing orders."""

    def test_persists_bundle_and_counts_usage(self, session, make_item, make_discount, saved_discount, now):
        discount = saved_discount(make_discount(value='10', usage_limit=5))

        bundle = checkout_service.place_order(
            session, [make_item(price='10', quantity=2)], 'EUR',
            discount_id=discount.id, customer_id='cust-1', now=now
        )

        order = session.query(models.Order).filter_by(id=bundle.order.id).one()
        assert order.customer_id == 'cust-1'
        assert order.subtotal_amount == Decimal('20.00')
        assert order.discount_total == Decimal('2.00')
        assert order.total_amount == Decimal('18.00')
        assert len(order.items) == 1
        assert order.items[0].line_total == Decimal('18.00')

        [snapshot] = session.query(models.OrderDiscount).all()
        assert snapshot.discount_id == discount.id
        assert snapshot.amount == Decimal('2.00')

        [item_discount] = session.query(models.OrderItemDiscount).all()
        assert item_discount.order_discount_id == snapshot.id
        assert item_discount.order_item_id == order.items[0].id
        assert item_discount.discount_id == discount.id

        assert session.get(models.Discount, discount.id).usage_count == 1

    def test_without_discount(self, session, make_item, now):
        bundle = checkout_service.place_order(session, [make_item(price='7.25')], 'EUR', now=now)

        order = session.get(models.Order, bundle.order.id)
        assert order.total_amount == Decimal('7.25')
        assert session.query(models.OrderDiscount).count() == 0

    def test_not_applied_discount_keeps_usage(self, session, make_item, seller_discount, saved_discount, now):
        saved_discount(seller_discount)

        bundle = checkout_service.place_order(
            session, [make_item(store_id='S2')], 'EUR', discount_id=seller_discount.id, now=now
        )

        assert bundle.order_discount is None
        assert session.get(models.Discount, seller_discount.id).usage_count == 0

    def test_usage_limit_reached(self, session, make_item, make_discount, saved_discount, now):
        discount = saved_discount(make_discount(usage_limit=1, usage_count=1))

        with pytest.raises(DiscountUsageLimitError):
            checkout_service.place_order(session, [make_item()], 'EUR', discount_id=discount.id, now=now)

        assert session.query(models.Order).count() == 0

    def test_unknown_discount(self, session, make_item, now):
        with pytest.raises(NotFoundError):
            checkout_service.place_order(session, [make_item()], 'EUR', discount_id='missing', now=now)

    def test_empty_cart(self, session):
        with pytest.raises(BusinessLogicError):
            checkout_service.place_order(session, [], 'EUR')

    def test_missing_currency(self, session, make_item):
        with pytest.raises(BusinessLogicError):
            checkout_service.place_order(session, [make_item()], '')


class TestParseCartItems:
    """Tests for request cart parsing."""

    def test_valid(self):
        [item] = checkout_service.parse_cart_items([
            {'id': 'c1', 'listing_id': 'L1', 'store_id': 'S1', 'price': '9.99', 'quantity': 2}
        ])
        assert item.price == Decimal('9.99')
        assert item.line_subtotal == Decimal('19.98')

    @pytest.mark.parametrize('raw', [
        None,
        ['not-an-object'],
        [{'listing_id': 'L1', 'price': 1, 'quantity': 1}],
        [{'id': 'c1', 'listing_id': 'L1', 'price': 'abc', 'quantity': 1}],
        [{'id': 'c1', 'listing_id': 'L1', 'price': -1, 'quantity': 1}],
        [{'id': 'c1', 'listing_id': 'L1', 'price': 1, 'quantity': 0}],
        [{'id': 'c1', 'listing_id': 'L1', 'price': 1, 'quantity': True}],
    ])
    def test_invalid(self, raw):
        with pytest.raises(BusinessLogicError):
            checkout_service.parse_cart_items(raw)
