import pytest
from datetime import datetime, timedelta
from decimal import Decimal
import itertools

from marketplace import create_app
from marketplace.database import Base, create_schema, get_session
from marketplace.domain import (
    CartItem, Discount, DiscountTarget, DiscountValueType, DiscountOwnerType,
    CustomerEligibilityType
)
from marketplace import models


NOW = datetime(2025, 6, 15, 12, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestingConfig')
    with app.app_context():
        create_schema()
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session, emptied after each test."""
    session = get_session()
    yield session
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.remove()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_item():
    """Factory for cart items with sequential ids."""
    counter = itertools.count(1)

    def _make(price='10.00', quantity=1, store_id='S1', listing_id=None, **kwargs):
        n = next(counter)
        return CartItem(
            id=kwargs.pop('id', f'ci-{n}'),
            listing_id=listing_id or f'L{n}',
            store_id=store_id,
            price=Decimal(str(price)),
            quantity=quantity,
            name=kwargs.pop('name', f'Product {n}'),
            **kwargs
        )
    return _make


@pytest.fixture
def make_discount():
    """Factory for admin discounts targeting all products."""
    counter = itertools.count(1)

    def _make(value='10', value_type=DiscountValueType.PERCENTAGE, targets=None, **kwargs):
        n = next(counter)
        return Discount(
            id=kwargs.pop('id', f'd-{n}'),
            name=kwargs.pop('name', f'Discount {n}'),
            value_type=value_type,
            value=Decimal(str(value)),
            targets=targets if targets is not None else (DiscountTarget.all_products(),),
            **kwargs
        )
    return _make


@pytest.fixture
def saved_discount(session):
    """Persist a domain Discount and return it."""
    def _save(discount, created_at=None):
        row = models.Discount.from_domain(discount)
        if created_at is not None:
            row.created_at = created_at
        session.add(row)
        session.commit()
        return discount
    return _save


@pytest.fixture
def seller_discount(make_discount):
    return make_discount(
        value='20',
        owner_type=DiscountOwnerType.SELLER,
        owner_id='S1'
    )


@pytest.fixture
def vip_discount(make_discount):
    return make_discount(
        value='15',
        customer_eligibility=CustomerEligibilityType.SPECIFIC,
        eligible_customer_ids=frozenset({'cust-vip'})
    )


@pytest.fixture
def expired_discount(make_discount):
    return make_discount(value='50', ends_at=NOW - timedelta(days=1))
