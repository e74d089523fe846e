"""Validation of "amount off products" discount definitions."""
import math
import re
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from marketplace.domain import (
    AMOUNT_OFF_PRODUCTS, CustomerEligibilityType, Discount, DiscountOwnerType,
    DiscountTarget, DiscountTargetType, DiscountValueType
)
from marketplace.exceptions import DiscountValidationError
from marketplace.utils.money import to_decimal

CODE_PATTERN = re.compile(r'^[A-Za-z0-9_-]+$')
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 120
CODE_MIN_LENGTH = 2
CODE_MAX_LENGTH = 50


def _positive_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, float) and not math.isfinite(value):
        raise DiscountValidationError(f'{field} must be a finite number', field)
    try:
        number = to_decimal(value)
    except ValueError:
        raise DiscountValidationError(f'{field} must be a number', field)
    if not number.is_finite() or number <= 0:
        raise DiscountValidationError(f'{field} must be greater than 0', field)
    return number


def _positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise DiscountValidationError(f'{field} must be a positive integer', field)
    return value


def _parse_datetime(value: Any, field: str) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise DiscountValidationError(f'{field} must be an ISO 8601 datetime', field)


def _parse_code(value: Any) -> Optional[str]:
    if value is None:
        return None
    code = str(value).strip()
    if not code:
        raise DiscountValidationError('Code cannot be empty', 'code')
    if len(code) < CODE_MIN_LENGTH or len(code) > CODE_MAX_LENGTH:
        raise DiscountValidationError(
            f'Code must be between {CODE_MIN_LENGTH} and {CODE_MAX_LENGTH} characters', 'code'
        )
    if not CODE_PATTERN.match(code):
        raise DiscountValidationError('Use letters/numbers, dash or underscore only', 'code')
    return code


def _parse_targets(value: Any) -> Tuple[DiscountTarget, ...]:
    if not isinstance(value, dict):
        raise DiscountValidationError('targets must be an object', 'targets')

    target_type = value.get('type')
    if target_type == DiscountTargetType.ALL_PRODUCTS.value:
        return (DiscountTarget.all_products(),)
    if target_type == DiscountTargetType.LISTING_IDS.value:
        listing_ids = [str(i) for i in value.get('listing_ids') or [] if str(i)]
        if not listing_ids:
            raise DiscountValidationError('Select at least one product', 'targets.listing_ids')
        return (DiscountTarget.listings(*listing_ids),)

    raise DiscountValidationError(f'Unknown target type: {target_type}', 'targets.type')


def _parse_minimum_requirement(value: Any) -> Tuple[Optional[Decimal], Optional[int]]:
    requirement = value or {'type': 'none'}
    requirement_type = requirement.get('type')

    if requirement_type == 'none':
        return None, None
    if requirement_type == 'amount':
        return _positive_decimal(requirement.get('amount'), 'minimum_requirement.amount'), None
    if requirement_type == 'quantity':
        return None, _positive_int(requirement.get('quantity'), 'minimum_requirement.quantity')

    raise DiscountValidationError(
        f'Unknown minimum requirement type: {requirement_type}', 'minimum_requirement.type'
    )


def _parse_eligibility(value: Any) -> Tuple[CustomerEligibilityType, frozenset]:
    eligibility = value or {'type': 'all'}
    eligibility_type = eligibility.get('type')

    if eligibility_type == CustomerEligibilityType.ALL.value:
        return CustomerEligibilityType.ALL, frozenset()
    if eligibility_type == CustomerEligibilityType.SPECIFIC.value:
        customer_ids = frozenset(str(i) for i in eligibility.get('customer_ids') or [] if str(i))
        if not customer_ids:
            raise DiscountValidationError('Select at least one customer', 'eligibility.customer_ids')
        return CustomerEligibilityType.SPECIFIC, customer_ids

    raise DiscountValidationError(f'Unknown eligibility type: {eligibility_type}', 'eligibility.type')


def build_discount(payload: Dict[str, Any]) -> Discount:
    """
    Validate a discount definition and build the Discount value.

    Raises:
        DiscountValidationError: on the first invalid field.
    """
    name = str(payload.get('name') or '').strip()
    if len(name) < NAME_MIN_LENGTH or len(name) > NAME_MAX_LENGTH:
        raise DiscountValidationError(
            f'Name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters', 'name'
        )

    try:
        value_type = DiscountValueType(payload.get('value_type'))
    except ValueError:
        raise DiscountValidationError('value_type must be "fixed" or "percentage"', 'value_type')

    value = _positive_decimal(payload.get('value'), 'value')
    if value_type == DiscountValueType.PERCENTAGE and value > 100:
        raise DiscountValidationError('Percentage must be between 0 and 100', 'value')

    targets = _parse_targets(payload.get('targets'))
    min_amount, min_quantity = _parse_minimum_requirement(payload.get('minimum_requirement'))
    eligibility, customer_ids = _parse_eligibility(payload.get('eligibility'))

    starts_at = _parse_datetime(payload.get('starts_at'), 'starts_at')
    ends_at = _parse_datetime(payload.get('ends_at'), 'ends_at')
    if starts_at and ends_at and ends_at < starts_at:
        raise DiscountValidationError('End date must be after start date', 'ends_at')

    usage_limit = payload.get('usage_limit')
    if usage_limit is not None:
        usage_limit = _positive_int(usage_limit, 'usage_limit')

    try:
        owner_type = DiscountOwnerType(payload.get('owner_type') or DiscountOwnerType.ADMIN.value)
    except ValueError:
        raise DiscountValidationError('owner_type must be "admin" or "seller"', 'owner_type')
    owner_id = payload.get('owner_id')
    if owner_type == DiscountOwnerType.SELLER and not owner_id:
        raise DiscountValidationError('Seller discounts require an owner_id', 'owner_id')

    currency = payload.get('currency')
    if currency is not None and len(str(currency)) != 3:
        raise DiscountValidationError('currency must be a 3-letter code', 'currency')

    return Discount(
        id=str(payload.get('id') or uuid.uuid4()),
        type=AMOUNT_OFF_PRODUCTS,
        name=name,
        code=_parse_code(payload.get('code')),
        value_type=value_type,
        value=value,
        currency=str(currency).upper() if currency else None,
        targets=targets,
        min_purchase_amount=min_amount,
        min_purchase_quantity=min_quantity,
        customer_eligibility=eligibility,
        eligible_customer_ids=customer_ids,
        starts_at=starts_at,
        ends_at=ends_at,
        usage_limit=usage_limit,
        is_active=bool(payload.get('is_active', True)),
        owner_type=owner_type,
        owner_id=str(owner_id) if owner_id else None
    )
