"""Checkout blueprint - discount preview and order placement (JSON)."""
from flask import Blueprint, current_app, jsonify, request
from marketplace.database import get_session
from marketplace.domain import Discount, OrderBundle, OrderDiscountResult
from marketplace.exceptions import BusinessLogicError
from marketplace.services import checkout_service
from marketplace.services.discount_eligibility_service import DiscountEligibility
from marketplace.utils.money import format_money

checkout_bp = Blueprint('checkout', __name__, url_prefix='/checkout')


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BusinessLogicError('Request body must be a JSON object')
    return data


def _result_to_dict(result: OrderDiscountResult) -> dict:
    return {
        'discount_id': result.discount_id,
        'total_amount': format_money(result.total_amount),
        'allocations': [
            {
                'cart_item_id': a.cart_item_id,
                'discount_id': a.discount_id,
                'amount': format_money(a.amount)
            }
            for a in result.allocations
        ]
    }


def _discount_to_dict(discount: Discount) -> dict:
    return {
        'id': discount.id,
        'name': discount.name,
        'code': discount.code,
        'value_type': discount.value_type.value,
        'value': format_money(discount.value),
        'currency': discount.currency,
        'min_purchase_amount': format_money(discount.min_purchase_amount) if discount.min_purchase_amount is not None else None,
        'min_purchase_quantity': discount.min_purchase_quantity,
        'customer_eligibility_type': discount.customer_eligibility.value
    }


def _eligibility_to_dict(report: DiscountEligibility) -> dict:
    data = _discount_to_dict(report.discount)
    data['evaluation'] = {
        'can_apply': report.can_apply,
        'total_amount': format_money(report.total_amount),
        'reason': report.reason,
        'missing_amount': format_money(report.missing_amount) if report.missing_amount is not None else None,
        'missing_quantity': report.missing_quantity
    }
    return data


def _bundle_to_dict(bundle: OrderBundle) -> dict:
    order = bundle.order
    return {
        'id': order.id,
        'customer_id': order.customer_id,
        'currency': order.currency,
        'status': order.status,
        'subtotal': format_money(order.subtotal),
        'discount_total': format_money(order.discount_total),
        'tax_total': format_money(order.tax_total),
        'total': format_money(order.total),
        'discount_id': bundle.order_discount.discount_id if bundle.order_discount else None,
        'items': [
            {
                'id': item.id,
                'cart_item_id': item.cart_item_id,
                'listing_id': item.listing_id,
                'quantity': item.quantity,
                'unit_price': format_money(item.unit_price),
                'subtotal': format_money(item.subtotal),
                'discount_amount': format_money(item.discount_amount),
                'line_total': format_money(item.line_total)
            }
            for item in bundle.order_items
        ]
    }


@checkout_bp.route('/discounts/automatic', methods=['POST'])
def automatic_discounts():
    """List discounts touching the cart with their eligibility."""
    data = _json_body()
    items = checkout_service.parse_cart_items(data.get('items'))
    reports = checkout_service.get_automatic_discounts_for_checkout(
        get_session(), items, customer_id=data.get('customer_id')
    )
    return jsonify({
        'status': 'ok',
        'discounts': [_eligibility_to_dict(r) for r in reports]
    })


@checkout_bp.route('/discounts/best', methods=['POST'])
def best_discount():
    """Best discount per cart item (no stacking)."""
    data = _json_body()
    items = checkout_service.parse_cart_items(data.get('items'))
    exclude_with_codes = data.get(
        'exclude_with_codes',
        current_app.config.get('AUTO_APPLY_EXCLUDES_CODED_DISCOUNTS', False)
    )

    best = checkout_service.find_best_discount_for_checkout(
        get_session(),
        items,
        customer_id=data.get('customer_id'),
        exclude_discount_id=data.get('exclude_discount_id'),
        exclude_with_codes=bool(exclude_with_codes)
    )
    if best is None:
        return jsonify({'status': 'ok', 'best_discount': None})

    payload = _discount_to_dict(best.primary_discount)
    payload.update(_result_to_dict(best.result))
    payload['display_name'] = best.display_name
    payload['applied_discount_names'] = best.applied_discount_names
    return jsonify({'status': 'ok', 'best_discount': payload})


@checkout_bp.route('/discounts/code/<code>', methods=['GET'])
def discount_by_code(code):
    """Discount details for a code typed at checkout."""
    discount = checkout_service.get_discount_by_code(get_session(), code)
    return jsonify({'status': 'ok', 'discount': _discount_to_dict(discount)})


@checkout_bp.route('/discounts/<discount_id>/evaluate', methods=['POST'])
def evaluate_discount(discount_id):
    """Whether and how much one chosen discount takes off the cart."""
    data = _json_body()
    items = checkout_service.parse_cart_items(data.get('items'))
    report = checkout_service.evaluate_discount_for_checkout(
        get_session(), discount_id, items, customer_id=data.get('customer_id')
    )

    payload = _eligibility_to_dict(report)
    payload['allocations'] = _result_to_dict(report.result)['allocations'] if report.result else []
    return jsonify({'status': 'ok', 'discount': payload})


@checkout_bp.route('/orders', methods=['POST'])
def create_order():
    """Place an order with at most one discount."""
    data = _json_body()
    items = checkout_service.parse_cart_items(data.get('items'))
    currency = data.get('currency') or current_app.config.get('DEFAULT_CURRENCY', 'EUR')

    bundle = checkout_service.place_order(
        get_session(),
        items,
        currency=currency,
        discount_id=data.get('discount_id'),
        customer_id=data.get('customer_id')
    )
    return jsonify({'status': 'ok', 'order': _bundle_to_dict(bundle)}), 201
