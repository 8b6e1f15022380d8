from functools import wraps
from hmac import compare_digest

from flask import Blueprint, current_app, request, jsonify

from ..aggregates import load_order_aggregate, load_order_aggregates
from ..errors import CafeOrderError, ValidationError
from ..numbering import utc_today
from ..reports import build_report, parse_report_date, render_receipt_text, report_to_json, save_receipt
from ..services import create_order, normalize_cafe_slug
from ..status import STATUS_FLOW, transition

api_bp = Blueprint('api', __name__)


class Unauthorized(CafeOrderError):
    status_code = 401
    message = "Staff token missing or invalid"


def staff_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        expected = current_app.config.get("STAFF_API_TOKEN")
        if expected:
            header = request.headers.get("Authorization", "")
            token = header[len("Bearer "):] if header.startswith("Bearer ") else ""
            if not token or not compare_digest(token, expected):
                raise Unauthorized()
        return view(*args, **kwargs)
    return wrapper


def _cafe_filter():
    cafe_slug = request.args.get('cafe_slug')
    return normalize_cafe_slug(cafe_slug) if cafe_slug else None


@api_bp.post('/orders')
def place_order():
    data = request.get_json(force=True, silent=True) or {}
    order, receipt = create_order(
        cafe_slug=data.get('cafe_slug'),
        customer_name=data.get('customer_name'),
        items=data.get('items'),
        customer_email=data.get('customer_email'),
        table_number=data.get('table_number'),
    )
    payload = order.to_dict()
    payload["receipt"] = receipt
    return jsonify(payload), 201


@api_bp.get('/orders/public')
def list_public_orders():
    orders = load_order_aggregates(_cafe_filter(), include_completed=False)
    return jsonify([o.to_dict() for o in orders])


@api_bp.get('/orders')
@staff_required
def list_orders():
    orders = load_order_aggregates(_cafe_filter())
    return jsonify([o.to_dict() for o in orders])


@api_bp.get('/orders/end-of-day/report')
@staff_required
def end_of_day_report():
    report_date = parse_report_date(request.args.get('date') or utc_today().isoformat())
    cafe_slug = _cafe_filter()

    report = build_report(report_date, cafe_slug)
    receipt_text = render_receipt_text(report, current_app.config["CAFE_LABELS"])
    payload = report_to_json(report)
    payload["receipt_text"] = receipt_text
    payload["saved_receipt"] = save_receipt(report_date, cafe_slug or "all-cafes", receipt_text)
    return jsonify(payload)


@api_bp.get('/orders/<int:order_id>')
def get_order(order_id):
    return jsonify(load_order_aggregate(order_id).to_dict())


@api_bp.route('/orders/<int:order_id>/status', methods=['PATCH', 'PUT'])
@staff_required
def update_status(order_id):
    data = request.get_json(force=True, silent=True) or {}
    status = data.get('status')
    if status not in STATUS_FLOW:
        raise ValidationError("Invalid status")
    return jsonify(transition(order_id, status).to_dict())
