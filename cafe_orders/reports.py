"""
End-of-day report.

Revenue is kept in Decimal and rounded half away from zero to cents after
every accumulation step, the way a ledger would be kept by hand. Totals can
therefore differ from a single rounding at the end.
"""

import os
import re
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import select

from . import db
from .aggregates import to_money
from .errors import ValidationError
from .models import Order, OrderItem, OrderItemExtra, OrderStatus

CENT = Decimal("0.01")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TOP_ITEMS_ON_RECEIPT = 20


def round_money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_report_date(value):
    """Strict YYYY-MM-DD; anything else, or an impossible date, is rejected."""
    text = str(value or "").strip()
    if not DATE_PATTERN.match(text):
        raise ValidationError("Invalid date. Use YYYY-MM-DD.")
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise ValidationError("Invalid date. Use YYYY-MM-DD.") from None


def _line_revenues(order_ids):
    """Yield (order_id, item_name, quantity, line_revenue) per order item."""
    if not order_ids:
        return
    items = db.session.execute(
        select(OrderItem.id, OrderItem.order_id, OrderItem.item_name, OrderItem.quantity, OrderItem.item_price)
        .where(OrderItem.order_id.in_(order_ids))
        .order_by(OrderItem.id)
    ).all()

    extras_per_unit = {}
    extra_rows = db.session.execute(
        select(OrderItemExtra.order_item_id, OrderItemExtra.extra_price)
        .join(OrderItem, OrderItem.id == OrderItemExtra.order_item_id)
        .where(OrderItem.order_id.in_(order_ids))
        .order_by(OrderItemExtra.id)
    )
    for order_item_id, extra_price in extra_rows:
        extras_per_unit[order_item_id] = extras_per_unit.get(order_item_id, Decimal("0")) + to_money(extra_price)

    for item in items:
        quantity = int(item.quantity)
        unit_price = to_money(item.item_price) + extras_per_unit.get(item.id, Decimal("0"))
        yield item.order_id, item.item_name, quantity, round_money(unit_price * quantity)


def build_report(report_date, cafe_slug=None):
    query = select(Order.id, Order.cafe_slug, Order.status).where(Order.order_date == report_date)
    if cafe_slug:
        query = query.where(Order.cafe_slug == cafe_slug)
    orders = db.session.execute(query.order_by(Order.created_at, Order.id)).all()

    order_revenue = {}
    items = {}
    for order_id, item_name, quantity, revenue in _line_revenues([order.id for order in orders]):
        order_revenue[order_id] = round_money(order_revenue.get(order_id, Decimal("0")) + revenue)

        entry = items.setdefault(item_name, {"name": item_name, "quantity": 0, "revenue": Decimal("0")})
        entry["quantity"] += quantity
        entry["revenue"] = round_money(entry["revenue"] + revenue)

    status_counts = {status.value: 0 for status in OrderStatus}
    cafes = {}
    gross_revenue = Decimal("0")
    completed_revenue = Decimal("0")
    for order in orders:
        status_counts[order.status] = status_counts.get(order.status, 0) + 1
        revenue = order_revenue.get(order.id, Decimal("0"))
        completed = order.status == OrderStatus.COMPLETED.value

        gross_revenue = round_money(gross_revenue + revenue)
        if completed:
            completed_revenue = round_money(completed_revenue + revenue)

        cafe = cafes.setdefault(order.cafe_slug, {
            "cafe_slug": order.cafe_slug,
            "order_count": 0,
            "gross_revenue": Decimal("0"),
            "completed_revenue": Decimal("0"),
        })
        cafe["order_count"] += 1
        cafe["gross_revenue"] = round_money(cafe["gross_revenue"] + revenue)
        if completed:
            cafe["completed_revenue"] = round_money(cafe["completed_revenue"] + revenue)

    return {
        "report_date": report_date.isoformat(),
        "cafe_slug": cafe_slug or None,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "totals": {
            "order_count": len(orders),
            "gross_revenue": gross_revenue,
            "completed_revenue": completed_revenue,
        },
        "status_counts": status_counts,
        "cafes": sorted(cafes.values(), key=lambda cafe: cafe["cafe_slug"]),
        "items": sorted(items.values(), key=lambda item: (item["revenue"], item["quantity"]), reverse=True),
    }


def _currency(value):
    return f"${value:.2f}"


def render_receipt_text(report, cafe_labels):
    cafe_slug = report["cafe_slug"]
    lines = [
        "Woodlands End Of Day Receipt",
        f"Date: {report['report_date']}",
        f"Cafe: {cafe_labels.get(cafe_slug, cafe_slug) if cafe_slug else 'All Cafes'}",
        f"Generated At: {report['generated_at']}",
        "",
        f"Total Orders: {report['totals']['order_count']}",
        f"Gross Sales: {_currency(report['totals']['gross_revenue'])}",
        f"Completed Sales: {_currency(report['totals']['completed_revenue'])}",
        "",
        "Status Breakdown:",
    ]
    for status in OrderStatus:
        lines.append(f"- {status.value}: {report['status_counts'].get(status.value, 0)}")
    lines.append("")

    if report["cafes"]:
        lines.append("Sales By Cafe:")
        for cafe in report["cafes"]:
            label = cafe_labels.get(cafe["cafe_slug"], cafe["cafe_slug"])
            lines.append(
                f"- {label}: {cafe['order_count']} orders | Gross {_currency(cafe['gross_revenue'])}"
                f" | Completed {_currency(cafe['completed_revenue'])}"
            )
        lines.append("")

    if report["items"]:
        lines.append("Top Items:")
        for item in report["items"][:TOP_ITEMS_ON_RECEIPT]:
            lines.append(f"- {item['name']}: {item['quantity']} sold | {_currency(item['revenue'])}")
    else:
        lines.append("Top Items: No items sold.")
    return "\n".join(lines)


def _safe_segment(value, fallback):
    cleaned = re.sub(r"[^a-z0-9-]+", "-", str(value or "").strip().lower()).strip("-")
    return cleaned or fallback


def save_receipt(report_date, cafe_slug, text):
    receipts_dir = os.path.abspath(current_app.config["RECEIPTS_DIR"])
    os.makedirs(receipts_dir, exist_ok=True)
    filename = f"woodlands-eod-{report_date.isoformat()}-{_safe_segment(cafe_slug, 'all-cafes')}.txt"
    path = os.path.join(receipts_dir, filename)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(text)
    current_app.logger.info("Saved end-of-day receipt %s", path)
    return {"filename": filename, "absolute_path": path}


def report_to_json(value):
    """Decimals become floats for the JSON response."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {key: report_to_json(item) for key, item in value.items()}
    if isinstance(value, list):
        return [report_to_json(item) for item in value]
    return value
