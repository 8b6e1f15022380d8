"""
Order Service

Placing orders: input normalisation, catalog checks, number allocation and
the write of the order with its line items as a single unit.
"""

import re
from dataclasses import dataclass, field
from typing import List

from flask import current_app

from . import db
from .aggregates import load_order_aggregate
from .catalog import lookup_item_extras, lookup_menu_items
from .errors import ValidationError
from .events import broadcast, order_created
from .models import Order, OrderItem, OrderItemExtra, OrderStatus
from .notifications import send_receipt
from .numbering import insert_with_number

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class LineRequest:
    menu_item_id: int
    quantity: int
    extra_ids: List[int] = field(default_factory=list)


def _positive_int(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None


def normalize_cafe_slug(value):
    cafe_slug = str(value or "").strip().lower()
    if cafe_slug not in current_app.config["CAFE_SLUGS"]:
        raise ValidationError("Invalid cafe slug")
    return cafe_slug


def normalize_email(value):
    email = str(value or "").strip().lower()
    if not email:
        return None
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid customer email")
    return email


def normalize_lines(raw_lines):
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("At least one item is required")

    lines = []
    for raw in raw_lines:
        if not isinstance(raw, dict):
            raise ValidationError("Invalid order items")

        menu_item_id = _positive_int(raw.get("menu_item_id"))
        quantity = _positive_int(raw.get("quantity"))
        if menu_item_id is None or quantity is None:
            raise ValidationError("Invalid order items")

        raw_extras = raw.get("extra_ids") or []
        if not isinstance(raw_extras, list):
            raise ValidationError("Invalid order items")
        extra_ids = [_positive_int(extra_id) for extra_id in raw_extras]
        if None in extra_ids or len(set(extra_ids)) != len(extra_ids):
            raise ValidationError(f"Invalid extras for menu item {menu_item_id}")

        lines.append(LineRequest(menu_item_id=menu_item_id, quantity=quantity, extra_ids=extra_ids))
    return lines


def create_order(cafe_slug, customer_name, items, customer_email=None, table_number=None):
    """
    Place an order.

    Args:
        cafe_slug: Cafe the order is for
        customer_name: Required display name
        items: List of dicts with menu_item_id, quantity and optional extra_ids
        customer_email: Optional address for the receipt
        table_number: Optional table reference

    Returns:
        (OrderAggregate, receipt summary dict)

    Raises:
        ValidationError: bad input or items/extras not offered for this cafe
        CapacityExhausted: every daily number for the cafe is taken
    """
    cafe_slug = normalize_cafe_slug(cafe_slug)
    customer_name = str(customer_name or "").strip()
    if not customer_name:
        raise ValidationError("Customer name is required")
    customer_email = normalize_email(customer_email)
    table_number = str(table_number).strip() if table_number is not None else ""
    table_number = table_number or None
    lines = normalize_lines(items)

    menu = lookup_menu_items(cafe_slug, [line.menu_item_id for line in lines])
    for line in lines:
        if line.menu_item_id not in menu:
            raise ValidationError(f"Menu item {line.menu_item_id} is not available for {cafe_slug}")

    extras = lookup_item_extras(
        (line.menu_item_id, extra_id) for line in lines for extra_id in line.extra_ids
    )
    for line in lines:
        if any((line.menu_item_id, extra_id) not in extras for extra_id in line.extra_ids):
            raise ValidationError(f"Invalid extras for menu item {line.menu_item_id}")

    def build(reservation):
        return Order(
            cafe_slug=cafe_slug,
            customer_name=customer_name,
            customer_email=customer_email,
            table_number=table_number,
            order_number=reservation.order_number,
            order_date=reservation.order_date,
            order_sequence=reservation.sequence,
            status=OrderStatus.PENDING.value,
        )

    try:
        order = insert_with_number(cafe_slug, build)
        for line in lines:
            entry = menu[line.menu_item_id]
            order_item = OrderItem(
                menu_item_id=entry.id,
                quantity=line.quantity,
                item_name=entry.name,
                item_price=entry.price,
            )
            for extra_id in sorted(line.extra_ids):
                extra = extras[(line.menu_item_id, extra_id)]
                order_item.extras.append(OrderItemExtra(
                    extra_id=extra.id,
                    extra_name=extra.name,
                    extra_price=extra.price,
                ))
            order.items.append(order_item)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    aggregate = load_order_aggregate(order.id)
    current_app.logger.info(
        "Order %s created for %s as number %s", aggregate.id, cafe_slug, aggregate.order_number
    )
    broadcast(order_created, order=aggregate)
    receipt = send_receipt(aggregate)
    return aggregate, receipt
