"""Snapshot of an order with its line items and extras."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from . import db
from .errors import NotFound
from .models import Order, OrderItem, OrderStatus


def to_money(value):
    """Coerce a stored price to Decimal; anything missing or non-finite is 0."""
    if value is None:
        return Decimal("0")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not amount.is_finite():
        return Decimal("0")
    return amount


def _iso(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


@dataclass
class LineExtra:
    id: int
    extra_id: Optional[int]
    extra_name: str
    extra_price: Decimal

    def to_dict(self):
        return {
            "id": self.id,
            "extra_id": self.extra_id,
            "extra_name": self.extra_name,
            "extra_price": float(self.extra_price),
        }


@dataclass
class LineItem:
    id: int
    menu_item_id: Optional[int]
    quantity: int
    item_name: str
    item_price: Decimal
    extras: List[LineExtra] = field(default_factory=list)

    def to_dict(self):
        return {
            "id": self.id,
            "menu_item_id": self.menu_item_id,
            "quantity": self.quantity,
            "item_name": self.item_name,
            "item_price": float(self.item_price),
            "extras": [extra.to_dict() for extra in self.extras],
        }


@dataclass
class OrderAggregate:
    id: int
    order_number: str
    cafe_slug: str
    customer_name: str
    customer_email: Optional[str]
    table_number: Optional[str]
    order_date: date
    order_sequence: int
    status: str
    created_at: datetime
    items: List[LineItem] = field(default_factory=list)

    def to_dict(self):
        return {
            "id": self.id,
            "order_number": self.order_number,
            "cafe_slug": self.cafe_slug,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "table_number": self.table_number,
            "order_date": _iso(self.order_date),
            "order_sequence": self.order_sequence,
            "status": self.status,
            "created_at": _iso(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


def build_order_aggregate(order, items=None):
    """Assemble the snapshot for ``order``.

    ``items`` defaults to the order's own line items. Items and their extras
    come back in ascending id order; no totals are computed here.
    """
    if items is None:
        items = getattr(order, "items", None)

    lines = []
    for item in sorted(items or [], key=lambda row: row.id):
        extras = sorted(getattr(item, "extras", None) or [], key=lambda row: row.id)
        lines.append(LineItem(
            id=item.id,
            menu_item_id=item.menu_item_id,
            quantity=int(item.quantity or 0),
            item_name=item.item_name,
            item_price=to_money(item.item_price),
            extras=[
                LineExtra(
                    id=extra.id,
                    extra_id=extra.extra_id,
                    extra_name=extra.extra_name,
                    extra_price=to_money(extra.extra_price),
                )
                for extra in extras
            ],
        ))

    status = order.status.value if isinstance(order.status, OrderStatus) else str(order.status)
    return OrderAggregate(
        id=order.id,
        order_number=order.order_number,
        cafe_slug=order.cafe_slug,
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        table_number=order.table_number,
        order_date=order.order_date,
        order_sequence=order.order_sequence,
        status=status,
        created_at=order.created_at,
        items=lines,
    )


def _with_lines(query):
    return query.options(selectinload(Order.items).selectinload(OrderItem.extras))


def load_order_aggregate(order_id):
    order = db.session.execute(
        _with_lines(select(Order)).where(Order.id == order_id)
    ).scalar_one_or_none()
    if order is None:
        raise NotFound("Order not found")
    return build_order_aggregate(order)


def load_order_aggregates(cafe_slug=None, include_completed=True):
    """Orders newest first, optionally for one cafe and without completed ones."""
    query = _with_lines(select(Order))
    if cafe_slug:
        query = query.where(Order.cafe_slug == cafe_slug)
    if not include_completed:
        query = query.where(Order.status != OrderStatus.COMPLETED.value)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return [build_order_aggregate(order) for order in db.session.execute(query).scalars()]
