"""Read-only catalog lookups used when an order is placed."""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select

from . import db
from .models import Extra, MenuItem, menu_item_cafes, menu_item_extras


@dataclass(frozen=True)
class CatalogEntry:
    id: int
    name: str
    price: Decimal


def lookup_menu_items(cafe_slug, menu_item_ids):
    """Items from ``menu_item_ids`` that ``cafe_slug`` currently offers, keyed by id."""
    if not menu_item_ids:
        return {}
    rows = db.session.execute(
        select(MenuItem.id, MenuItem.name, MenuItem.price)
        .join(menu_item_cafes, menu_item_cafes.c.menu_item_id == MenuItem.id)
        .where(
            menu_item_cafes.c.cafe_slug == cafe_slug,
            MenuItem.id.in_(set(menu_item_ids)),
            MenuItem.is_available.is_(True),
        )
    )
    return {row.id: CatalogEntry(row.id, row.name, row.price) for row in rows}


def lookup_item_extras(pairs):
    """Legal (menu_item_id, extra_id) pairs out of ``pairs``, mapped to the extra.

    An extra only counts for an item when the two are associated; the extra
    existing on its own is not enough.
    """
    pairs = set(pairs)
    if not pairs:
        return {}
    rows = db.session.execute(
        select(menu_item_extras.c.menu_item_id, Extra.id, Extra.name, Extra.price)
        .join(Extra, Extra.id == menu_item_extras.c.extra_id)
        .where(
            menu_item_extras.c.menu_item_id.in_({item_id for item_id, _ in pairs}),
            menu_item_extras.c.extra_id.in_({extra_id for _, extra_id in pairs}),
        )
        .order_by(Extra.id)
    )
    found = {}
    for row in rows:
        key = (row.menu_item_id, row.id)
        if key in pairs:
            found[key] = CatalogEntry(row.id, row.name, row.price)
    return found
