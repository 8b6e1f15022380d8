"""Per-cafe daily order numbers, wrapping at MAX_ORDER_NUMBER."""

from dataclasses import dataclass
from datetime import date, datetime, timezone

from flask import current_app
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from . import db
from .errors import CapacityExhausted, TransientContention
from .models import DailyCounter


def utc_today():
    return datetime.now(timezone.utc).date()


def format_order_number(sequence):
    """Zero-pad to at least two digits: 1 -> "01", 900 -> "900"."""
    return str(sequence).zfill(2)


@dataclass(frozen=True)
class Reservation:
    order_date: date
    sequence: int

    @property
    def order_number(self):
        return format_order_number(self.sequence)


# Counter store

def ensure_counter(cafe_slug, counter_date):
    """Create the counter row at 0 unless it already exists."""
    exists = db.session.execute(
        select(DailyCounter.last_number).where(
            DailyCounter.cafe_slug == cafe_slug,
            DailyCounter.counter_date == counter_date,
        )
    ).first()
    if exists is not None:
        return
    try:
        with db.session.begin_nested():
            db.session.execute(
                insert(DailyCounter).values(cafe_slug=cafe_slug, counter_date=counter_date, last_number=0)
            )
    except IntegrityError:
        # Another request created it between the read and the insert.
        current_app.logger.debug("Counter for %s on %s created concurrently", cafe_slug, counter_date)


def read_counter(cafe_slug, counter_date):
    last_number = db.session.execute(
        select(DailyCounter.last_number).where(
            DailyCounter.cafe_slug == cafe_slug,
            DailyCounter.counter_date == counter_date,
        )
    ).scalar_one_or_none()
    if last_number is None:
        raise TransientContention(f"Daily counter for {cafe_slug} on {counter_date} is missing")
    return int(last_number)


def compare_and_set(cafe_slug, counter_date, observed, new):
    """Move the counter from ``observed`` to ``new``; False if someone else moved it first."""
    result = db.session.execute(
        update(DailyCounter)
        .where(
            DailyCounter.cafe_slug == cafe_slug,
            DailyCounter.counter_date == counter_date,
            DailyCounter.last_number == observed,
        )
        .values(last_number=new)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# Allocator

def reserve(cafe_slug, today=None):
    """Advance the cafe's counter for today and return the number it now holds.

    Raises TransientContention when the compare-and-set keeps losing to other
    writers for COUNTER_CAS_ATTEMPTS rounds.
    """
    config = current_app.config
    capacity = config["MAX_ORDER_NUMBER"]
    counter_date = today or utc_today()

    ensure_counter(cafe_slug, counter_date)
    for attempt in range(config["COUNTER_CAS_ATTEMPTS"]):
        observed = read_counter(cafe_slug, counter_date)
        candidate = (observed % capacity) + 1
        if compare_and_set(cafe_slug, counter_date, observed, candidate):
            return Reservation(order_date=counter_date, sequence=candidate)
        current_app.logger.debug(
            "Counter for %s moved past %s, retrying (attempt %s)", cafe_slug, observed, attempt + 1
        )

    raise TransientContention(f"Counter contention for {cafe_slug} did not settle")


def insert_with_number(cafe_slug, build_order, today=None):
    """Reserve a number and insert the order built for it.

    ``build_order(reservation)`` returns an unsaved Order. When the insert hits
    the uniqueness constraint (counter behind the orders table) a fresh number
    is reserved, up to ORDER_INSERT_ATTEMPTS times, after which the day is
    treated as full.
    """
    config = current_app.config
    for attempt in range(config["ORDER_INSERT_ATTEMPTS"]):
        reservation = reserve(cafe_slug, today)
        order = build_order(reservation)
        try:
            with db.session.begin_nested():
                db.session.add(order)
        except IntegrityError:
            current_app.logger.warning(
                "Order number %s already taken for %s on %s (attempt %s)",
                reservation.order_number, cafe_slug, reservation.order_date, attempt + 1,
            )
            continue
        return order

    current_app.logger.warning("No free order number left for %s", cafe_slug)
    raise CapacityExhausted(cafe_slug, config["MAX_ORDER_NUMBER"])
