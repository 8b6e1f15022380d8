"""
Order status workflow.

Pending -> Preparing -> Ready -> Completed, with staff allowed to jump
straight from Pending to Ready. Re-applying the current status is accepted.
"""

from flask import current_app
from sqlalchemy import update

from . import db
from .aggregates import load_order_aggregate
from .errors import InvalidTransition, NotFound
from .events import broadcast, order_status_changed
from .models import Order, OrderStatus
from .notifications import send_ready

STATUS_FLOW = [status.value for status in OrderStatus]

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING.value: {OrderStatus.PREPARING.value, OrderStatus.READY.value},
    OrderStatus.PREPARING.value: {OrderStatus.READY.value},
    OrderStatus.READY.value: {OrderStatus.COMPLETED.value},
    OrderStatus.COMPLETED.value: set(),
}


def can_transition(current, requested):
    if not isinstance(requested, str) or not isinstance(current, str):
        return False
    if current not in ALLOWED_TRANSITIONS or requested not in ALLOWED_TRANSITIONS:
        return False
    return requested == current or requested in ALLOWED_TRANSITIONS[current]


def transition(order_id, requested):
    """Move an order to ``requested`` and return the fresh aggregate.

    The write is conditional on the status read a moment earlier, so two staff
    members racing on the same ticket cannot push it backwards.
    """
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found")

    current = order.status
    if not can_transition(current, requested):
        raise InvalidTransition(current, requested)

    if requested != current:
        result = db.session.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == current)
            .values(status=requested)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            latest = db.session.get(Order, order_id)
            raise InvalidTransition(latest.status if latest else current, requested)
    db.session.commit()

    aggregate = load_order_aggregate(order_id)
    current_app.logger.info("Order %s moved from %s to %s", order_id, current, aggregate.status)
    broadcast(order_status_changed, order=aggregate, previous_status=current)
    if aggregate.status == OrderStatus.READY.value:
        send_ready(aggregate)
    return aggregate
