"""
Customer e-mail notifications: the receipt sent after an order is placed and
the "ready for collection" message. Both are best effort; nothing here may
fail the order operation that triggered it.
"""

import smtplib
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from decimal import Decimal
from email.message import EmailMessage
from functools import partial
from typing import Optional

from flask import current_app

from .errors import NotificationFailure

EXTENSION_KEY = "cafe_orders.notifier"


@dataclass(frozen=True)
class NotificationResult:
    sent: bool
    reason: Optional[str] = None


def _format_currency(value):
    return f"${float(value or 0):.2f}"


def _line_total(item):
    extras_per_unit = sum((extra.extra_price for extra in item.extras), Decimal("0"))
    return (item.item_price + extras_per_unit) * item.quantity


def build_receipt_text(order, cafe_label):
    lines = [
        f"{cafe_label} Receipt",
        f"Order: {order.order_number}",
        f"Customer: {order.customer_name}",
        f"Email: {order.customer_email or '-'}",
        f"Placed At: {order.created_at:%Y-%m-%d %H:%M}",
        "",
        "Items:",
    ]
    total = Decimal("0")
    for item in order.items:
        line_total = _line_total(item)
        total += line_total
        lines.append(f"- {item.item_name} x{item.quantity} = {_format_currency(line_total)}")
        if item.extras:
            lines.append("  Extras: " + ", ".join(extra.extra_name for extra in item.extras))
    lines.append("")
    lines.append(f"Total: {_format_currency(total)}")
    lines.append("Thank you for your order.")
    return "\n".join(lines)


def build_ready_text(order, cafe_label):
    return "\n".join([
        f"{cafe_label} Update",
        "",
        f"Hi {order.customer_name or 'Customer'},",
        f"Your order {order.order_number} is ready for collection.",
        "",
        "Please head to the collection counter.",
        "Thank you.",
    ])


class SmtpNotifier:
    """Sends plain-text mail through the SMTP server named in the config."""

    def __init__(self, config):
        self.enabled = config.get("RECEIPTS_ENABLED", True)
        self.host = config.get("SMTP_HOST")
        self.port = config.get("SMTP_PORT")
        self.user = config.get("SMTP_USER")
        self.password = config.get("SMTP_PASS")
        self.secure = config.get("SMTP_SECURE", False)
        self.sender = config.get("SMTP_FROM") or self.user
        self.cafe_labels = config.get("CAFE_LABELS", {})

    @property
    def configured(self):
        return bool(self.host and self.port and self.user and self.password)

    def notify_receipt(self, order):
        label = self.cafe_labels.get(order.cafe_slug, "Cafe")
        return self._send(
            order,
            f"{label} Receipt - Order {order.order_number}",
            build_receipt_text(order, label),
        )

    def notify_ready(self, order):
        label = self.cafe_labels.get(order.cafe_slug, "Cafe")
        return self._send(
            order,
            f"{label} - Your Order {order.order_number} Is Ready",
            build_ready_text(order, label),
        )

    def _send(self, order, subject, body):
        if not self.enabled or not order.customer_email:
            return NotificationResult(sent=False, reason="disabled_or_no_email")
        if not self.configured:
            return NotificationResult(sent=False, reason="smtp_not_configured")

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = order.customer_email
        message["Subject"] = subject
        message.set_content(body)

        smtp_class = smtplib.SMTP_SSL if self.secure else smtplib.SMTP
        try:
            with smtp_class(self.host, self.port, timeout=10) as smtp:
                smtp.login(self.user, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationFailure(f"SMTP delivery to {order.customer_email} failed: {exc}") from exc
        return NotificationResult(sent=True)


class NotificationDispatcher:
    """Owns the notifier and the worker pools it runs on.

    Receipts get their own pool so a backlog of ready notices can never hold
    up the receipt a new order is waiting on.
    """

    def __init__(self, notifier, receipt_workers=4, ready_workers=4):
        self.notifier = notifier
        self.receipt_executor = ThreadPoolExecutor(max_workers=receipt_workers, thread_name_prefix="notify-receipt")
        self.ready_executor = ThreadPoolExecutor(max_workers=ready_workers, thread_name_prefix="notify-ready")

    def shutdown(self, wait=True):
        self.receipt_executor.shutdown(wait=wait, cancel_futures=not wait)
        self.ready_executor.shutdown(wait=wait, cancel_futures=not wait)


def init_notifier(app, notifier=None):
    app.extensions[EXTENSION_KEY] = NotificationDispatcher(
        notifier or SmtpNotifier(app.config),
        receipt_workers=app.config["NOTIFY_RECEIPT_WORKERS"],
        ready_workers=app.config["NOTIFY_READY_WORKERS"],
    )


def shutdown_notifier(app, wait=True):
    dispatcher = app.extensions.pop(EXTENSION_KEY, None)
    if dispatcher is not None:
        dispatcher.shutdown(wait=wait)


def get_dispatcher():
    return current_app.extensions[EXTENSION_KEY]


def get_notifier():
    return get_dispatcher().notifier


def deliver_with_deadline(send, order, timeout, executor=None):
    """Run ``send(order)`` on a worker thread, giving up after ``timeout`` seconds.

    A send still queued at the deadline is cancelled so it never goes out
    after being reported as timed out.
    """
    executor = executor or get_dispatcher().receipt_executor
    future = executor.submit(send, order)
    try:
        result = future.result(timeout=timeout)
    except FutureTimeout:
        cancelled = future.cancel()
        current_app.logger.warning(
            "Notification for order %s abandoned after %ss (%s)",
            order.id, timeout, "cancelled" if cancelled else "still running",
        )
        return NotificationResult(sent=False, reason="timeout")
    except Exception:
        current_app.logger.warning("Notification for order %s failed", order.id, exc_info=True)
        return NotificationResult(sent=False, reason="send_failed")
    return result


def send_receipt(order):
    """Receipt summary for the create-order response: requested/sent/reason."""
    if not order.customer_email:
        return {"requested": False, "sent": False, "reason": "no_email"}
    result = deliver_with_deadline(
        get_notifier().notify_receipt, order, current_app.config["RECEIPT_TIMEOUT_SECONDS"]
    )
    return {"requested": True, "sent": bool(result.sent), "reason": result.reason}


def _log_ready_outcome(logger, order_id, future):
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.warning("Ready notice for order %s failed: %s", order_id, exc)
    elif not future.result().sent:
        logger.info("Ready notice for order %s not sent: %s", order_id, future.result().reason)


def send_ready(order):
    """Fire and forget; the returned future is only useful to tests."""
    logger = current_app.logger
    dispatcher = get_dispatcher()
    future = dispatcher.ready_executor.submit(dispatcher.notifier.notify_ready, order)
    future.add_done_callback(partial(_log_ready_outcome, logger, order.id))
    return future
