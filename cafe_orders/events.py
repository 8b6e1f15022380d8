"""
Order events for live consumers (kitchen screen, order board).

Receivers connect to these signals; the transport that pushes the payload to
clients lives outside this package.
"""

from flask import current_app
from flask.signals import Namespace

_signals = Namespace()

order_created = _signals.signal("order-created")  # Provides: order
order_status_changed = _signals.signal("order-status-changed")  # Provides: order, previous_status


def broadcast(signal, **payload):
    """Send without letting a failing receiver reach the caller."""
    app = current_app._get_current_object()
    for receiver in signal.receivers_for(app):
        try:
            receiver(app, **payload)
        except Exception:
            app.logger.exception("Receiver %r failed for %s", receiver, signal.name)
