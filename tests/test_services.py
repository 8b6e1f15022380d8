import threading
import time
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from cafe_orders import db, services
from cafe_orders.errors import ValidationError
from cafe_orders.events import order_created
from cafe_orders.models import MenuItem, Order, OrderItem, OrderItemExtra
from cafe_orders.notifications import NotificationResult, send_ready
from cafe_orders.services import create_order


def _count(model):
    return db.session.execute(select(func.count()).select_from(model)).scalar_one()


class TestCreateOrder:

    def test_create_order_snapshots_catalog(self, app, catalog):
        order, receipt = create_order(
            cafe_slug="raysdiner",
            customer_name="  Alex ",
            items=[
                {"menu_item_id": catalog.chips, "quantity": 2, "extra_ids": [catalog.curry, catalog.cheese]},
                {"menu_item_id": catalog.latte, "quantity": 1},
            ],
            table_number=" 12 ",
        )

        assert order.order_number == "01"
        assert order.order_sequence == 1
        assert order.status == "Pending"
        assert order.customer_name == "Alex"
        assert order.table_number == "12"
        assert order.customer_email is None
        assert receipt == {"requested": False, "sent": False, "reason": "no_email"}

        chips, latte = order.items
        assert (chips.item_name, chips.item_price, chips.quantity) == ("Chips", Decimal("3.00"), 2)
        assert [e.extra_name for e in chips.extras] == ["Extra Cheese", "Extra Curry"]
        assert (latte.item_name, latte.item_price, latte.extras) == ("Latte", Decimal("3.20"), [])

    def test_numbers_follow_on(self, app, catalog):
        first, _ = create_order("raysdiner", "A", [{"menu_item_id": catalog.chips, "quantity": 1}])
        second, _ = create_order("raysdiner", "B", [{"menu_item_id": catalog.chips, "quantity": 1}])
        other, _ = create_order("lovesgrove", "C", [{"menu_item_id": catalog.chips, "quantity": 1}])
        assert (first.order_number, second.order_number, other.order_number) == ("01", "02", "01")

    def test_slug_and_email_are_normalised(self, app, catalog, notifier):
        order, receipt = create_order(
            " RaysDiner ", "Alex", [{"menu_item_id": catalog.bap, "quantity": 1}],
            customer_email=" Alex@Example.COM ",
        )
        assert order.cafe_slug == "raysdiner"
        assert order.customer_email == "alex@example.com"
        assert receipt == {"requested": True, "sent": True, "reason": None}
        assert [o.id for o in notifier.receipts] == [order.id]

    def test_price_change_does_not_touch_existing_order(self, app, catalog):
        order, _ = create_order("raysdiner", "Alex", [{"menu_item_id": catalog.bap, "quantity": 1}])

        db.session.get(MenuItem, catalog.bap).price = Decimal("7.00")
        db.session.commit()

        stored = db.session.get(OrderItem, order.items[0].id)
        assert stored.item_price == Decimal("5.00")

    def test_extra_not_associated_with_item_is_rejected(self, app, catalog):
        # Caramel Syrup exists but only belongs to the latte
        with pytest.raises(ValidationError):
            create_order("raysdiner", "Alex", [
                {"menu_item_id": catalog.chips, "quantity": 1, "extra_ids": [catalog.syrup]},
            ])
        assert _count(Order) == 0

    def test_item_not_offered_at_cafe(self, app, catalog):
        with pytest.raises(ValidationError) as excinfo:
            create_order("lovesgrove", "Alex", [{"menu_item_id": catalog.bap, "quantity": 1}])
        assert "not available for lovesgrove" in excinfo.value.message

    def test_unavailable_item(self, app, catalog):
        with pytest.raises(ValidationError):
            create_order("raysdiner", "Alex", [{"menu_item_id": catalog.retired, "quantity": 1}])

    @pytest.mark.parametrize("line", [
        {"quantity": 1},
        {"menu_item_id": "abc", "quantity": 1},
        {"menu_item_id": 1, "quantity": 0},
        {"menu_item_id": 1, "quantity": -2},
        {"menu_item_id": 1, "quantity": True},
        {"menu_item_id": 1, "quantity": 1, "extra_ids": [0]},
        {"menu_item_id": 1, "quantity": 1, "extra_ids": ["x"]},
        {"menu_item_id": 1, "quantity": 1, "extra_ids": [2, 2]},
        {"menu_item_id": 1, "quantity": 1, "extra_ids": 2},
        "chips",
    ])
    def test_invalid_lines(self, app, catalog, line):
        with pytest.raises(ValidationError):
            create_order("raysdiner", "Alex", [line])

    @pytest.mark.parametrize("kwargs", [
        dict(cafe_slug="nowhere"),
        dict(cafe_slug=None),
        dict(customer_name="   "),
        dict(items=[]),
        dict(items=None),
        dict(customer_email="not-an-email"),
    ])
    def test_invalid_request(self, app, catalog, kwargs):
        request = dict(cafe_slug="raysdiner", customer_name="Alex",
                       items=[{"menu_item_id": catalog.chips, "quantity": 1}])
        request.update(kwargs)
        with pytest.raises(ValidationError):
            create_order(**request)

    def test_failure_after_insert_rolls_back_everything(self, app, catalog, monkeypatch):
        def broken_item(**kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(services, "OrderItem", broken_item)
        with pytest.raises(RuntimeError):
            create_order("raysdiner", "Alex", [{"menu_item_id": catalog.chips, "quantity": 1}])
        assert _count(Order) == 0
        assert _count(OrderItemExtra) == 0

        monkeypatch.undo()
        order, _ = create_order("raysdiner", "Alex", [{"menu_item_id": catalog.chips, "quantity": 1}])
        assert order.order_sequence == 1

    def test_created_order_is_broadcast(self, app, catalog):
        received = []

        def receiver(sender, order):
            received.append(order.order_number)

        with order_created.connected_to(receiver, app):
            create_order("raysdiner", "Alex", [{"menu_item_id": catalog.chips, "quantity": 1}])
        assert received == ["01"]

    def test_concurrent_orders_get_distinct_numbers(self, app, catalog):
        sequences = []
        errors = []
        lock = threading.Lock()

        def place(index):
            with app.app_context():
                try:
                    order, _ = create_order("raysdiner", f"Customer {index}",
                                            [{"menu_item_id": catalog.chips, "quantity": 1}])
                    with lock:
                        sequences.append(order.order_sequence)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=place, args=(index,)) for index in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert errors == []
        assert len(sequences) == 20
        assert len(set(sequences)) == 20
        assert all(1 <= sequence <= 900 for sequence in sequences)
        assert _count(Order) == 20


class TestReceipt:

    def test_failing_receipt_keeps_order(self, app, catalog, notifier):
        notifier.fail_receipt = True
        order, receipt = create_order("raysdiner", "Alex", [{"menu_item_id": catalog.chips, "quantity": 1}],
                                      customer_email="alex@example.com")
        assert receipt == {"requested": True, "sent": False, "reason": "send_failed"}
        assert db.session.get(Order, order.id) is not None

    def test_slow_receipt_is_abandoned(self, app, catalog, notifier, monkeypatch):
        app.config["RECEIPT_TIMEOUT_SECONDS"] = 0.05

        def slow_receipt(order):
            time.sleep(0.5)

        monkeypatch.setattr(notifier, "notify_receipt", slow_receipt)
        order, receipt = create_order("raysdiner", "Alex", [{"menu_item_id": catalog.chips, "quantity": 1}],
                                      customer_email="alex@example.com")
        assert receipt == {"requested": True, "sent": False, "reason": "timeout"}
        assert db.session.get(Order, order.id) is not None

    def test_receipt_not_held_up_by_ready_backlog(self, app, catalog, notifier, monkeypatch):
        release = threading.Event()
        attempted = []

        def blocked_ready(order):
            release.wait(5)
            return NotificationResult(sent=True)

        def recording_receipt(order):
            attempted.append(order.id)
            return NotificationResult(sent=True)

        monkeypatch.setattr(notifier, "notify_ready", blocked_ready)
        monkeypatch.setattr(notifier, "notify_receipt", recording_receipt)
        try:
            for index in range(app.config["NOTIFY_READY_WORKERS"] + 2):
                send_ready(SimpleNamespace(id=index))
            order, receipt = create_order("raysdiner", "Alex", [{"menu_item_id": catalog.chips, "quantity": 1}],
                                          customer_email="alex@example.com")
        finally:
            release.set()

        assert receipt == {"requested": True, "sent": True, "reason": None}
        assert attempted == [order.id]
