import threading
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from cafe_orders import create_app, db
from cafe_orders.models import Extra, MenuItem, Order, OrderItem, OrderItemExtra, menu_item_cafes
from cafe_orders.notifications import NotificationResult, shutdown_notifier
from cafe_orders.numbering import format_order_number

ALL_CAFES = ["raysdiner", "lovesgrove", "cosmiccafe"]


class FakeNotifier:
    """Records what would have been mailed."""

    def __init__(self):
        self.receipts = []
        self.ready = []
        self.ready_event = threading.Event()
        self.fail_receipt = False
        self.fail_ready = False

    def notify_receipt(self, order):
        if self.fail_receipt:
            raise RuntimeError("smtp down")
        self.receipts.append(order)
        return NotificationResult(sent=True)

    def notify_ready(self, order):
        try:
            if self.fail_ready:
                raise RuntimeError("smtp down")
            self.ready.append(order)
            return NotificationResult(sent=True)
        finally:
            self.ready_event.set()


@pytest.fixture()
def notifier():
    return FakeNotifier()


@pytest.fixture()
def app(tmp_path, notifier):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path}/test.db",  # use sqlite for tests
        'RECEIPTS_DIR': str(tmp_path / "receipts"),
        'STAFF_API_TOKEN': None,
    }, notifier=notifier)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()
    shutdown_notifier(app, wait=False)


@pytest.fixture()
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture()
def catalog(app):
    cheese = Extra(name="Extra Cheese", price=Decimal("1.00"))
    curry = Extra(name="Extra Curry", price=Decimal("0.80"))
    syrup = Extra(name="Caramel Syrup", price=Decimal("0.50"))
    chips = MenuItem(name="Chips", price=Decimal("3.00"), extras=[cheese, curry])
    latte = MenuItem(name="Latte", price=Decimal("3.20"), extras=[syrup])
    bap = MenuItem(name="Egg Sausage Bap", price=Decimal("5.00"))
    retired = MenuItem(name="Pumpkin Pie", price=Decimal("4.00"), is_available=False)
    db.session.add_all([cheese, curry, syrup, chips, latte, bap, retired])
    db.session.flush()

    offers = [(chips.id, slug) for slug in ALL_CAFES]
    offers += [(latte.id, slug) for slug in ALL_CAFES]
    offers += [(bap.id, "raysdiner"), (retired.id, "raysdiner")]
    db.session.execute(
        menu_item_cafes.insert(),
        [{"menu_item_id": item_id, "cafe_slug": slug} for item_id, slug in offers],
    )
    db.session.commit()
    return SimpleNamespace(
        chips=chips.id, latte=latte.id, bap=bap.id, retired=retired.id,
        cheese=cheese.id, curry=curry.id, syrup=syrup.id,
    )


@pytest.fixture()
def make_order(app):
    """Insert an order row directly, bypassing numbering.

    ``lines`` is a list of (item_name, price, quantity, [extra prices]).
    """
    used = {}

    def _make(cafe_slug="raysdiner", order_date=None, status="Pending", lines=(), sequence=None):
        order_date = order_date or date(2024, 3, 1)
        if sequence is None:
            sequence = used.get((cafe_slug, order_date), 0) + 1
        used[(cafe_slug, order_date)] = max(sequence, used.get((cafe_slug, order_date), 0))

        order = Order(
            cafe_slug=cafe_slug,
            customer_name="Test Customer",
            order_number=format_order_number(sequence),
            order_date=order_date,
            order_sequence=sequence,
            status=status,
        )
        for name, price, quantity, extra_prices in lines:
            item = OrderItem(item_name=name, item_price=Decimal(price), quantity=quantity)
            for index, extra_price in enumerate(extra_prices):
                item.extras.append(OrderItemExtra(extra_name=f"Extra {index}", extra_price=Decimal(extra_price)))
            order.items.append(item)
        db.session.add(order)
        db.session.commit()
        return order.id

    return _make
