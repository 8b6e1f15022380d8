from decimal import Decimal

from cafe_orders import create_app, db
from cafe_orders.models import Extra, MenuItem, menu_item_cafes

ALL_CAFES = ["raysdiner", "lovesgrove", "cosmiccafe"]

extras = [
    dict(name="Extra Cheese", price=Decimal("1.00")),
    dict(name="Extra Curry", price=Decimal("0.80")),
    dict(name="Extra Chilli", price=Decimal("1.00")),
    dict(name="Caramel Syrup", price=Decimal("0.50")),
    dict(name="Vanilla Syrup", price=Decimal("0.50")),
    dict(name="Large Size", price=Decimal("0.70")),
]

menu = [
    dict(name="Cheese Burger", price=Decimal("6.50"), cafes=["raysdiner", "lovesgrove"], extras=[]),
    dict(name="Egg Sausage Bap", price=Decimal("5.50"), cafes=["raysdiner"], extras=[]),
    dict(name="Chicken Burger", price=Decimal("6.60"), cafes=["lovesgrove", "cosmiccafe"], extras=[]),
    dict(name="Chips", price=Decimal("3.00"), cafes=ALL_CAFES, extras=["Extra Cheese", "Extra Curry", "Extra Chilli"]),
    dict(name="Latte", price=Decimal("3.20"), cafes=ALL_CAFES, extras=["Caramel Syrup", "Vanilla Syrup", "Large Size"]),
]

if __name__ == '__main__':
    app = create_app()
    with app.app_context():
        extras_by_name = {}
        for e in extras:
            extra = Extra(**e)
            db.session.add(extra)
            extras_by_name[extra.name] = extra

        for m in menu:
            item = MenuItem(name=m["name"], price=m["price"])
            item.extras = [extras_by_name[name] for name in m["extras"]]
            db.session.add(item)
            db.session.flush()
            db.session.execute(
                menu_item_cafes.insert(),
                [{"menu_item_id": item.id, "cafe_slug": slug} for slug in m["cafes"]],
            )
        db.session.commit()
        print("Seeded sample catalog.")
