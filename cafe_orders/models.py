from datetime import datetime, timezone
from enum import Enum
from . import db


def utcnow():
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PREPARING = "Preparing"
    READY = "Ready"
    COMPLETED = "Completed"


menu_item_cafes = db.Table(
    "menu_item_cafes",
    db.Column("menu_item_id", db.Integer, db.ForeignKey("menu_items.id", ondelete="CASCADE"), primary_key=True),
    db.Column("cafe_slug", db.String(40), primary_key=True),
)

menu_item_extras = db.Table(
    "menu_item_extras",
    db.Column("menu_item_id", db.Integer, db.ForeignKey("menu_items.id", ondelete="CASCADE"), primary_key=True),
    db.Column("extra_id", db.Integer, db.ForeignKey("extras.id", ondelete="CASCADE"), primary_key=True),
)


class MenuItem(db.Model):
    __tablename__ = "menu_items"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    is_available = db.Column(db.Boolean, default=True, nullable=False)
    extras = db.relationship("Extra", secondary=menu_item_extras, order_by="Extra.id")


class Extra(db.Model):
    __tablename__ = "extras"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)


class DailyCounter(db.Model):
    __tablename__ = "cafe_daily_counters"
    cafe_slug = db.Column(db.String(40), primary_key=True)
    counter_date = db.Column(db.Date, primary_key=True)
    last_number = db.Column(db.Integer, nullable=False, default=0)


class Order(db.Model):
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("cafe_slug", "order_date", "order_sequence", name="uq_orders_cafe_date_sequence"),
        db.CheckConstraint("order_sequence BETWEEN 1 AND 900", name="ck_orders_sequence_range"),
    )
    id = db.Column(db.Integer, primary_key=True)
    cafe_slug = db.Column(db.String(40), nullable=False, index=True)
    customer_name = db.Column(db.String(120), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    table_number = db.Column(db.String(20), nullable=True)
    order_number = db.Column(db.String(8), nullable=False)
    order_date = db.Column(db.Date, nullable=False, index=True)
    order_sequence = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), default=OrderStatus.PENDING.value, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class OrderItem(db.Model):
    __tablename__ = "order_items"
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    menu_item_id = db.Column(db.Integer, nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    item_name = db.Column(db.String(120), nullable=False)
    item_price = db.Column(db.Numeric(10, 2), nullable=False)

    order = db.relationship("Order", back_populates="items")
    extras = db.relationship(
        "OrderItemExtra",
        back_populates="order_item",
        order_by="OrderItemExtra.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class OrderItemExtra(db.Model):
    __tablename__ = "order_item_extras"
    id = db.Column(db.Integer, primary_key=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False, index=True)
    extra_id = db.Column(db.Integer, nullable=True)
    extra_name = db.Column(db.String(120), nullable=False)
    extra_price = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    order_item = db.relationship("OrderItem", back_populates="extras")
