from collections import namedtuple
from decimal import Decimal
from enum import Enum

from database import db, utcnow


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def display(self):
        return STATUS_DISPLAY[self]

    @classmethod
    def parse(cls, value):
        """Return the member named by ``value`` (case-insensitive) or raise ValueError."""
        return cls(str(value).strip().upper())


StatusDisplay = namedtuple("StatusDisplay", ["label", "color"])

STATUS_DISPLAY = {
    OrderStatus.PENDING: StatusDisplay("Pending", "yellow"),
    OrderStatus.PROCESSING: StatusDisplay("Processing", "blue"),
    OrderStatus.SHIPPED: StatusDisplay("Shipped", "purple"),
    OrderStatus.COMPLETED: StatusDisplay("Completed", "green"),
    OrderStatus.CANCELLED: StatusDisplay("Cancelled", "red"),
}


def status_display(value):
    """Display metadata for a stored status string; unknown values look like PENDING."""
    try:
        return OrderStatus(value).display
    except ValueError:
        return STATUS_DISPLAY[OrderStatus.PENDING]


class Order(db.Model):
    __tablename__ = "order"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)

    # Stored as the plain enum value; any member may follow any other
    status = db.Column(db.String(20), nullable=False, default=OrderStatus.PENDING.value)
    total = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    # Relationships
    user = db.relationship("User", backref="orders")
    items = db.relationship(
        "OrderItem",
        backref="order",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
    )

    @property
    def status_display(self):
        return status_display(self.status)

    @property
    def items_subtotal(self):
        return sum((item.line_total for item in self.items), Decimal("0"))

    @property
    def extra_charges(self):
        """Shipping and tax: whatever the stored total holds beyond the items."""
        return Decimal(self.total or 0) - self.items_subtotal


class OrderItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(db.Integer, db.ForeignKey("order.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    # Unit price at purchase time, not re-read from the product
    price = db.Column(db.Numeric(10, 2), nullable=False)

    product = db.relationship("Product", backref="order_items")

    @property
    def line_total(self):
        return Decimal(self.price) * self.quantity
