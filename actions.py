"""
Server-side actions behind the admin forms.

Each action either returns a redirect response or raises an ``ActionError``
subclass whose message can be shown to the admin as is.
"""

import logging
from decimal import Decimal, InvalidOperation

from flask import redirect, url_for
from sqlalchemy.exc import SQLAlchemyError

from database import db
from models.order import Order, OrderItem, OrderStatus
from models.product import Product

logger = logging.getLogger(__name__)

# fits Numeric(10, 2)
MAX_PRICE = Decimal("99999999.99")


class ActionError(RuntimeError):
    pass


class OrderStatusUpdateError(ActionError):
    pass


class ProductActionError(ActionError):
    pass


def _commit(error_cls, message):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception(message)
        raise error_cls(f"{message}: {e}") from e


# ---------- ORDERS ----------

def update_order_status(order_id, status):
    """
    Overwrite an order's status and redirect to its detail page.

    Any status may follow any other; only the target has to be a known
    status.
    """
    try:
        new_status = OrderStatus.parse(status)
    except ValueError:
        raise OrderStatusUpdateError(
            f"Failed to update order status: unknown status {status!r}"
        ) from None

    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderStatusUpdateError(
            f"Failed to update order status: order {order_id} not found"
        )

    previous = order.status
    order.status = new_status.value
    _commit(OrderStatusUpdateError, "Failed to update order status")

    logger.info("Order %s status %s -> %s", order_id, previous, new_status.value)
    return redirect(url_for("admin_order_detail", order_id=order_id))


# ---------- PRODUCTS ----------

def parse_product_form(form):
    """Validate the product form and return clean field values."""
    name = (form.get("name") or "").strip()
    description = (form.get("description") or "").strip()
    if not name:
        raise ProductActionError("Product name is required")
    if not description:
        raise ProductActionError("Description is required")

    try:
        price = Decimal((form.get("price") or "").strip())
    except InvalidOperation:
        raise ProductActionError("Price must be a number") from None
    if not price.is_finite() or price < 0:
        raise ProductActionError("Price must be zero or more")
    if price > MAX_PRICE:
        raise ProductActionError("Price is too large")

    try:
        stock = int(form.get("stock") or 0)
    except (TypeError, ValueError):
        raise ProductActionError("Stock must be a whole number") from None
    if stock < 0:
        raise ProductActionError("Stock must be zero or more")

    return {
        "name": name,
        "description": description,
        "price": price.quantize(Decimal("0.01")),
        "stock": stock,
        "image": (form.get("image") or "").strip() or None,
    }


def create_product(form):
    product = Product(**parse_product_form(form))
    db.session.add(product)
    _commit(ProductActionError, "Failed to create product")

    logger.info("Created product %s (%s)", product.id, product.name)
    return redirect(url_for("admin_products"))


def update_product(product_id, form):
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductActionError(f"Product {product_id} not found")

    fields = parse_product_form(form)
    if fields["image"] is None:
        # keep the current image when the form leaves it blank
        fields["image"] = product.image
    for key, value in fields.items():
        setattr(product, key, value)
    _commit(ProductActionError, "Failed to update product")

    logger.info("Updated product %s", product_id)
    return redirect(url_for("admin_products"))


def delete_product(product_id):
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductActionError(f"Product {product_id} not found")

    if OrderItem.query.filter_by(product_id=product_id).count():
        raise ProductActionError(
            f'Cannot delete "{product.name}": it appears in existing orders'
        )

    db.session.delete(product)
    _commit(ProductActionError, "Failed to delete product")

    logger.info("Deleted product %s", product_id)
    return redirect(url_for("admin_products"))
