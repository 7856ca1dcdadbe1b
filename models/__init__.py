from models.user import User
from models.product import Product
from models.order import Order, OrderItem, OrderStatus

__all__ = ["User", "Product", "Order", "OrderItem", "OrderStatus"]
