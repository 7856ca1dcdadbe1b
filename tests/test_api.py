from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from models.product import Product


def test_get_product(client, make_product):
    product = make_product("Denim Jacket", "89.00", stock=12, image="/uploads/j.png")

    response = client.get(f"/api/products/{product.id}")

    assert response.status_code == 200
    body = response.get_json()
    assert body["id"] == product.id
    assert body["name"] == "Denim Jacket"
    assert body["price"] == 89.0
    assert body["stock"] == 12
    assert body["image"] == "/uploads/j.png"
    assert body["created_at"]


def test_missing_product_is_404(client):
    response = client.get("/api/products/999")

    assert response.status_code == 404
    assert response.get_json() == {"error": "Product not found"}


def test_database_failure_is_500(client, monkeypatch):
    def broken_get(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    monkeypatch.setattr(Session, "get", broken_get)

    response = client.get("/api/products/1")

    assert response.status_code == 500
    assert response.get_json() == {"error": "Failed to fetch product"}


def test_serialization_failure_is_500(client, make_product, monkeypatch):
    product = make_product()

    def broken_to_dict(self):
        raise TypeError("float() argument must be a string or a real number, not 'NoneType'")

    monkeypatch.setattr(Product, "to_dict", broken_to_dict)

    response = client.get(f"/api/products/{product.id}")

    assert response.status_code == 500
    assert response.get_json() == {"error": "Failed to fetch product"}
