def test_home_lists_newest_four_products(client, make_product):
    for name in ["Alpha", "Bravo", "Charlie", "Delta", "Echo"]:
        make_product(name)

    page = client.get("/").data.decode()

    assert page.count('class="card"') == 4


def test_product_page(client, make_product):
    product = make_product("Denim Jacket", "89.00", stock=0)

    page = client.get(f"/products/{product.id}").data.decode()

    assert "Denim Jacket" in page
    assert "$89.00" in page
    assert "Out of stock" in page


def test_unknown_product_page_is_404(client):
    response = client.get("/products/999")
    assert response.status_code == 404
    assert b"Page not found" in response.data


def test_product_search(client, make_product):
    make_product("Denim Jacket")
    make_product("Leather Belt")

    page = client.get("/products?q=denim").data.decode()

    assert "Denim Jacket" in page
    assert "Leather Belt" not in page
