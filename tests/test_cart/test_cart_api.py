"""
API tests for the cart endpoints.
"""

from fastapi import status


class TestCartEndpoints:
    async def test_get_empty_cart(self, api_client, auth_headers):
        response = await api_client.get("/api/v1/cart", headers=auth_headers("user-1"))

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["user_id"] == "user-1"
        assert data["items"] == []
        assert data["total_items"] == 0

    async def test_add_and_update_item(self, api_client, auth_headers, create_product):
        product = await create_product(name="Desk Lamp", price="15.00", stock=10)
        headers = auth_headers("user-1")

        added = await api_client.post(
            "/api/v1/cart/items", json={"product_id": product.id, "quantity": 2}, headers=headers
        )
        updated = await api_client.put(
            f"/api/v1/cart/items/{product.id}", json={"quantity": 3}, headers=headers
        )

        assert added.status_code == status.HTTP_201_CREATED
        assert added.json()["items"][0]["product_name"] == "Desk Lamp"
        assert updated.status_code == status.HTTP_200_OK
        assert updated.json()["items"][0]["quantity"] == 3
        assert updated.json()["subtotal"] == "45.00"

    async def test_add_beyond_stock(self, api_client, auth_headers, create_product):
        product = await create_product(stock=1)

        response = await api_client.post(
            "/api/v1/cart/items",
            json={"product_id": product.id, "quantity": 2},
            headers=auth_headers("user-1"),
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "INSUFFICIENT_STOCK"

    async def test_add_unknown_product(self, api_client, auth_headers):
        response = await api_client.post(
            "/api/v1/cart/items",
            json={"product_id": 999, "quantity": 1},
            headers=auth_headers("user-1"),
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_quantity_is_validated(self, api_client, auth_headers, create_product):
        product = await create_product()

        response = await api_client.post(
            "/api/v1/cart/items",
            json={"product_id": product.id, "quantity": 101},
            headers=auth_headers("user-1"),
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_remove_and_clear(self, api_client, auth_headers, create_product, fill_cart):
        lamp = await create_product(name="Lamp")
        chair = await create_product(name="Chair")
        await fill_cart("user-1", (lamp, 1), (chair, 1))
        headers = auth_headers("user-1")

        removed = await api_client.delete(f"/api/v1/cart/items/{lamp.id}", headers=headers)
        cleared = await api_client.delete("/api/v1/cart", headers=headers)
        after = await api_client.get("/api/v1/cart", headers=headers)

        assert removed.status_code == status.HTTP_200_OK
        assert len(removed.json()["items"]) == 1
        assert cleared.status_code == status.HTTP_204_NO_CONTENT
        assert after.json()["items"] == []

    async def test_remove_missing_item(self, api_client, auth_headers):
        response = await api_client.delete("/api/v1/cart/items/5", headers=auth_headers("user-1"))

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"]["code"] == "CART_ITEM_NOT_FOUND"

    async def test_requires_authentication(self, api_client):
        response = await api_client.get("/api/v1/cart")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
