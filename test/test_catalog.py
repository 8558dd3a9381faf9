from decimal import Decimal

import pytest
from pydantic import ValidationError

from menuqr.models import Plan, RestaurantUpdate

from conftest import set_plan


def create_product(client, headers, name="Feijoada", price="59.90", **extra):
    return client.post("/products", json={"name": name, "price": price, **extra}, headers=headers)


@pytest.mark.integration
class TestRestaurantProfile:

    def test_update_profile(self, client, owner):
        response = client.put(
            "/restaurant",
            json={"description": "Comida caseira", "primary_color": "#112233", "menu_style": "list"},
            headers=owner,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["description"] == "Comida caseira"
        assert data["primary_color"] == "#112233"
        assert data["menu_style"] == "list"
        assert data["slug"] == "cantina-da-praca"

    def test_rename_rederives_slug(self, client, register_owner):
        register_owner("other@example.com", "Bistro Novo")
        headers = register_owner("owner@example.com", "Cantina")

        response = client.put("/restaurant", json={"name": "Bistrô Novo"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["slug"] == "bistro-novo-2"

    def test_rename_to_same_name_keeps_slug(self, client, owner):
        response = client.put("/restaurant", json={"name": "Cantina da Praça"}, headers=owner)
        assert response.json()["slug"] == "cantina-da-praca"

    def test_invalid_color(self, client, owner):
        response = client.put("/restaurant", json={"primary_color": "green"}, headers=owner)
        assert response.status_code == 422
        assert client.get("/restaurant", headers=owner).json()["primary_color"] == "#059669"

    @pytest.mark.parametrize("color", ["green", "#12345", "#1234567", "112233", "#GGGGGG"])
    def test_color_must_be_hex(self, color):
        with pytest.raises(ValidationError):
            RestaurantUpdate(primary_color=color)

    def test_hex_color_accepted(self):
        assert RestaurantUpdate(primary_color="#a1B2c3").primary_color == "#a1B2c3"


@pytest.mark.integration
class TestCategories:

    def test_crud(self, client, owner):
        created = client.post("/categories", json={"name": "Bebidas", "sort_order": 2}, headers=owner)
        assert created.status_code == 200
        category_id = created.json()["id"]

        client.post("/categories", json={"name": "Entradas", "sort_order": 1}, headers=owner)
        names = [c["name"] for c in client.get("/categories", headers=owner).json()]
        assert names == ["Entradas", "Bebidas"]

        updated = client.put(f"/categories/{category_id}", json={"name": "Drinks"}, headers=owner)
        assert updated.json()["name"] == "Drinks"
        assert updated.json()["sort_order"] == 2

        deleted = client.delete(f"/categories/{category_id}", headers=owner)
        assert deleted.json() == {"status": "deleted", "id": category_id}
        assert len(client.get("/categories", headers=owner).json()) == 1

    def test_delete_detaches_products(self, client, owner):
        category_id = client.post("/categories", json={"name": "Pratos"}, headers=owner).json()["id"]
        product_id = create_product(client, owner, category_id=category_id).json()["id"]

        client.delete(f"/categories/{category_id}", headers=owner)

        products = client.get("/products", headers=owner).json()
        assert [p["id"] for p in products] == [product_id]
        assert products[0]["category_id"] is None

    def test_other_tenant_category(self, client, owner, register_owner):
        other = register_owner("other@example.com", "Outro")
        category_id = client.post("/categories", json={"name": "Pratos"}, headers=owner).json()["id"]

        assert client.put(f"/categories/{category_id}", json={"name": "X"}, headers=other).status_code == 403
        assert client.delete(f"/categories/{category_id}", headers=other).json()["code"] == "not_owner"

    def test_missing_category(self, client, owner):
        assert client.delete("/categories/999", headers=owner).status_code == 404


@pytest.mark.integration
class TestProducts:

    def test_crud(self, client, owner):
        created = create_product(client, owner, description="Com farofa")
        assert created.status_code == 200
        product = created.json()
        assert Decimal(product["price"]) == Decimal("59.90")
        assert product["is_active"] is True

        updated = client.put(
            f"/products/{product['id']}", json={"price": "64.50", "description": None}, headers=owner
        )
        assert Decimal(updated.json()["price"]) == Decimal("64.50")
        assert updated.json()["description"] is None
        assert updated.json()["name"] == "Feijoada"

        assert client.delete(f"/products/{product['id']}", headers=owner).json()["status"] == "deleted"
        assert client.get("/products", headers=owner).json() == []

    def test_negative_price(self, client, owner):
        assert create_product(client, owner, price="-1").status_code == 422

    def test_products_are_tenant_scoped(self, client, owner, register_owner):
        other = register_owner("other@example.com", "Outro")
        product_id = create_product(client, owner).json()["id"]

        assert client.get("/products", headers=other).json() == []
        response = client.put(f"/products/{product_id}", json={"name": "Hacked"}, headers=other)
        assert response.status_code == 403
        assert client.delete(f"/products/{product_id}", headers=other).status_code == 403

    def test_cannot_reference_other_tenant_category(self, client, owner, register_owner):
        other = register_owner("other@example.com", "Outro")
        foreign_category = client.post("/categories", json={"name": "Deles"}, headers=other).json()["id"]

        response = create_product(client, owner, category_id=foreign_category)
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid category"

        product_id = create_product(client, owner).json()["id"]
        response = client.put(f"/products/{product_id}", json={"category_id": foreign_category}, headers=owner)
        assert response.status_code == 400

    def test_free_plan_limit(self, client, owner):
        for i in range(5):
            assert create_product(client, owner, name=f"Item {i}").status_code == 200

        response = create_product(client, owner, name="Item 5")

        assert response.status_code == 403
        assert response.json()["code"] == "plan_limit_exceeded"
        assert "Upgrade to Premium" in response.json()["detail"]
        assert len(client.get("/products", headers=owner).json()) == 5

    def test_inactive_products_free_a_slot(self, client, owner):
        ids = [create_product(client, owner, name=f"Item {i}").json()["id"] for i in range(5)]

        client.put(f"/products/{ids[0]}", json={"is_active": False}, headers=owner)

        assert create_product(client, owner, name="Item 5").status_code == 200
        assert create_product(client, owner, name="Inactive", is_active=False).status_code == 403

    def test_reactivation_respects_limit(self, client, owner):
        ids = [create_product(client, owner, name=f"Item {i}").json()["id"] for i in range(5)]
        client.put(f"/products/{ids[0]}", json={"is_active": False}, headers=owner)
        create_product(client, owner, name="Replacement")

        response = client.put(f"/products/{ids[0]}", json={"is_active": True}, headers=owner)

        assert response.status_code == 403
        assert response.json()["code"] == "plan_limit_exceeded"

    def test_premium_is_unlimited(self, client, engine, owner):
        set_plan(engine, "owner@example.com", Plan.premium)
        for i in range(8):
            assert create_product(client, owner, name=f"Item {i}").status_code == 200

    def test_dashboard_stats(self, client, owner):
        create_product(client, owner, name="A")
        create_product(client, owner, name="B", is_active=False)

        stats = client.get("/dashboard/stats", headers=owner).json()

        assert stats == {"products": 1, "views": 0, "scans": 0, "plan": "free"}
