import pytest
from sqlmodel import Session, select

from menuqr import menu_service
from menuqr.models import MenuView


@pytest.fixture
def menu(client, owner):
    """A published menu: two categories (one empty), one active and one inactive product."""
    drinks = client.post("/categories", json={"name": "Bebidas", "sort_order": 1}, headers=owner).json()
    client.post("/categories", json={"name": "Sobremesas", "sort_order": 2}, headers=owner)
    client.post(
        "/products",
        json={"name": "Suco de caju", "price": "9.50", "category_id": drinks["id"]},
        headers=owner,
    )
    client.post(
        "/products",
        json={"name": "Fora do cardápio", "price": "1.00", "is_active": False},
        headers=owner,
    )
    return client.get("/restaurant", headers=owner).json()["slug"]


@pytest.mark.integration
class TestPublicMenu:

    def test_projection(self, client, menu):
        response = client.get(f"/menu/{menu}")

        assert response.status_code == 200
        data = response.json()
        assert data["restaurant"]["name"] == "Cantina da Praça"
        assert [p["name"] for p in data["products"]] == ["Suco de caju"]
        assert [c["name"] for c in data["categories"]] == ["Bebidas", "Sobremesas"]

    def test_is_public(self, client, menu):
        client.cookies.clear()
        assert client.get(f"/menu/{menu}").status_code == 200

    def test_unknown_slug(self, client):
        response = client.get("/menu/does-not-exist")
        assert response.status_code == 404
        assert response.json()["detail"] == "Menu not found"

    def test_slug_match_is_case_sensitive(self, client, menu):
        assert client.get(f"/menu/{menu.upper()}").status_code == 404

    def test_each_fetch_counts_one_view(self, client, engine, owner, menu):
        for _ in range(3):
            client.get(f"/menu/{menu}", headers={"User-Agent": "pytest-browser"})

        with Session(engine) as session:
            views = session.exec(select(MenuView)).all()
        assert len(views) == 3
        assert views[0].user_agent == "pytest-browser"

        stats = client.get("/dashboard/stats", headers=owner).json()
        assert stats["views"] == 3
        assert stats["scans"] == 2

    def test_failed_view_recording_does_not_fail_request(self, client, engine, menu, monkeypatch):
        def broken_record(*args, **kwargs):
            raise RuntimeError("views table unavailable")

        monkeypatch.setattr(menu_service, "record_menu_view", broken_record)

        response = client.get(f"/menu/{menu}")

        assert response.status_code == 200
        assert [p["name"] for p in response.json()["products"]] == ["Suco de caju"]
        with Session(engine) as session:
            assert session.exec(select(MenuView)).all() == []

    def test_not_found_records_nothing(self, client, engine):
        client.get("/menu/nobody")
        with Session(engine) as session:
            assert session.exec(select(MenuView)).all() == []
