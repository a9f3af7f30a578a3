import pytest
from fastapi.testclient import TestClient

from conftest import FakeCatalog, FakeStore, make_product
from main import app
from routers import bundle_recommendations
from routers.bundle_recommendations import get_catalog_factory, get_storage

SHOP = "acme.myshopify.com"


@pytest.fixture
def api():
    catalog = FakeCatalog(
        products=[
            make_product("1", "Camera Body", 900, vendor="Lumo"),
            make_product("2", "Lens Cap", 10, vendor="Lumo"),
            make_product("3", "Camera Strap", 25, vendor="Lumo"),
        ],
        recommendations={"1": ["2", "3"]},
    )
    store = FakeStore()
    shops = []

    def factory(shop):
        shops.append(shop)
        return catalog

    app.dependency_overrides[get_catalog_factory] = lambda: factory
    app.dependency_overrides[get_storage] = lambda: store
    yield TestClient(app), catalog, store, shops
    app.dependency_overrides.clear()


def test_health_routes(api):
    client = api[0]
    assert client.get("/healthz").json() == {"ok": True}
    assert client.get("/").json()["ok"] is True


def test_generate_returns_camel_case_bundles(api):
    client, catalog, _, shops = api

    res = client.get("/api/bundle-recommendations/generate", params={"shop": SHOP, "productId": "1", "discount": 20})

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["count"] == 2
    first = body["bundles"][0]
    assert first["id"] == "rules_1_2"
    assert first["regularTotal"] == 910.0
    assert first["bundlePrice"] == 728.0
    assert first["savingsAmount"] == 182.0
    assert first["discountPercent"] == 20.0
    assert first["source"] == "rules"
    assert first["products"][0] == {"id": "1", "variantId": "v1", "title": "Camera Body", "price": 900.0}
    assert shops == [SHOP]
    assert catalog.closed is True


def test_generate_accepts_shop_header_and_snake_case_id(api):
    client, _, _, shops = api

    res = client.get(
        "/api/bundle-recommendations/generate",
        params={"product_id": "gid://shopify/Product/1", "excludeProductId": "2"},
        headers={"X-Shopify-Shop-Domain": "https://ACME.myshopify.com"},
    )

    assert res.status_code == 200
    assert [b["id"] for b in res.json()["bundles"]] == ["rules_1_3"]
    assert shops == [SHOP]


def test_generate_reports_empty_result(api):
    client = api[0]
    res = client.get("/api/bundle-recommendations/generate", params={"shop": SHOP, "productId": "404"})
    assert res.status_code == 200
    assert res.json() == {"success": True, "bundles": [], "count": 0, "message": "No recommendations available"}


@pytest.mark.parametrize(
    "params, status",
    [
        ({"productId": "1"}, 400),
        ({"shop": SHOP}, 400),
        ({"shop": SHOP, "productId": "1", "limit": 0}, 422),
        ({"shop": SHOP, "productId": "1", "limit": 21}, 422),
        ({"shop": SHOP, "productId": "1", "discount": 101}, 422),
    ],
)
def test_generate_rejects_bad_input(api, params, status):
    client = api[0]
    res = client.get("/api/bundle-recommendations/generate", params=params)
    assert res.status_code == status
    assert "error" in res.json()


def test_generate_pipeline_crash_is_a_500(api, monkeypatch):
    client = api[0]

    async def boom(**kwargs):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(bundle_recommendations, "generate_bundles_from_orders", boom)
    res = client.get("/api/bundle-recommendations/generate", params={"shop": SHOP, "productId": "1"})

    assert res.status_code == 500
    assert res.json() == {"error": "Failed to generate bundle recommendations"}


def test_manual_bundle_crud_feeds_generation(api):
    client = api[0]

    created = client.post(
        "/api/bundles",
        json={"shop": SHOP, "name": "Shooter kit", "productIds": ["1", "3"], "discountPercent": 15},
    )
    assert created.status_code == 200
    bundle = created.json()["bundle"]
    assert bundle["productIds"] == ["1", "3"]
    assert bundle["discountPercent"] == 15.0

    generated = client.get("/api/bundle-recommendations/generate", params={"shop": SHOP, "productId": "1"}).json()
    assert [b["source"] for b in generated["bundles"]] == ["manual"]
    assert generated["bundles"][0]["name"] == "Shooter kit"

    toggled = client.patch(f"/api/bundles/{bundle['id']}/status", json={})
    assert toggled.json()["bundle"]["isActive"] is False

    listing = client.get("/api/bundles", params={"shop": SHOP}).json()
    assert listing["stats"] == {"total": 1, "active": 0}

    generated = client.get("/api/bundle-recommendations/generate", params={"shop": SHOP, "productId": "1"}).json()
    assert {b["source"] for b in generated["bundles"]} == {"rules"}


@pytest.mark.parametrize(
    "product_ids",
    [["1", "1"], ["1", "gid://shopify/Product/1"], ["1", " "]],
    ids=["same-id", "gid-and-bare", "blank"],
)
def test_create_bundle_requires_two_distinct_products(api, product_ids):
    client, _, store, _ = api
    res = client.post("/api/bundles", json={"shop": SHOP, "name": "Solo", "productIds": product_ids})
    assert res.status_code == 422
    assert store.definitions == []


def test_unknown_bundle_status_update_is_404(api):
    client = api[0]
    res = client.patch("/api/bundles/nope/status", json={"isActive": True})
    assert res.status_code == 404
    assert res.json() == {"error": "Bundle not found"}
