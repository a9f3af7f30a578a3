import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeCatalog, make_product
from services.recommendations.copurchase import CoPurchaseResolver, CoPurchaseStats
from services.recommendations.types import BundleRequest, CatalogOrder

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _order(*product_ids, days_ago=0):
    return CatalogOrder(created_at=NOW - timedelta(days=days_ago), product_ids=tuple(product_ids))


ORDERS = [
    _order("1", "2"),
    _order("1", "2"),
    _order("1", "3"),
    _order("2", "3"),
]


def test_partner_scores_blend_lift_and_popularity():
    stats = CoPurchaseStats.build(ORDERS, now=NOW)

    assert stats.total_weight == pytest.approx(8.0)
    scores = dict(stats.partner_scores("1"))
    # partner 2: lift = (2/3) / (3/8); popularity saturates at 1
    assert scores["2"] == pytest.approx(0.6 * (16 / 9) / 2 + 0.4)
    # partner 3: lift = (1/3) / (2/8)
    assert scores["3"] == pytest.approx(0.6 * (4 / 3) / 2 + 0.4)
    assert [pid for pid, _ in stats.partner_scores("1")] == ["2", "3"]


def test_order_weight_halves_every_sixty_days():
    stats = CoPurchaseStats.build([_order("1", "2", days_ago=60)], now=NOW)
    assert stats.appearance["1"] == pytest.approx(0.5)
    assert stats.pairs["1"]["2"] == pytest.approx(0.5)


def test_single_item_and_duplicate_lines_are_ignored():
    stats = CoPurchaseStats.build([_order("1"), _order("1", "1")], now=NOW)
    assert stats.total_weight == 0.0
    assert stats.partner_scores("1") == []


def test_resolver_builds_pairs_with_anchor():
    now = datetime.now(timezone.utc)
    orders = [CatalogOrder(created_at=now, product_ids=o.product_ids) for o in ORDERS]
    catalog = FakeCatalog(
        products=[make_product("1", "Tent", 200), make_product("2", "Sleeping Bag", 80), make_product("3", "Stove", 40)],
        orders=orders,
    )
    request = BundleRequest(shop="camp.myshopify.com", product_id="1", limit=1, default_discount_pct=10)

    bundles = asyncio.run(CoPurchaseResolver(catalog).resolve(request))

    assert [b.id for b in bundles] == ["ml_1_2"]
    assert bundles[0].source == "ml"
    assert catalog.calls["get_products_by_ids"] == 1


def test_resolver_honours_exclusion_and_missing_history():
    now = datetime.now(timezone.utc)
    orders = [CatalogOrder(created_at=now, product_ids=o.product_ids) for o in ORDERS]
    products = [make_product("1", "Tent", 200), make_product("2", "Sleeping Bag", 80), make_product("3", "Stove", 40)]
    catalog = FakeCatalog(products=products, orders=orders)

    request = BundleRequest(
        shop="camp.myshopify.com", product_id="1", limit=4, default_discount_pct=10, exclude_product_id="2"
    )
    bundles = asyncio.run(CoPurchaseResolver(catalog).resolve(request))
    assert [b.id for b in bundles] == ["ml_1_3"]

    empty = FakeCatalog(products=products)
    assert asyncio.run(CoPurchaseResolver(empty).resolve(request)) == []
    assert empty.calls["get_products_by_ids"] == 0
