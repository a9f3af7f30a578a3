import asyncio
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from conftest import FakeCatalog, make_product
from database import Base
from services.recommendations.manual import ManualBundleResolver
from services.recommendations.types import BundleRequest
from services.storage import PersistenceUnavailable, StorageService

SHOP = "acme.myshopify.com"


def run_with_storage(scenario, create_tables=True):
    """Run ``scenario(storage)`` against a private in-memory SQLite database."""
    async def _run():
        engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        if create_tables:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        try:
            sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            return await scenario(StorageService(sessions))
        finally:
            await engine.dispose()
    return asyncio.run(_run())


def test_create_normalizes_ids_and_shop():
    async def scenario(store):
        return await store.create_manual_bundle(
            "https://ACME.myshopify.com/",
            "Starter kit",
            ["gid://shopify/Product/1", "2", "1"],
            discount_percent=12.5,
        )

    definition = run_with_storage(scenario)

    assert definition.product_ids == ("1", "2")
    assert definition.discount_percent == Decimal("12.5")
    assert definition.is_active is True
    assert definition.id


def test_find_returns_only_active_matches_for_the_shop():
    async def scenario(store):
        kit = await store.create_manual_bundle(SHOP, "Kit", ["1", "2"])
        await store.create_manual_bundle(SHOP, "Paused", ["1", "3"], is_active=False)
        await store.create_manual_bundle(SHOP, "Unrelated", ["4", "5"])
        await store.create_manual_bundle("other.myshopify.com", "Foreign", ["1", "2"])
        found = await store.find_active_manual_bundles(SHOP, "1", limit=10)
        return kit, found

    kit, found = run_with_storage(scenario)

    assert [d.id for d in found] == [kit.id]
    assert found[0].product_ids == ("1", "2")
    assert found[0].discount_percent is None


def test_find_caps_results_at_limit():
    async def scenario(store):
        for i in range(3):
            await store.create_manual_bundle(SHOP, f"Kit {i}", ["1", str(10 + i)])
        return await store.find_active_manual_bundles(SHOP, "gid://shopify/Product/1", limit=2)

    assert len(run_with_storage(scenario)) == 2


def test_status_toggle_and_explicit_set():
    async def scenario(store):
        kit = await store.create_manual_bundle(SHOP, "Kit", ["1", "2"])
        toggled = await store.set_manual_bundle_active(kit.id)
        hidden = await store.find_active_manual_bundles(SHOP, "1", limit=5)
        restored = await store.set_manual_bundle_active(kit.id, True)
        missing = await store.set_manual_bundle_active("does-not-exist", False)
        listed = await store.list_manual_bundles(SHOP)
        return toggled, hidden, restored, missing, listed

    toggled, hidden, restored, missing, listed = run_with_storage(scenario)

    assert toggled.is_active is False
    assert hidden == []
    assert restored.is_active is True
    assert missing is None
    assert [d.name for d in listed] == ["Kit"]


def test_missing_schema_raises_persistence_unavailable():
    async def scenario(store):
        return await store.find_active_manual_bundles(SHOP, "1", limit=5)

    with pytest.raises(PersistenceUnavailable):
        run_with_storage(scenario, create_tables=False)


def test_manual_resolver_reads_persisted_definitions():
    catalog = FakeCatalog(products=[make_product("1", "Kayak", 500), make_product("2", "Paddle", 100)])
    request = BundleRequest(shop=SHOP, product_id="2", limit=4, default_discount_pct=10)

    async def scenario(store):
        await store.create_manual_bundle(SHOP, "Paddle out", ["1", "2"], discount_percent=5)
        return await ManualBundleResolver(catalog, store).resolve(request)

    bundles = run_with_storage(scenario)

    assert len(bundles) == 1
    assert bundles[0].product_ids == ["1", "2"]
    assert bundles[0].bundle_price == Decimal("570")


def test_manual_resolver_fails_soft_without_schema():
    catalog = FakeCatalog(products=[make_product("1", "Kayak", 500)])
    request = BundleRequest(shop=SHOP, product_id="1", limit=4, default_discount_pct=10)

    async def scenario(store):
        return await ManualBundleResolver(catalog, store).resolve(request)

    assert run_with_storage(scenario, create_tables=False) == []
