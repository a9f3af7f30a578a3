import sys
from collections import Counter
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.catalog import CatalogUnavailable
from services.recommendations.types import (
    CatalogOrder,
    CatalogProduct,
    ManualBundleDefinition,
)
from services.storage import PersistenceUnavailable


def make_product(pid, title, price, vendor="", product_type=""):
    return CatalogProduct(
        id=str(pid),
        variant_id=f"v{pid}",
        title=title,
        price=Decimal(str(price)),
        vendor=vendor,
        product_type=product_type,
    )


class FakeCatalog:
    """In-memory CatalogClient; ``fail=True`` makes every call raise CatalogUnavailable."""

    def __init__(
        self,
        products: Iterable[CatalogProduct] = (),
        recommendations: Optional[Dict[str, List[str]]] = None,
        pool: Optional[List[str]] = None,
        orders: Iterable[CatalogOrder] = (),
        fail: bool = False,
    ):
        self.products = {p.id: p for p in products}
        self.recommendations = recommendations or {}
        self.pool = pool if pool is not None else list(self.products)
        self.orders = list(orders)
        self.fail = fail
        self.calls = Counter()
        self.closed = False

    def _hit(self, name):
        self.calls[name] += 1
        if self.fail:
            raise CatalogUnavailable(f"{name} unavailable")

    async def get_products_by_ids(self, ids):
        self._hit("get_products_by_ids")
        return [self.products[pid] for pid in ids if pid in self.products]

    async def get_product(self, product_id):
        self._hit("get_product")
        return self.products.get(product_id)

    async def get_recommendations(self, product_id):
        self._hit("get_recommendations")
        return [self.products[pid] for pid in self.recommendations.get(product_id, []) if pid in self.products]

    async def list_products(self, sort="best_selling", first=75):
        self._hit("list_products")
        return [self.products[pid] for pid in self.pool[:first] if pid in self.products]

    async def list_recent_orders(self, first=200):
        self._hit("list_recent_orders")
        return self.orders[:first]

    async def aclose(self):
        self.closed = True


class FakeStore:
    """In-memory manual bundle store mirroring StorageService's interface."""

    def __init__(self, definitions: Iterable[ManualBundleDefinition] = (), fail: bool = False):
        self.definitions = list(definitions)
        self.fail = fail
        self.calls = Counter()

    async def find_active_manual_bundles(self, shop, product_id, limit):
        self.calls["find_active_manual_bundles"] += 1
        if self.fail:
            raise PersistenceUnavailable("manual_bundles table is gone")
        matches = [d for d in self.definitions if d.is_active and product_id in d.product_ids]
        return matches[:limit]

    async def create_manual_bundle(self, shop, name, product_ids, discount_percent=None, is_active=True):
        definition = ManualBundleDefinition(
            id=f"mb{len(self.definitions) + 1}",
            name=name,
            product_ids=tuple(dict.fromkeys(product_ids)),
            discount_percent=Decimal(str(discount_percent)) if discount_percent is not None else None,
            is_active=is_active,
        )
        self.definitions.append(definition)
        return definition

    async def list_manual_bundles(self, shop):
        return list(self.definitions)

    async def set_manual_bundle_active(self, bundle_id, is_active=None):
        for i, d in enumerate(self.definitions):
            if d.id == bundle_id:
                new_state = (not d.is_active) if is_active is None else is_active
                updated = ManualBundleDefinition(
                    id=d.id,
                    name=d.name,
                    product_ids=d.product_ids,
                    discount_percent=d.discount_percent,
                    is_active=new_state,
                )
                self.definitions[i] = updated
                return updated
        return None
