"""
Manual bundle resolver.

Highest priority strategy: merchant-curated bundle definitions that contain
the anchor product, re-priced against the live catalog.
"""
from __future__ import annotations

import logging
from typing import Dict, List

from services.catalog import CatalogClient
from services.pricing import InsufficientData, build_bundle
from services.recommendations.base import fail_soft
from services.recommendations.types import BundleRequest, CatalogProduct, GeneratedBundle

logger = logging.getLogger(__name__)


class ManualBundleResolver:
    name = "manual"

    def __init__(self, catalog: CatalogClient, store):
        self.catalog = catalog
        self.store = store

    @fail_soft
    async def resolve(self, request: BundleRequest) -> List[GeneratedBundle]:
        definitions = await self.store.find_active_manual_bundles(
            request.shop, request.product_id, request.limit
        )
        if not definitions:
            return []

        # One batched lookup for every product referenced by any definition
        referenced: List[str] = []
        for definition in definitions:
            for pid in definition.product_ids:
                if pid not in referenced:
                    referenced.append(pid)
        products = await self.catalog.get_products_by_ids(referenced)
        by_id: Dict[str, CatalogProduct] = {p.id: p for p in products}

        bundles: List[GeneratedBundle] = []
        for definition in definitions:
            refs = [by_id[pid].as_ref() for pid in definition.product_ids if pid in by_id]
            discount = (
                definition.discount_percent
                if definition.discount_percent is not None
                else request.default_discount_pct
            )
            try:
                bundles.append(
                    build_bundle(
                        refs,
                        discount,
                        name=definition.name,
                        source="manual",
                        key=definition.id,
                    )
                )
            except InsufficientData:
                logger.debug(
                    f"Skipping manual bundle {definition.id}: "
                    f"{len(refs)}/{len(definition.product_ids)} products still in catalog"
                )

        logger.info(
            f"Manual resolver: {len(bundles)}/{len(definitions)} bundles "
            f"shop={request.shop} product={request.product_id}"
        )
        return bundles
