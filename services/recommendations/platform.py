"""
Platform recommendation resolver.

Pairs the anchor with each product from Shopify's native "related products"
list.
"""
from __future__ import annotations

import logging
from typing import List

from services.catalog import CatalogClient
from services.pricing import build_pair_bundle
from services.recommendations.base import fail_soft, partner_limit
from services.recommendations.types import BundleRequest, GeneratedBundle
from settings import DEFAULT_BUNDLE_TITLE

logger = logging.getLogger(__name__)


class PlatformRecommendationResolver:
    name = "platform"

    def __init__(self, catalog: CatalogClient):
        self.catalog = catalog

    @fail_soft
    async def resolve(self, request: BundleRequest) -> List[GeneratedBundle]:
        anchor = await self.catalog.get_product(request.product_id)
        if anchor is None:
            return []

        recommendations = await self.catalog.get_recommendations(request.product_id)
        skip = {anchor.id, request.product_id, request.exclude_product_id}
        partners = [p for p in recommendations if p.id not in skip]
        if not partners:
            return []

        title = request.bundle_title or DEFAULT_BUNDLE_TITLE
        anchor_ref = anchor.as_ref()
        bundles: List[GeneratedBundle] = []
        for partner in partners[: partner_limit(request.limit)]:
            bundles.append(
                build_pair_bundle(
                    anchor_ref,
                    partner.as_ref(),
                    request.default_discount_pct,
                    name=title,
                    source="rules",
                )
            )

        logger.info(
            f"Platform resolver: {len(bundles)} bundles from {len(recommendations)} recommendations "
            f"shop={request.shop} product={request.product_id}"
        )
        return bundles
