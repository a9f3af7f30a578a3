"""
Bundle Orchestrator
Runs the resolver chain in priority order and returns the first non-empty answer.

Default chain:
1. Manual bundles          (source="manual")
2. Platform recommendations (source="rules")
3. Content similarity       (source="ml", terminal fallback)

With COPURCHASE_ENABLED the order-history resolver runs between 2 and 3.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from services.catalog import CatalogClient, strip_gid
from services.pricing import clamp_discount
from services.recommendations.copurchase import CoPurchaseResolver
from services.recommendations.manual import ManualBundleResolver
from services.recommendations.platform import PlatformRecommendationResolver
from services.recommendations.similarity import ContentSimilarityResolver
from services.recommendations.types import BundleRequest, BundleResolver, GeneratedBundle
from settings import COPURCHASE_ENABLED

logger = logging.getLogger(__name__)


class BundleOrchestrator:
    """Ordered list of resolvers with short-circuit on the first non-empty result."""

    def __init__(self, resolvers: Sequence[BundleResolver]):
        self.resolvers = list(resolvers)

    async def generate(self, request: BundleRequest) -> List[GeneratedBundle]:
        for resolver in self.resolvers:
            bundles = await resolver.resolve(request)
            if bundles:
                logger.info(
                    f"Bundles answered by {resolver.name}: {len(bundles)} "
                    f"shop={request.shop} product={request.product_id}"
                )
                return bundles
            logger.debug(f"{resolver.name} produced nothing, falling through")

        logger.info(f"No bundles for shop={request.shop} product={request.product_id}")
        return []


def build_default_resolvers(
    catalog: CatalogClient, store, copurchase_enabled: bool = COPURCHASE_ENABLED
) -> List[BundleResolver]:
    resolvers: List[BundleResolver] = [
        ManualBundleResolver(catalog, store),
        PlatformRecommendationResolver(catalog),
    ]
    if copurchase_enabled:
        resolvers.append(CoPurchaseResolver(catalog))
    resolvers.append(ContentSimilarityResolver(catalog))
    return resolvers


async def generate_bundles_from_orders(
    shop: str,
    product_id: str,
    limit: int,
    default_discount_pct: float,
    bundle_title: Optional[str] = None,
    exclude_product_id: Optional[str] = None,
    *,
    catalog: CatalogClient,
    store,
) -> List[GeneratedBundle]:
    """
    Public entry point of the recommendation pipeline.

    ``product_id`` and ``exclude_product_id`` may be bare ids or Shopify gids.
    Returned bundles always carry bare ids. Resolvers fail soft, so an empty
    list means "no recommendations available", not an error.
    """
    request = BundleRequest(
        shop=shop,
        product_id=strip_gid(product_id),
        limit=int(limit),
        default_discount_pct=float(clamp_discount(default_discount_pct)),
        bundle_title=bundle_title or None,
        exclude_product_id=strip_gid(exclude_product_id) or None,
    )
    orchestrator = BundleOrchestrator(build_default_resolvers(catalog, store))
    return await orchestrator.generate(request)
