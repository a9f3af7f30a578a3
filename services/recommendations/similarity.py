"""
Content similarity resolver (terminal fallback).

Scores a pool of best-selling products against the anchor:

    score = max(0.15, jaccard(title tokens) + vendor + product type + price proximity)

The 0.15 floor keeps every candidate selectable when the catalog is lexically
diverse; scores have no upper cap. Bundles from this strategy carry
source "ml" for historical reasons, though the scorer is a fixed heuristic.
"""
from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Set

from services.catalog import CatalogClient
from services.pricing import build_pair_bundle
from services.recommendations.base import fail_soft, partner_limit
from services.recommendations.types import (
    BundleProductRef,
    BundleRequest,
    CatalogProduct,
    GeneratedBundle,
    SimilarityCandidate,
)
from settings import DEFAULT_BUNDLE_TITLE, SIMILARITY_POOL_SIZE

logger = logging.getLogger(__name__)

SCORE_FLOOR = 0.15
VENDOR_BOOST = 0.3
TYPE_BOOST = 0.2
PRICE_BOOST_MAX = 0.3
PRICE_WINDOW_MIN = 20.0
PRICE_WINDOW_RATIO = 0.5

_NON_WORD = re.compile(r"[^a-z0-9\s]")


def tokenize(title: str) -> Set[str]:
    """Lower-case, drop everything but [a-z0-9] and whitespace, split."""
    cleaned = _NON_WORD.sub("", (title or "").lower())
    return {token for token in cleaned.split() if token}


def jaccard(a: Set[str], b: Set[str]) -> float:
    union = len(a | b)
    return len(a & b) / max(1, union)


def price_proximity_boost(anchor_price: float, candidate_price: float) -> float:
    """Up to 0.3 for equal prices, fading to 0 at max(20, anchor*0.5) away."""
    if anchor_price <= 0:
        return 0.0
    delta = abs(candidate_price - anchor_price)
    window = max(PRICE_WINDOW_MIN, anchor_price * PRICE_WINDOW_RATIO)
    return max(0.0, PRICE_BOOST_MAX - min(PRICE_BOOST_MAX, (delta / window) * PRICE_BOOST_MAX))


def score_candidate(anchor: CatalogProduct, candidate: CatalogProduct, anchor_tokens: Optional[Set[str]] = None) -> float:
    if anchor_tokens is None:
        anchor_tokens = tokenize(anchor.title)
    score = jaccard(anchor_tokens, tokenize(candidate.title))
    if anchor.vendor and candidate.vendor == anchor.vendor:
        score += VENDOR_BOOST
    if anchor.product_type and candidate.product_type == anchor.product_type:
        score += TYPE_BOOST
    score += price_proximity_boost(float(anchor.price), float(candidate.price))
    return max(SCORE_FLOOR, score)


def rank_candidates(anchor: CatalogProduct, pool: Iterable[CatalogProduct]) -> List[SimilarityCandidate]:
    """
    Score and order the pool, best first.

    sorted() is stable, so equal scores keep the pool's best-selling order.
    """
    anchor_tokens = tokenize(anchor.title)
    candidates = [
        SimilarityCandidate(
            product_id=product.id,
            variant_id=product.variant_id,
            title=product.title,
            price=product.price,
            score=score_candidate(anchor, product, anchor_tokens),
        )
        for product in pool
    ]
    return sorted(candidates, key=lambda c: c.score, reverse=True)


class ContentSimilarityResolver:
    name = "similarity"

    def __init__(self, catalog: CatalogClient, pool_size: int = SIMILARITY_POOL_SIZE):
        self.catalog = catalog
        self.pool_size = pool_size

    @fail_soft
    async def resolve(self, request: BundleRequest) -> List[GeneratedBundle]:
        anchor = await self.catalog.get_product(request.product_id)
        if anchor is None:
            return []

        pool = await self.catalog.list_products(sort="best_selling", first=self.pool_size)
        skip = {anchor.id, request.product_id, request.exclude_product_id}
        pool = [p for p in pool if p.id not in skip]
        if not pool:
            return []

        ranked = rank_candidates(anchor, pool)
        title = request.bundle_title or DEFAULT_BUNDLE_TITLE
        anchor_ref = anchor.as_ref()
        bundles = [
            build_pair_bundle(
                anchor_ref,
                BundleProductRef(
                    id=c.product_id,
                    variant_id=c.variant_id,
                    title=c.title,
                    price=c.price,
                ),
                request.default_discount_pct,
                name=title,
                source="ml",
            )
            for c in ranked[: partner_limit(request.limit)]
        ]

        logger.info(
            f"Similarity resolver: {len(bundles)} bundles from pool of {len(pool)} "
            f"(top score {ranked[0].score:.3f}) shop={request.shop} product={request.product_id}"
        )
        return bundles
