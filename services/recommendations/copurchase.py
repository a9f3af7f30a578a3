"""
Co-purchase resolver (opt-in via COPURCHASE_ENABLED).

Mines the shop's most recent orders for products bought together with the
anchor. Each order is weighted by recency with a 60 day half-life:

    w = exp(-ln2 / 60 * age_days)

Partners are ranked by a blend of lift and overall popularity:

    confidence = w(A,B) / w(A)
    lift       = confidence / (w(B) / total_w)
    score      = 0.6 * min(1, lift / 2) + 0.4 * min(1, w(B) / (total_w * 0.05))
"""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from services.catalog import CatalogClient
from services.pricing import build_pair_bundle
from services.recommendations.base import fail_soft
from services.recommendations.types import BundleRequest, CatalogOrder, GeneratedBundle
from settings import DEFAULT_BUNDLE_TITLE, RECENT_ORDERS_WINDOW

logger = logging.getLogger(__name__)

HALF_LIFE_DAYS = 60
LN2_OVER_HALF_LIFE = math.log(2) / HALF_LIFE_DAYS


@dataclass
class CoPurchaseStats:
    """Recency-weighted appearance and pair weights over a batch of orders."""
    appearance: Dict[str, float] = field(default_factory=dict)
    pairs: Dict[str, Dict[str, float]] = field(default_factory=lambda: defaultdict(dict))
    total_weight: float = 0.0

    @classmethod
    def build(cls, orders: Iterable[CatalogOrder], now: Optional[datetime] = None) -> "CoPurchaseStats":
        now = now or datetime.now(timezone.utc)
        stats = cls()
        for order in orders:
            # Distinct products, first-seen order
            items = list(dict.fromkeys(pid for pid in order.product_ids if pid))
            if len(items) < 2:
                continue
            age_days = max(0.0, (now - order.created_at).total_seconds() / 86400)
            weight = math.exp(-LN2_OVER_HALF_LIFE * age_days)
            for pid in items:
                stats.appearance[pid] = stats.appearance.get(pid, 0.0) + weight
            for i, a in enumerate(items):
                for b in items[i + 1:]:
                    stats.pairs[a][b] = stats.pairs[a].get(b, 0.0) + weight
                    stats.pairs[b][a] = stats.pairs[b].get(a, 0.0) + weight
        stats.total_weight = sum(stats.appearance.values())
        return stats

    def partner_scores(self, anchor_id: str) -> List[Tuple[str, float]]:
        """Partners of the anchor, best first (stable on ties)."""
        weight_a = self.appearance.get(anchor_id, 0.0)
        if weight_a <= 0:
            return []
        total = self.total_weight or 1.0
        scored: List[Tuple[str, float]] = []
        for partner, weight_ab in self.pairs.get(anchor_id, {}).items():
            weight_b = self.appearance.get(partner, 0.0)
            if weight_b <= 0:
                continue
            confidence = weight_ab / max(1e-6, weight_a)
            prob_b = weight_b / total
            lift = confidence / prob_b if prob_b > 0 else 0.0
            score = 0.6 * min(1.0, lift / 2) + 0.4 * min(1.0, weight_b / (total * 0.05))
            scored.append((partner, score))
        return sorted(scored, key=lambda item: item[1], reverse=True)


class CoPurchaseResolver:
    name = "copurchase"

    def __init__(self, catalog: CatalogClient, orders_window: int = RECENT_ORDERS_WINDOW):
        self.catalog = catalog
        self.orders_window = orders_window

    @fail_soft
    async def resolve(self, request: BundleRequest) -> List[GeneratedBundle]:
        orders = await self.catalog.list_recent_orders(first=self.orders_window)
        stats = CoPurchaseStats.build(orders)
        ranked = [
            pid for pid, _ in stats.partner_scores(request.product_id)
            if pid != request.exclude_product_id
        ]
        partner_ids = ranked[: max(2, request.limit)]
        if not partner_ids:
            return []

        products = await self.catalog.get_products_by_ids([request.product_id, *partner_ids])
        by_id = {p.id: p for p in products}
        anchor = by_id.get(request.product_id)
        if anchor is None:
            return []

        title = request.bundle_title or DEFAULT_BUNDLE_TITLE
        bundles: List[GeneratedBundle] = []
        for pid in partner_ids[: request.limit]:
            partner = by_id.get(pid)
            if partner is None:
                continue
            bundles.append(
                build_pair_bundle(
                    anchor.as_ref(),
                    partner.as_ref(),
                    request.default_discount_pct,
                    name=title,
                    source="ml",
                )
            )

        logger.info(
            f"Co-purchase resolver: {len(bundles)} bundles from {len(orders)} orders "
            f"shop={request.shop} product={request.product_id}"
        )
        return bundles
