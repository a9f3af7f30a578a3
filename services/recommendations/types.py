"""
Recommendation data model.

Bundles are rebuilt on every generation call from a live catalog snapshot, so
everything here is an immutable value object with no persisted identity.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Literal, Optional, Protocol, Tuple

BundleSource = Literal["manual", "rules", "ml"]
BundleStatus = Literal["active", "inactive"]

_CENTS = Decimal("0.01")


def _cents(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def _money(value: Decimal) -> float:
    return float(_cents(value))


@dataclass(frozen=True)
class BundleProductRef:
    """Pricing snapshot of one catalog item at generation time."""
    id: str
    variant_id: str
    title: str
    price: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "variantId": self.variant_id,
            "title": self.title,
            "price": _money(self.price),
        }


@dataclass(frozen=True)
class GeneratedBundle:
    """
    A priced bundle of two or more products.

    Build these through services.pricing.build_bundle, which owns the
    economics invariants (regular_total, bundle_price, savings_amount).
    """
    id: str
    name: str
    products: Tuple[BundleProductRef, ...]
    regular_total: Decimal
    bundle_price: Decimal
    savings_amount: Decimal
    discount_percent: Decimal
    source: BundleSource
    status: BundleStatus = "active"

    @property
    def product_ids(self) -> List[str]:
        return [p.id for p in self.products]

    def to_dict(self) -> Dict[str, Any]:
        """camelCase payload consumed by the admin UI and the cart drawer.

        Savings are derived from the rounded totals so the wire values add up.
        """
        regular_total = _cents(self.regular_total)
        bundle_price = _cents(self.bundle_price)
        savings_amount = max(Decimal("0"), regular_total - bundle_price)
        return {
            "id": self.id,
            "name": self.name,
            "products": [p.to_dict() for p in self.products],
            "regularTotal": float(regular_total),
            "bundlePrice": float(bundle_price),
            "savingsAmount": float(savings_amount),
            "discountPercent": float(self.discount_percent),
            "status": self.status,
            "source": self.source,
        }


@dataclass(frozen=True)
class ManualBundleDefinition:
    """Read model of a merchant-curated bundle."""
    id: str
    name: str
    product_ids: Tuple[str, ...]
    discount_percent: Optional[Decimal] = None
    is_active: bool = True


@dataclass
class SimilarityCandidate:
    product_id: str
    variant_id: str
    title: str
    price: Decimal
    score: float = 0.0


@dataclass(frozen=True)
class BundleRequest:
    """Parameters shared by every resolver in the chain."""
    shop: str
    product_id: str
    limit: int
    default_discount_pct: float
    bundle_title: Optional[str] = None
    exclude_product_id: Optional[str] = None


class BundleResolver(Protocol):
    """One strategy in the recommendation chain. Must never raise."""

    name: str

    async def resolve(self, request: BundleRequest) -> List[GeneratedBundle]:
        ...


@dataclass(frozen=True)
class CatalogProduct:
    """Product shape returned by the catalog client (bare ids, first-variant pricing)."""
    id: str
    variant_id: str
    title: str
    price: Decimal = Decimal("0")
    vendor: str = ""
    product_type: str = ""

    def as_ref(self) -> BundleProductRef:
        return BundleProductRef(
            id=self.id,
            variant_id=self.variant_id,
            title=self.title,
            price=self.price,
        )


@dataclass(frozen=True)
class CatalogOrder:
    """Recent order reduced to the products it contained, used for co-purchase signals."""
    created_at: datetime
    product_ids: Tuple[str, ...] = field(default_factory=tuple)
