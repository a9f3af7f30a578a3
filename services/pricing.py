"""
Bundle Economics Service
Regular total, discounted bundle price and savings for generated bundles
"""
from typing import Iterable, List, Optional, Sequence, Tuple, Any
from decimal import Decimal

from services.recommendations.types import (
    BundleProductRef,
    BundleSource,
    GeneratedBundle,
)
from utils import as_decimal

MIN_BUNDLE_SIZE = 2

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


class InsufficientData(ValueError):
    """Fewer than MIN_BUNDLE_SIZE usable products; the bundle must not be emitted."""


def clamp_discount(discount_percent: Any) -> Decimal:
    """Coerce a discount percent into [0, 100]; junk becomes 0."""
    pct = as_decimal(discount_percent)
    if pct < _ZERO:
        return _ZERO
    if pct > _HUNDRED:
        return _HUNDRED
    return pct


def compute_bundle_economics(
    prices: Iterable[Any], discount_percent: Any
) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Returns (regular_total, bundle_price, savings_amount).

    bundle_price = max(0, regular_total * (1 - pct/100))
    savings_amount = max(0, regular_total - bundle_price)

    Decimal arithmetic keeps both identities exact; rounding happens only
    when a bundle is rendered.
    """
    pct = clamp_discount(discount_percent)
    regular_total = sum((as_decimal(p) for p in prices), _ZERO)
    bundle_price = max(_ZERO, regular_total * (1 - pct / _HUNDRED))
    savings_amount = max(_ZERO, regular_total - bundle_price)
    return regular_total, bundle_price, savings_amount


def make_bundle_id(source: str, product_ids: Sequence[str], key: Optional[str] = None) -> str:
    """Deterministic id: same source + products (+ key) always yields the same id."""
    parts = [source]
    if key:
        parts.append(str(key))
    parts.extend(str(pid) for pid in product_ids)
    return "_".join(parts)


def build_bundle(
    products: Sequence[BundleProductRef],
    discount_percent: Any,
    name: str,
    source: BundleSource,
    key: Optional[str] = None,
) -> GeneratedBundle:
    """Assemble a GeneratedBundle; raises InsufficientData for fewer than two products."""
    items: List[BundleProductRef] = list(products)
    if len(items) < MIN_BUNDLE_SIZE:
        raise InsufficientData(
            f"bundle needs at least {MIN_BUNDLE_SIZE} products, got {len(items)}"
        )

    pct = clamp_discount(discount_percent)
    regular_total, bundle_price, savings_amount = compute_bundle_economics(
        (p.price for p in items), pct
    )
    return GeneratedBundle(
        id=make_bundle_id(source, [p.id for p in items], key=key),
        name=name,
        products=tuple(items),
        regular_total=regular_total,
        bundle_price=bundle_price,
        savings_amount=savings_amount,
        discount_percent=pct,
        source=source,
        status="active",
    )


def build_pair_bundle(
    anchor: BundleProductRef,
    partner: BundleProductRef,
    discount_percent: Any,
    name: str,
    source: BundleSource,
) -> GeneratedBundle:
    """Two-item {anchor, partner} bundle used by the pairwise resolvers."""
    return build_bundle([anchor, partner], discount_percent, name=name, source=source)
