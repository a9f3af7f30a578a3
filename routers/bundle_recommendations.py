"""
Bundle Recommendations Router
Serves generated bundles for an anchor product to the admin UI and the storefront cart drawer
"""
from fastapi import APIRouter, HTTPException, Depends, Header, Query
from typing import Callable, Optional
import logging
import time

from services.catalog import CatalogClient, get_catalog_client
from services.recommendations.orchestrator import generate_bundles_from_orders
from services.storage import StorageService, storage
from settings import (
    DEFAULT_DISCOUNT_PCT,
    DEFAULT_RECOMMENDATION_LIMIT,
    MAX_RECOMMENDATION_LIMIT,
    sanitize_shop_id,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def get_catalog_factory() -> Callable[[str], CatalogClient]:
    """Per-shop catalog client factory (overridden in tests)."""
    return get_catalog_client


def get_storage() -> StorageService:
    return storage


@router.get("/bundle-recommendations/generate")
async def generate_bundle_recommendations(
    shop: Optional[str] = None,
    productId: Optional[str] = None,
    product_id: Optional[str] = None,
    limit: int = Query(DEFAULT_RECOMMENDATION_LIMIT, ge=1, le=MAX_RECOMMENDATION_LIMIT),
    discount: float = Query(DEFAULT_DISCOUNT_PCT, ge=0, le=100),
    bundleTitle: Optional[str] = None,
    excludeProductId: Optional[str] = None,
    x_shopify_shop_domain: Optional[str] = Header(None),
    catalog_factory: Callable[[str], CatalogClient] = Depends(get_catalog_factory),
    store: StorageService = Depends(get_storage),
):
    """Generate bundles for one anchor product (manual → platform → similarity)"""
    shop_id = sanitize_shop_id(shop) or sanitize_shop_id(x_shopify_shop_domain)
    if not shop_id:
        raise HTTPException(status_code=400, detail="shop is required")
    anchor_id = (productId or product_id or "").strip()
    if not anchor_id:
        raise HTTPException(status_code=400, detail="productId is required")

    catalog = catalog_factory(shop_id)
    start = time.monotonic()
    try:
        bundles = await generate_bundles_from_orders(
            shop=shop_id,
            product_id=anchor_id,
            limit=limit,
            default_discount_pct=discount,
            bundle_title=bundleTitle,
            exclude_product_id=excludeProductId,
            catalog=catalog,
            store=store,
        )
    except Exception as e:
        logger.error(f"Bundle generation error shop={shop_id} product={anchor_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to generate bundle recommendations")
    finally:
        aclose = getattr(catalog, "aclose", None)
        if aclose is not None:
            await aclose()

    logger.info(
        f"Bundle recommendations served | shop={shop_id} product={anchor_id} "
        f"count={len(bundles)} durMs={int((time.monotonic() - start) * 1000)}"
    )
    payload = {
        "success": True,
        "bundles": [bundle.to_dict() for bundle in bundles],
        "count": len(bundles),
    }
    if not bundles:
        payload["message"] = "No recommendations available"
    return payload
