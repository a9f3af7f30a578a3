"""
Bundles Router
Handles merchant-curated (manual) bundle definitions
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
import logging

from routers.bundle_recommendations import get_storage
from services.catalog import strip_gid
from services.recommendations.types import ManualBundleDefinition
from services.storage import StorageService
from settings import sanitize_shop_id

logger = logging.getLogger(__name__)
router = APIRouter()


class CreateBundleRequest(BaseModel):
    shop: str
    name: str = Field(min_length=1)
    productIds: List[str]
    discountPercent: Optional[float] = Field(default=None, ge=0, le=100)
    isActive: bool = True

    @field_validator("productIds")
    @classmethod
    def _at_least_two_products(cls, value: List[str]) -> List[str]:
        distinct = {strip_gid(v).strip() for v in value if v and strip_gid(v).strip()}
        if len(distinct) < 2:
            raise ValueError("Bundle must have at least 2 distinct products")
        return value


class UpdateBundleStatusRequest(BaseModel):
    isActive: Optional[bool] = None


def _serialize(definition: ManualBundleDefinition) -> dict:
    return {
        "id": definition.id,
        "name": definition.name,
        "productIds": list(definition.product_ids),
        "discountPercent": float(definition.discount_percent) if definition.discount_percent is not None else None,
        "isActive": definition.is_active,
        "source": "manual",
    }


@router.post("/bundles")
async def create_bundle(
    request: CreateBundleRequest,
    store: StorageService = Depends(get_storage),
):
    """Create a manual bundle definition"""
    shop_id = sanitize_shop_id(request.shop)
    if not shop_id:
        raise HTTPException(status_code=400, detail="shop is required")
    try:
        definition = await store.create_manual_bundle(
            shop=shop_id,
            name=request.name.strip(),
            product_ids=request.productIds,
            discount_percent=request.discountPercent,
            is_active=request.isActive,
        )
    except Exception as e:
        logger.error(f"Create bundle error: {e}")
        raise HTTPException(status_code=500, detail="Failed to create bundle")

    return {"success": True, "message": "Bundle created successfully", "bundle": _serialize(definition)}


@router.get("/bundles")
async def get_bundles(shop: str, store: StorageService = Depends(get_storage)):
    """List manual bundle definitions for a shop"""
    shop_id = sanitize_shop_id(shop)
    if not shop_id:
        raise HTTPException(status_code=400, detail="shop is required")
    try:
        definitions = await store.list_manual_bundles(shop_id)
    except Exception as e:
        logger.error(f"Get bundles error: {e}")
        raise HTTPException(status_code=500, detail="Failed to get bundles")

    return {
        "success": True,
        "bundles": [_serialize(d) for d in definitions],
        "stats": {
            "total": len(definitions),
            "active": sum(1 for d in definitions if d.is_active),
        },
    }


@router.patch("/bundles/{bundle_id}/status")
async def update_bundle_status(
    bundle_id: str,
    request: UpdateBundleStatusRequest,
    store: StorageService = Depends(get_storage),
):
    """Activate, deactivate, or (with an empty body) toggle a manual bundle"""
    try:
        definition = await store.set_manual_bundle_active(bundle_id, request.isActive)
    except Exception as e:
        logger.error(f"Update bundle status error: {e}")
        raise HTTPException(status_code=500, detail="Failed to update bundle")

    if definition is None:
        raise HTTPException(status_code=404, detail="Bundle not found")
    return {"success": True, "bundle": _serialize(definition)}
