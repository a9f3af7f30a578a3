"""
Storage Service Layer
Read/write access to merchant-curated bundle definitions
"""
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload
from typing import List, Optional, Sequence, Any
import logging
from decimal import Decimal

from database import AsyncSessionLocal, ManualBundle, ManualBundleItem
from services.catalog import strip_gid
from services.recommendations.types import ManualBundleDefinition
from settings import sanitize_shop_id
from utils import retry_async

logger = logging.getLogger(__name__)


class PersistenceUnavailable(RuntimeError):
    """Reading manual bundle definitions failed."""


def _to_definition(row: ManualBundle) -> ManualBundleDefinition:
    items = sorted(row.items, key=lambda item: item.position)
    return ManualBundleDefinition(
        id=row.id,
        name=row.name,
        product_ids=tuple(item.product_id for item in items),
        discount_percent=Decimal(row.discount_percent) if row.discount_percent is not None else None,
        is_active=bool(row.is_active),
    )


class StorageService:
    """Storage service providing manual bundle operations"""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or AsyncSessionLocal

    def get_session(self):
        """Get database session context manager"""
        return self._session_factory()

    # ---------- recommendation pipeline (read-only) ----------

    async def find_active_manual_bundles(
        self, shop: str, product_id: str, limit: int
    ) -> List[ManualBundleDefinition]:
        """Active definitions for ``shop`` containing ``product_id``, oldest first, capped at ``limit``."""
        try:
            return await self._query_active_manual_bundles(
                sanitize_shop_id(shop) or "", strip_gid(product_id), limit
            )
        except SQLAlchemyError as e:
            raise PersistenceUnavailable(f"manual bundle lookup failed for shop={shop}: {e}") from e

    @retry_async(max_retries=2, base_delay=0.2)
    async def _query_active_manual_bundles(
        self, shop: str, product_id: str, limit: int
    ) -> List[ManualBundleDefinition]:
        stmt = (
            select(ManualBundle)
            .join(ManualBundleItem, ManualBundleItem.bundle_id == ManualBundle.id)
            .where(
                ManualBundle.shop_id == shop,
                ManualBundle.is_active.is_(True),
                ManualBundleItem.product_id == product_id,
            )
            .options(selectinload(ManualBundle.items))
            .order_by(ManualBundle.created_at.asc(), ManualBundle.id.asc())
            .limit(max(0, int(limit)))
        )
        async with self.get_session() as session:
            result = await session.execute(stmt)
            return [_to_definition(row) for row in result.scalars().all()]

    # ---------- management (admin router) ----------

    async def create_manual_bundle(
        self,
        shop: str,
        name: str,
        product_ids: Sequence[str],
        discount_percent: Optional[Any] = None,
        is_active: bool = True,
    ) -> ManualBundleDefinition:
        ordered: List[str] = []
        for pid in product_ids:
            bare = strip_gid(str(pid)).strip()
            if bare and bare not in ordered:
                ordered.append(bare)

        bundle = ManualBundle(
            shop_id=sanitize_shop_id(shop) or "",
            name=name,
            discount_percent=Decimal(str(discount_percent)) if discount_percent is not None else None,
            is_active=is_active,
            items=[
                ManualBundleItem(product_id=pid, position=position)
                for position, pid in enumerate(ordered)
            ],
        )
        async with self.get_session() as session:
            session.add(bundle)
            await session.commit()
            logger.info(f"Created manual bundle id={bundle.id} shop={bundle.shop_id} items={len(ordered)}")
            return _to_definition(bundle)

    async def list_manual_bundles(self, shop: str) -> List[ManualBundleDefinition]:
        stmt = (
            select(ManualBundle)
            .where(ManualBundle.shop_id == (sanitize_shop_id(shop) or ""))
            .options(selectinload(ManualBundle.items))
            .order_by(ManualBundle.created_at.desc())
        )
        async with self.get_session() as session:
            result = await session.execute(stmt)
            return [_to_definition(row) for row in result.scalars().all()]

    async def set_manual_bundle_active(
        self, bundle_id: str, is_active: Optional[bool] = None
    ) -> Optional[ManualBundleDefinition]:
        """Set ``is_active``; None toggles. Returns None when the bundle does not exist."""
        async with self.get_session() as session:
            bundle = await session.get(
                ManualBundle, bundle_id, options=[selectinload(ManualBundle.items)]
            )
            if bundle is None:
                return None
            bundle.is_active = (not bundle.is_active) if is_active is None else is_active
            await session.commit()
            return _to_definition(bundle)


storage = StorageService()
