"""Shared plumbing for bundle resolvers."""
from __future__ import annotations

import functools
import logging
from typing import Callable, List

from services.recommendations.types import BundleRequest, GeneratedBundle

logger = logging.getLogger(__name__)


def fail_soft(func: Callable) -> Callable:
    """
    Resolver boundary: any exception becomes an empty result so the
    orchestrator can fall through to the next strategy.
    """
    @functools.wraps(func)
    async def wrapper(self, request: BundleRequest) -> List[GeneratedBundle]:
        try:
            return await func(self, request)
        except Exception as e:
            logger.warning(
                f"{getattr(self, 'name', type(self).__name__)} resolver failed soft "
                f"shop={request.shop} product={request.product_id}: {type(e).__name__}: {e}"
            )
            return []
    return wrapper


def partner_limit(limit: int) -> int:
    """Pairwise resolvers always offer at least three partners."""
    return max(3, int(limit))
