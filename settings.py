"""
Centralized configuration helpers for shop scoping and recommendation defaults.
"""
from __future__ import annotations

import os
import re
from typing import Optional, Any

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Shopify Admin API
SHOPIFY_API_VERSION: str = os.getenv("SHOPIFY_API_VERSION", "2025-07")
CATALOG_TIMEOUT_SECONDS: float = float(os.getenv("CATALOG_TIMEOUT_SECONDS", "10"))

# Recommendation defaults
DEFAULT_BUNDLE_TITLE: str = os.getenv("DEFAULT_BUNDLE_TITLE", "Complete your setup")
DEFAULT_DISCOUNT_PCT: float = float(os.getenv("DEFAULT_DISCOUNT_PCT", "10"))
DEFAULT_RECOMMENDATION_LIMIT: int = int(os.getenv("DEFAULT_RECOMMENDATION_LIMIT", "4"))
MAX_RECOMMENDATION_LIMIT: int = int(os.getenv("MAX_RECOMMENDATION_LIMIT", "20"))
SIMILARITY_POOL_SIZE: int = int(os.getenv("SIMILARITY_POOL_SIZE", "75"))
RECENT_ORDERS_WINDOW: int = int(os.getenv("RECENT_ORDERS_WINDOW", "200"))
COPURCHASE_ENABLED: bool = _env_bool("COPURCHASE_ENABLED", False)


def sanitize_shop_id(value: Optional[Any]) -> Optional[str]:
    """Normalize raw shop domains (strip protocol/slashes/whitespace, lower-case)."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    text = str(value).strip()
    lowered = text.lower()
    if lowered.startswith("https://"):
        text = text[8:]
    elif lowered.startswith("http://"):
        text = text[7:]
    text = text.strip().strip("/\t\n\r ")
    if not text:
        return None
    return text.lower()


def _store_suffix(shop: str) -> str:
    return "_" + re.sub(r"[^A-Za-z0-9]", "_", shop.upper())


def shopify_access_token(shop: str) -> str:
    """
    Resolve the Admin API token for a shop.

    SHOPIFY_ACCESS_TOKEN_<SHOP> wins (shop upper-cased, non-alphanumerics as
    underscores), then the shared SHOPIFY_ACCESS_TOKEN.
    """
    normalized = sanitize_shop_id(shop) or ""
    if normalized:
        scoped = os.getenv(f"SHOPIFY_ACCESS_TOKEN{_store_suffix(normalized)}")
        if scoped:
            return scoped
    return os.getenv("SHOPIFY_ACCESS_TOKEN", "")
