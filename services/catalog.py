"""
Shopify Catalog Client
Read-only Admin GraphQL access to products, recommendations and recent orders.

Every call is single-attempt. Transport errors, timeouts, GraphQL ``errors``
and malformed payloads all surface as CatalogUnavailable so resolvers can fail
soft on one exception type.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol
import logging

import httpx

from services.recommendations.types import CatalogOrder, CatalogProduct
from settings import (
    CATALOG_TIMEOUT_SECONDS,
    SHOPIFY_API_VERSION,
    sanitize_shop_id,
    shopify_access_token,
)
from utils import as_decimal

logger = logging.getLogger(__name__)

PRODUCT_GID_PREFIX = "gid://shopify/Product/"
VARIANT_GID_PREFIX = "gid://shopify/ProductVariant/"

SORT_KEYS = {
    "best_selling": "BEST_SELLING",
    "created_at": "CREATED_AT",
    "title": "TITLE",
    "updated_at": "UPDATED_AT",
}


class CatalogUnavailable(RuntimeError):
    """Any network or parsing failure while talking to the commerce platform."""


def strip_gid(value: Optional[str], prefix: str = PRODUCT_GID_PREFIX) -> str:
    """'gid://shopify/Product/123' -> '123'; bare ids pass through."""
    return (value or "").replace(prefix, "")


def strip_variant_gid(value: Optional[str]) -> str:
    return strip_gid(value, VARIANT_GID_PREFIX)


def to_product_gid(product_id: str) -> str:
    product_id = str(product_id)
    if product_id.startswith("gid://"):
        return product_id
    return f"{PRODUCT_GID_PREFIX}{product_id}"


# -------------------------------------------------------------------
# GraphQL documents
# -------------------------------------------------------------------
_PRODUCT_FIELDS = """
  id
  title
  vendor
  productType
  variants(first: 1) { edges { node { id price } } }
"""

PRODUCT_QUERY = """
query product($id: ID!) {
  product(id: $id) {%s}
}
""" % _PRODUCT_FIELDS

PRODUCTS_BY_IDS_QUERY = """
query productsByIds($ids: [ID!]!) {
  nodes(ids: $ids) {
    ... on Product {%s}
  }
}
""" % _PRODUCT_FIELDS

RECOMMENDATIONS_QUERY = """
query productRecommendations($productId: ID!) {
  productRecommendations(productId: $productId) {%s}
}
""" % _PRODUCT_FIELDS

LIST_PRODUCTS_QUERY = """
query listProducts($first: Int!, $sortKey: ProductSortKeys!) {
  products(first: $first, sortKey: $sortKey) {
    edges { node {%s} }
  }
}
""" % _PRODUCT_FIELDS

RECENT_ORDERS_QUERY = """
query recentOrders($first: Int!) {
  orders(first: $first, sortKey: CREATED_AT, reverse: true) {
    edges { node {
      id
      createdAt
      lineItems(first: 30) { edges { node { product { id } } } }
    } }
  }
}
"""


class CatalogClient(Protocol):
    """Outbound catalog contract consumed by the recommendation resolvers."""

    async def get_products_by_ids(self, ids: Iterable[str]) -> List[CatalogProduct]:
        ...

    async def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        ...

    async def get_recommendations(self, product_id: str) -> List[CatalogProduct]:
        ...

    async def list_products(self, sort: str = "best_selling", first: int = 75) -> List[CatalogProduct]:
        ...

    async def list_recent_orders(self, first: int = 200) -> List[CatalogOrder]:
        ...


def parse_product(node: Optional[Dict[str, Any]]) -> Optional[CatalogProduct]:
    """Map a Product node onto CatalogProduct using its first variant; None if unusable."""
    if not isinstance(node, dict) or not node.get("id"):
        return None

    variant: Dict[str, Any] = {}
    variants = node.get("variants") or {}
    edges = variants.get("edges") or []
    if edges and isinstance(edges[0], dict):
        variant = edges[0].get("node") or {}
    elif variants.get("nodes"):
        variant = variants["nodes"][0] or {}

    price = variant.get("price")
    if isinstance(price, dict):  # MoneyV2 shape
        price = price.get("amount")

    return CatalogProduct(
        id=strip_gid(node["id"]),
        variant_id=strip_variant_gid(variant.get("id")),
        title=node.get("title") or "",
        price=as_decimal(price),
        vendor=node.get("vendor") or "",
        product_type=node.get("productType") or "",
    )


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ShopifyCatalogClient:
    """Admin GraphQL client scoped to a single shop."""

    def __init__(
        self,
        shop: str,
        access_token: str,
        api_version: str = SHOPIFY_API_VERSION,
        timeout: float = CATALOG_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.shop = sanitize_shop_id(shop) or ""
        self.endpoint = f"https://{self.shop}/admin/api/{api_version}/graphql.json"
        self._headers = {"Content-Type": "application/json"}
        if access_token:
            self._headers["X-Shopify-Access-Token"] = access_token
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ShopifyCatalogClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _gql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        if not self.shop:
            raise CatalogUnavailable("shop domain is not set")
        try:
            response = await self._client.post(
                self.endpoint,
                headers=self._headers,
                json={"query": query, "variables": variables},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise CatalogUnavailable(f"Shopify request failed for {self.shop}: {e}") from e
        except ValueError as e:
            raise CatalogUnavailable(f"Shopify returned invalid JSON for {self.shop}") from e

        if not isinstance(payload, dict):
            raise CatalogUnavailable("unexpected GraphQL payload")
        if payload.get("errors"):
            raise CatalogUnavailable(f"GraphQL errors: {payload['errors']}")
        data = payload.get("data")
        if not isinstance(data, dict):
            raise CatalogUnavailable("GraphQL response has no data")
        return data

    async def get_products_by_ids(self, ids: Iterable[str]) -> List[CatalogProduct]:
        """Batched lookup; deleted products are dropped, request order is preserved."""
        unique_ids: List[str] = []
        for pid in ids:
            bare = strip_gid(str(pid))
            if bare and bare not in unique_ids:
                unique_ids.append(bare)
        if not unique_ids:
            return []

        data = await self._gql(
            PRODUCTS_BY_IDS_QUERY, {"ids": [to_product_gid(pid) for pid in unique_ids]}
        )
        by_id: Dict[str, CatalogProduct] = {}
        for node in data.get("nodes") or []:
            product = parse_product(node)
            if product:
                by_id[product.id] = product
        return [by_id[pid] for pid in unique_ids if pid in by_id]

    async def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        data = await self._gql(PRODUCT_QUERY, {"id": to_product_gid(product_id)})
        return parse_product(data.get("product"))

    async def get_recommendations(self, product_id: str) -> List[CatalogProduct]:
        data = await self._gql(RECOMMENDATIONS_QUERY, {"productId": to_product_gid(product_id)})
        nodes = data.get("productRecommendations") or []
        return [p for p in (parse_product(n) for n in nodes) if p]

    async def list_products(self, sort: str = "best_selling", first: int = 75) -> List[CatalogProduct]:
        sort_key = SORT_KEYS.get(sort)
        if sort_key is None:
            raise ValueError(f"unsupported product sort: {sort}")
        data = await self._gql(LIST_PRODUCTS_QUERY, {"first": int(first), "sortKey": sort_key})
        edges = (data.get("products") or {}).get("edges") or []
        return [p for p in (parse_product(e.get("node")) for e in edges if isinstance(e, dict)) if p]

    async def list_recent_orders(self, first: int = 200) -> List[CatalogOrder]:
        data = await self._gql(RECENT_ORDERS_QUERY, {"first": int(first)})
        orders: List[CatalogOrder] = []
        for edge in (data.get("orders") or {}).get("edges") or []:
            node = (edge or {}).get("node") or {}
            created_at = _parse_timestamp(node.get("createdAt"))
            if created_at is None:
                continue
            product_ids = []
            for line in (node.get("lineItems") or {}).get("edges") or []:
                product = ((line or {}).get("node") or {}).get("product") or {}
                if product.get("id"):
                    product_ids.append(strip_gid(product["id"]))
            orders.append(CatalogOrder(created_at=created_at, product_ids=tuple(product_ids)))
        return orders


def get_catalog_client(shop: str) -> ShopifyCatalogClient:
    """Build an authenticated client for one shop from environment credentials."""
    token = shopify_access_token(shop)
    if not token:
        logger.warning(f"No Shopify access token configured for shop={shop}")
    return ShopifyCatalogClient(shop=shop, access_token=token)
