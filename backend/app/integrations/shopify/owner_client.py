"""面向 owner 店铺 Admin GraphQL 的 Client：查 location、按 partner SKU 找 inventoryItem、批量写库存"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from app.infrastructure.ratelimit import RedisTokenBucketLimiter
from app.integrations.shopify.admin_client import AdminGraphQLClient, chunked
from app.integrations.shopify.errors import ShopifyAuthError, ShopifyError, ShopifyPayloadError
from app.integrations.shopify.graphql_queries import (
    INVENTORY_SET_QUANTITIES_MUTATION,
    LOCATIONS_QUERY,
    OWNER_VARIANTS_BY_SKU_QUERY,
    sku_search_query,
)


logger = logging.getLogger(__name__)

SKU_LOOKUP_BATCH_SIZE = 50
WRITE_BATCH_SIZE = 10


@dataclass(frozen=True)
class InventoryUpdate:
    inventory_item_id: str
    quantity: int


@dataclass
class InventoryWriteResult:
    updated: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


class OwnerStoreClient(AdminGraphQLClient):

    log_prefix = "owner.graphql"


    @classmethod
    def for_connection(cls, connection, **kwargs) -> "OwnerStoreClient":
        if not connection.ok:
            raise ShopifyAuthError(f"owner store {connection.shop} is not connected: {connection.error}")
        if "limiter" not in kwargs:
            kwargs["limiter"] = RedisTokenBucketLimiter.for_partner(connection.shop)
        return cls(connection.shop, connection.access_token, **kwargs)


    def primary_location_id(self) -> Optional[str]:
        data = self.fetch_data(LOCATIONS_QUERY, op_name="locations")
        edges = ((data.get("locations") or {}).get("edges")) or []
        for edge in edges:
            node = (edge or {}).get("node") or {}
            if node.get("id"):
                return node["id"]
        return None


    '''
    partner SKU → owner 店铺变体的 inventoryItem GID
       - 搜索是模糊匹配，结果里只认 sku 完全相等的变体
       - 同一个 SKU 命中多个变体时取第一个，并打 warning
       - 找不到的 SKU 不出现在结果里
    '''
    def inventory_items_by_sku(self, skus: Sequence[str], *, batch_size: int = SKU_LOOKUP_BATCH_SIZE) -> Dict[str, str]:
        wanted = [s for s in dict.fromkeys(skus) if s]
        found: Dict[str, str] = {}
        for batch in chunked(wanted, max(1, batch_size)):
            data = self.fetch_data(
                OWNER_VARIANTS_BY_SKU_QUERY,
                {"first": 250, "query": sku_search_query(batch)},
                op_name="variants.by_sku",
            )
            connection = data.get("productVariants")
            if not isinstance(connection, dict):
                raise ShopifyPayloadError("response is missing the productVariants connection")
            batch_set = set(batch)
            for edge in connection.get("edges") or []:
                node = (edge or {}).get("node") or {}
                sku = node.get("sku")
                item_id = (node.get("inventoryItem") or {}).get("id")
                if sku not in batch_set or not item_id:
                    continue
                if sku in found and found[sku] != item_id:
                    logger.warning("owner.sku_ambiguous shop=%s sku=%s kept=%s ignored=%s", self.shop, sku, found[sku], item_id)
                    continue
                found[sku] = item_id
        logger.info("owner.sku_lookup shop=%s requested=%s found=%s", self.shop, len(wanted), len(found))
        return found


    '''
    批量覆盖 available 库存（inventorySetQuantities）
       - 每批 batch_size 个，批与批之间互不影响
       - userErrors / 非鉴权的请求失败 → 整批计为 failed
       - 401/403 直接抛 ShopifyAuthError：token 失效时后面的批次也不会成功
    '''
    def set_inventory_quantities(
        self,
        location_id: str,
        updates: Sequence[InventoryUpdate],
        *,
        batch_size: int = WRITE_BATCH_SIZE,
    ) -> InventoryWriteResult:
        result = InventoryWriteResult()
        for batch in chunked(list(updates), max(1, batch_size)):
            payload: Dict[str, Any] = {
                "input": {
                    "ignoreCompareQuantity": True,
                    "reason": "correction",
                    "name": "available",
                    "quantities": [
                        {"inventoryItemId": u.inventory_item_id, "locationId": location_id, "quantity": u.quantity}
                        for u in batch
                    ],
                }
            }
            try:
                data = self.fetch_data(INVENTORY_SET_QUANTITIES_MUTATION, payload, op_name="inventorySetQuantities")
            except ShopifyAuthError:
                raise
            except ShopifyError as e:
                logger.warning("owner.inventory_batch_failed shop=%s size=%s err=%s", self.shop, len(batch), e)
                result.failed += len(batch)
                result.errors.append(f"Batch write error: {e}")
                continue

            user_errors = (data.get("inventorySetQuantities") or {}).get("userErrors") or []
            if user_errors:
                logger.warning("owner.inventory_user_errors shop=%s size=%s sample=%s", self.shop, len(user_errors), user_errors[:3])
                result.failed += len(batch)
                result.errors.extend(
                    f"{'.'.join(str(f) for f in (e.get('field') or []))}: {e.get('message')}" for e in user_errors
                )
            else:
                result.updated += len(batch)
        return result
