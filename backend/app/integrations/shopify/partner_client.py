"""面向 partner 店铺 Admin GraphQL 的 Client：每个 partner 一个实例，用它自己的 access token"""
from __future__ import annotations

import logging
from typing import Any, Dict, Sequence

from app.infrastructure.ratelimit import RedisTokenBucketLimiter
from app.integrations.shopify.admin_client import AdminGraphQLClient, NODES_BATCH_SIZE
from app.integrations.shopify.errors import ShopifyAuthError, ShopifyPayloadError
from app.integrations.shopify.graphql_queries import (
    SHOP_PING_QUERY,
    VARIANT_INVENTORY_QUERY,
    _CREATE_WEBHOOK,
    _LIST_WEBHOOKS,
)
from app.services.partner_lifecycle import is_usable


logger = logging.getLogger(__name__)


class PartnerGraphQLClient(AdminGraphQLClient):

    log_prefix = "partner.graphql"


    @classmethod
    def for_partner(cls, partner, **kwargs) -> "PartnerGraphQLClient":
        # 软删除 / 已吊销的 partner 不允许再调用它的店铺
        if not is_usable(partner):
            shop = getattr(partner, "shop", None)
            raise ShopifyAuthError(f"partner {shop} is not usable (revoked or uninstalled)")
        if "limiter" not in kwargs:
            kwargs["limiter"] = RedisTokenBucketLimiter.for_partner(partner.shop)
        return cls(partner.shop, partner.access_token, **kwargs)


    # 基础连通性检查：token / 域名 / 版本是否正确
    def ping(self) -> dict:
        return self.post_graphql(SHOP_PING_QUERY, op_name="shop.ping")


    '''
    批量取变体当前库存 → {variant_gid: inventoryQuantity}
       - 已删除的变体（null 节点）和库存为空的变体不出现在结果里
    '''
    def variant_inventory(self, variant_ids: Sequence[str], *, batch_size: int = NODES_BATCH_SIZE) -> Dict[str, int]:
        nodes = self.fetch_nodes(VARIANT_INVENTORY_QUERY, variant_ids, op_name="variant.inventory", batch_size=batch_size)
        levels: Dict[str, int] = {}
        for node in nodes:
            qty = node.get("inventoryQuantity")
            if isinstance(qty, int) and not isinstance(qty, bool):
                levels[node["id"]] = qty
        logger.info("partner.inventory_read shop=%s requested=%s found=%s", self.shop, len(variant_ids), len(levels))
        return levels


    """
    确保 partner 店铺上存在指定 topic 的 webhook 订阅：
       - 若已存在同 callback → {"action":"noop", ...}
       - 否则创建 → {"action":"created", ...}
    """
    def ensure_webhook(self, topic: str, callback_url: str) -> Dict[str, Any]:
        q = self.post_graphql(_LIST_WEBHOOKS, {"first": 50, "topic": topic}, op_name="webhook.list")
        edges = ((q.get("data") or {}).get("webhookSubscriptions") or {}).get("edges", [])
        for e in edges:
            node = e.get("node") or {}
            ep = node.get("endpoint") or {}
            cb = ep.get("callbackUrl") if ep.get("__typename") == "WebhookHttpEndpoint" else None
            if cb == callback_url:
                return {"action": "noop", "id": node.get("id"), "topic": topic, "callbackUrl": callback_url}

        c = self.post_graphql(_CREATE_WEBHOOK, {"topic": topic, "cb": callback_url}, op_name="webhook.create")
        created = (c.get("data") or {}).get("webhookSubscriptionCreate") or {}
        ue = created.get("userErrors") or []
        if ue:
            raise ShopifyPayloadError(f"webhookSubscriptionCreate userErrors: {ue}")
        node = created.get("webhookSubscription") or {}
        return {"action": "created", "id": node.get("id"), "topic": node.get("topic", topic), "callbackUrl": callback_url}
