from __future__ import annotations
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.core.errors import DomainError
from app.integrations.shopify.graphql_queries import PRODUCTS_QUERY
from app.integrations.shopify.payload_utils import extract_products, extract_products_page_info, flatten_variants
from app.services import sku_codec
from app.services.pricing.price_engine import PriceEngine
from app.utils.pagination import DEFAULT_PAGE_SIZE, PaginatedResult, drain_pages

logger = logging.getLogger(__name__)


async def collect_partner_catalog(
    client,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_pages: Optional[int] = None,
    product_query: Optional[str] = None,
) -> PaginatedResult[Dict[str, Any]]:
    """
    按 cursor 顺序拉完某个 partner 的商品（product node 列表），单条流内严格串行。
    被 max_pages 截断时 page_info.has_next_page 仍为 True：这不是完整目录。
    """
    variables = {"query": product_query} if product_query else {}
    return await drain_pages(
        client.query,
        PRODUCTS_QUERY,
        extract_products,
        extract_products_page_info,
        variables,
        page_size=page_size,
        max_pages=max_pages,
    )


def _selling_price(price_engine: PriceEngine, shop: str, price: Optional[Decimal]) -> Optional[Decimal]:
    if price is None:
        return None
    try:
        return price_engine.selling_price(price)
    except DomainError as e:
        logger.warning("catalog.selling_price_skipped shop=%s price=%s err=%s", shop, price, e)
        return None


'''
product node 列表 → partner_products 缓存行：
   - 每个变体一行，partner_sku = PARTNER-{shopPrefix}-{normalized sku}
   - selling_price 用默认 margin 算；partner 价格缺失/非法时留空
'''
def build_product_rows(
    shop: str,
    products: List[Dict[str, Any]],
    codec=sku_codec,
    price_engine: Optional[PriceEngine] = None,
) -> List[Dict[str, Any]]:
    price_engine = price_engine or PriceEngine.from_settings()
    rows: List[Dict[str, Any]] = []
    for product in products:
        for v in flatten_variants(product):
            rows.append({
                "partner_product_id": v["product_id"],
                "partner_variant_id": v["variant_id"],
                "title": v["title"],
                "sku": v["sku"],
                "partner_sku": codec.encode(shop, v["sku"]),
                "price": v["price"],
                "selling_price": _selling_price(price_engine, shop, v["price"]),
                "inventory_quantity": v["inventory_quantity"],
            })
    return rows
