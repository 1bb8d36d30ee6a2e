from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from app.core.errors import PaginationError
from app.utils.pagination import PageInfo


'''
pagination 引擎用的两个提取函数（R = GraphQL data 对象）：
   - extract_products:  data -> [product node]
   - extract_products_page_info: data -> PageInfo
'''
def _products_connection(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict) or not isinstance(data.get("products"), dict):
        raise PaginationError("response is missing the products connection")
    return data["products"]


def extract_products(data: Any) -> List[Dict[str, Any]]:
    edges = _products_connection(data).get("edges") or []
    return [e["node"] for e in edges if isinstance(e, dict) and isinstance(e.get("node"), dict)]


def extract_products_page_info(data: Any) -> PageInfo:
    return PageInfo.from_graphql(_products_connection(data).get("pageInfo"))


def normalize_shopify_price(value: Any) -> Optional[Decimal]:
    """
    将 Shopify 变体上的 price 转换为 Decimal，失败则返回 None。
    NaN / Infinity 同样返回 None。
    """
    if value is None:
        return None
    try:
        d = Decimal(str(value))
        if not d.is_finite():
            return None
        return d.quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError, TypeError):
        return None


def flatten_variants(product: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    product node -> 每个变体一行：
      {product_id, variant_id, title, sku, price, inventory_quantity}
    单变体商品的变体标题通常是 "Default Title"，直接用商品标题。
    """
    rows: List[Dict[str, Any]] = []
    product_title = (product.get("title") or "").strip()
    edges = ((product.get("variants") or {}).get("edges")) or []

    for edge in edges:
        node = (edge or {}).get("node") or {}
        if not node.get("id"):
            continue
        variant_title = (node.get("title") or "").strip()
        if variant_title and variant_title != "Default Title":
            title = f"{product_title} - {variant_title}"
        else:
            title = product_title

        qty = node.get("inventoryQuantity")
        rows.append({
            "product_id": product.get("id"),
            "variant_id": node["id"],
            "title": title,
            "sku": (node.get("sku") or "").strip() or None,
            "price": normalize_shopify_price(node.get("price")),
            "inventory_quantity": int(qty) if isinstance(qty, (int, float)) else None,
        })
    return rows
