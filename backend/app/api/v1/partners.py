# Partner 管理接口：列表 / 详情 / 商品分页（实时）/ 缓存商品 / 手动同步 / 撤销

from __future__ import annotations
import asyncio, logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_client_factory, get_price_engine
from app.core.errors import PaginationError, PartnerLifecycleError
from app.db.session import get_db
from app.integrations.shopify.errors import ShopifyAuthError, ShopifyError
from app.integrations.shopify.graphql_queries import PRODUCTS_QUERY
from app.integrations.shopify.payload_utils import extract_products, extract_products_page_info
from app.orchestration.catalog_sync.catalog_sync_task import kick_partner_sync
from app.orchestration.catalog_sync.utils import build_product_rows
from app.repository.partner_product_repo import list_partner_products
from app.repository.partner_repo import find_partner_by_shop, get_all_partners, revoke_partner
from app.repository.sync_log_repo import recent_sync_logs
from app.services.pricing.price_engine import PriceEngine, format_price
from app.utils.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, fetch_page

logger = logging.getLogger(__name__)

router = APIRouter(tags=["partners"])


# ---------- Pydantic 模型（返回结构更清晰，OpenAPI 也更友好）；token 永不出现在响应里 ----------
class PartnerOut(BaseModel):
    shop: str
    status: str
    scope: Optional[str] = None
    is_active: bool
    is_deleted: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


class ProductRowOut(BaseModel):
    partner_product_id: Optional[str] = None
    partner_variant_id: str
    title: Optional[str] = None
    sku: Optional[str] = None
    partner_sku: str
    price: Optional[str] = None           # 两位小数字符串
    selling_price: Optional[str] = None
    inventory_quantity: Optional[int] = None


class PageInfoOut(BaseModel):
    has_next_page: bool
    end_cursor: Optional[str] = None


class ProductPageOut(BaseModel):
    shop: str
    items: List[ProductRowOut]
    page_info: PageInfoOut


class SyncLogOut(BaseModel):
    id: int
    partner_shop: Optional[str] = None
    sync_type: str
    status: str
    items_processed: int
    items_created: int
    items_updated: int
    items_failed: int
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


def _partner_out(p) -> PartnerOut:
    return PartnerOut(
        shop=p.shop, status=p.status.value, scope=p.scope,
        is_active=p.is_active, is_deleted=p.is_deleted,
        created_at=p.created_at, updated_at=p.updated_at, deleted_at=p.deleted_at,
    )


def _price_str(value) -> Optional[str]:
    return None if value is None else format_price(value)


def _row_out(row: Dict[str, Any]) -> ProductRowOut:
    return ProductRowOut(
        partner_product_id=row.get("partner_product_id"),
        partner_variant_id=str(row["partner_variant_id"]),
        title=row.get("title"),
        sku=row.get("sku"),
        partner_sku=row["partner_sku"],
        price=_price_str(row.get("price")),
        selling_price=_price_str(row.get("selling_price")),
        inventory_quantity=row.get("inventory_quantity"),
    )


def _partner_or_404(db: Session, shop: str):
    partner = find_partner_by_shop(db, shop)
    if partner is None:
        raise HTTPException(status_code=404, detail=f"Partner {shop} not found")
    return partner


@router.get("/partners", response_model=List[PartnerOut])
def list_partners(include_deleted: bool = False, db: Session = Depends(get_db)):
    return [_partner_out(p) for p in get_all_partners(db, include_deleted=include_deleted)]


@router.get("/partners/{shop}")
def get_partner(shop: str, db: Session = Depends(get_db)):
    partner = _partner_or_404(db, shop)
    return {
        "partner": _partner_out(partner),
        "cached_products": len(list_partner_products(db, shop)),
        "recent_syncs": [SyncLogOut.model_validate(log, from_attributes=True) for log in recent_sync_logs(db, shop, limit=10)],
    }


'''
GET /partners/{shop}/products?cursor=&page_size=
   - 实时从 partner 店铺取一页（“加载更多”：前端把 end_cursor 带回来）
   - 价格按当前默认 margin 现算
   - 普通 def：FastAPI 放进线程池跑，DB 查询不会卡住事件循环；GraphQL 在本线程 asyncio.run
'''
@router.get("/partners/{shop}/products", response_model=ProductPageOut)
def partner_products_page(
    shop: str,
    cursor: Optional[str] = None,
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    client_factory: Callable[..., Any] = Depends(get_client_factory),
    price_engine: PriceEngine = Depends(get_price_engine),
):
    partner = _partner_or_404(db, shop)
    if not partner.is_usable:
        raise HTTPException(status_code=409, detail=f"Partner {shop} is {partner.status.value}")

    try:
        client = client_factory(partner)
        page = asyncio.run(fetch_page(
            client.query, PRODUCTS_QUERY, extract_products, extract_products_page_info,
            cursor=cursor, page_size=page_size,
        ))
    except ShopifyAuthError as e:
        logger.warning("partners.products_auth_failed shop=%s err=%s", shop, e)
        raise HTTPException(status_code=409, detail=f"Partner {shop} rejected our access token")
    except (ShopifyError, PaginationError) as e:
        logger.error("partners.products_fetch_failed shop=%s err=%s", shop, e)
        raise HTTPException(status_code=502, detail=f"Failed to load products from {shop}")

    rows = build_product_rows(shop, page.items, price_engine=price_engine)
    return ProductPageOut(
        shop=shop,
        items=[_row_out(r) for r in rows],
        page_info=PageInfoOut(has_next_page=page.page_info.has_next_page, end_cursor=page.page_info.end_cursor),
    )


@router.get("/partners/{shop}/cached-products", response_model=List[ProductRowOut])
def partner_cached_products(shop: str, include_deleted: bool = False, db: Session = Depends(get_db)):
    _partner_or_404(db, shop)
    return [
        _row_out({
            "partner_product_id": p.partner_product_id,
            "partner_variant_id": p.partner_variant_id,
            "title": p.title,
            "sku": p.sku,
            "partner_sku": p.partner_sku,
            "price": p.price,
            "selling_price": p.selling_price,
            "inventory_quantity": p.inventory_quantity,
        })
        for p in list_partner_products(db, shop, include_deleted=include_deleted)
    ]


@router.post("/partners/{shop}/sync")
def sync_partner(shop: str, db: Session = Depends(get_db)):
    partner = _partner_or_404(db, shop)
    if not partner.is_usable:
        raise HTTPException(status_code=409, detail=f"Partner {shop} is {partner.status.value}")
    return {"ok": True, "shop": shop, "result": kick_partner_sync(shop)}


@router.post("/partners/{shop}/revoke", response_model=PartnerOut)
def revoke(shop: str, db: Session = Depends(get_db)):
    _partner_or_404(db, shop)
    try:
        partner = revoke_partner(db, shop)
    except PartnerLifecycleError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _partner_out(partner)


@router.get("/sync-logs", response_model=List[SyncLogOut])
def sync_logs(shop: Optional[str] = None, limit: int = Query(50, ge=1, le=500), db: Session = Depends(get_db)):
    return [SyncLogOut.model_validate(log, from_attributes=True) for log in recent_sync_logs(db, shop, limit)]
