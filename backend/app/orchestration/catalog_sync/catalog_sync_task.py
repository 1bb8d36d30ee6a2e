from __future__ import annotations
import asyncio, logging
from typing import Any, Callable, Dict, Iterable, Optional

from celery import shared_task
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.db.session import SessionLocal, session_scope
from app.integrations.shopify.errors import ShopifyAuthError
from app.integrations.shopify.partner_client import PartnerGraphQLClient
from app.orchestration.catalog_sync.utils import build_product_rows, collect_partner_catalog
from app.repository.partner_product_repo import upsert_partner_products
from app.repository.partner_repo import partition_partners, revoke_after_auth_failure
from app.repository.sync_log_repo import create_sync_log, finish_sync_log
from app.services.pricing.price_engine import PriceEngine
from app.utils.pagination import PaginatedResult

logger = logging.getLogger(__name__)

SYNC_TYPE = "products"


"""
  调试开关：True 时 API 触发的同步在当前进程内执行，不走 broker。
"""
def _inline_tasks_enabled() -> bool:
    return bool(getattr(settings, "SYNC_TASKS_INLINE", True))


@shared_task(name="app.orchestration.catalog_sync.sync_partner_catalog")
def sync_partner_catalog(shop: str) -> Dict[str, Any]:
    return run_catalog_sync([shop])


@shared_task(name="app.orchestration.catalog_sync.sync_all_partners")
def sync_all_partners() -> Dict[str, Any]:
    return run_catalog_sync()


def kick_partner_sync(shop: str) -> Dict[str, Any]:
    """API 入口：inline 模式直接跑，否则投递到 catalog 队列"""
    if _inline_tasks_enabled():
        return run_catalog_sync([shop])
    res = sync_partner_catalog.delay(shop)
    return {"queued": True, "task_id": res.id, "shop": shop}


async def _gather_catalogs(clients: Dict[str, Any], *, page_size: int, max_pages: Optional[int],
                           product_query: Optional[str]) -> Dict[str, Any]:
    # partner 之间并发；同一个 partner 的分页严格串行
    shops = list(clients.keys())
    results = await asyncio.gather(
        *(collect_partner_catalog(clients[s], page_size=page_size, max_pages=max_pages,
                                  product_query=product_query) for s in shops),
        return_exceptions=True,
    )
    return dict(zip(shops, results))


'''
一轮 catalog 同步：
    1) 读出可用 partner（revoked / soft_deleted 直接跳过）
    2) 并发拉每个 partner 的商品目录
    3) 逐个落库 + 写 SyncLog；401/403 → 吊销该 partner，其它错误只记失败
返回 {shop: {"status": ..., ...}}
'''
def run_catalog_sync(
    shops: Optional[Iterable[str]] = None,
    *,
    session_factory: Optional[sessionmaker] = None,
    client_factory: Callable[..., Any] = PartnerGraphQLClient.for_partner,
    price_engine: Optional[PriceEngine] = None,
    page_size: Optional[int] = None,
    max_pages: Optional[int] = None,
) -> Dict[str, Any]:
    factory = session_factory or SessionLocal
    price_engine = price_engine or PriceEngine.from_settings()
    page_size = page_size or settings.CATALOG_SYNC_PAGE_SIZE
    max_pages = max_pages or settings.CATALOG_SYNC_MAX_PAGES

    summary: Dict[str, Any] = {}

    with session_scope(factory) as db:
        partners, skipped = partition_partners(db, shops)

    for shop, status in skipped.items():
        logger.info("catalog.sync_skipped shop=%s status=%s", shop, status)
        summary[shop] = {"status": "skipped", "reason": status}

    clients: Dict[str, Any] = {}
    for partner in partners:
        try:
            clients[partner.shop] = client_factory(partner)
        except ShopifyAuthError as e:
            summary[partner.shop] = {"status": "skipped", "reason": str(e)}

    if not clients:
        logger.info("catalog.sync_nothing_to_do summary=%s", summary)
        return summary

    catalogs = asyncio.run(_gather_catalogs(
        clients, page_size=page_size, max_pages=max_pages,
        product_query=settings.CATALOG_SYNC_PRODUCT_QUERY,
    ))

    for shop, result in catalogs.items():
        try:
            summary[shop] = _persist_partner_result(factory, shop, result, price_engine)
        except Exception as e:
            # 单个 partner 落库出错不影响其它 partner
            logger.exception("catalog.partner_persist_crashed shop=%s", shop)
            summary[shop] = {"status": "failed", "error": f"{type(e).__name__}: {e}"}

    logger.info("catalog.sync_done partners=%s", len(summary))
    return summary


def _persist_partner_result(factory: sessionmaker, shop: str, result: Any, price_engine: PriceEngine) -> Dict[str, Any]:
    with session_scope(factory) as db:
        log = create_sync_log(db, sync_type=SYNC_TYPE, partner_shop=shop)

        if isinstance(result, ShopifyAuthError):
            logger.warning("catalog.partner_auth_failed shop=%s err=%s -> revoke", shop, result)
            if revoke_after_auth_failure(db, shop):
                finish_sync_log(db, log, status="failed", error_message=f"revoked: {result}")
                return {"status": "revoked", "error": str(result)}
            finish_sync_log(db, log, status="failed", error_message=f"auth failed, partner no longer active: {result}")
            return {"status": "failed", "error": str(result)}

        if isinstance(result, BaseException):
            logger.error("catalog.partner_fetch_failed shop=%s err=%s", shop, result)
            finish_sync_log(db, log, status="failed", error_message=f"{type(result).__name__}: {result}")
            return {"status": "failed", "error": f"{type(result).__name__}: {result}"}

        page: PaginatedResult[Dict[str, Any]] = result
        products = page.items
        # 截断的目录不完整：没看到的变体不能当成已下架
        truncated = bool(page.page_info and page.page_info.has_next_page)
        rows = build_product_rows(shop, products, price_engine=price_engine)
        try:
            counts = upsert_partner_products(db, shop, rows, prune_missing=not truncated)
        except Exception as e:
            logger.exception("catalog.persist_failed shop=%s", shop)
            finish_sync_log(db, log, status="failed", items_processed=len(rows),
                            items_failed=len(rows), error_message=f"{type(e).__name__}: {e}")
            return {"status": "failed", "error": f"{type(e).__name__}: {e}"}

        if truncated:
            logger.warning("catalog.partner_truncated shop=%s pages_limit_hit products=%s", shop, len(products))

        finish_sync_log(
            db, log, status="completed",
            items_processed=len(rows),
            items_created=counts["new"] + counts["restored"],
            items_updated=counts["updated"],
            error_message="truncated by page limit; missing variants kept" if truncated else None,
        )
        logger.info("catalog.partner_synced shop=%s products=%s rows=%s counts=%s", shop, len(products), len(rows), counts)
        return {"status": "completed", "products": len(products), "variants": len(rows),
                "truncated": truncated, **counts}
