from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from celery import shared_task
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.db.model.partner import PartnerProduct
from app.db.session import SessionLocal, session_scope
from app.integrations.shopify.errors import ShopifyAuthError, ShopifyError
from app.integrations.shopify.owner_client import InventoryUpdate, OwnerStoreClient
from app.integrations.shopify.partner_client import PartnerGraphQLClient
from app.orchestration.catalog_sync.catalog_sync_task import _inline_tasks_enabled
from app.repository.partner_product_repo import list_partner_products, record_inventory_levels
from app.repository.partner_repo import partition_partners, revoke_after_auth_failure
from app.repository.sync_log_repo import create_sync_log, finish_sync_log
from app.services.owner_store import OwnerConnection, OwnerStoreTokenProvider

logger = logging.getLogger(__name__)

SYNC_TYPE = "inventory"


class OwnerStoreUnavailable(Exception):
    """owner 店铺连不上 / 拒绝 token：本轮剩下的 partner 都不用再试"""


@shared_task(name="app.orchestration.inventory_sync.sync_partner_inventory")
def sync_partner_inventory(shop: str) -> Dict[str, Any]:
    return run_inventory_sync([shop])


@shared_task(name="app.orchestration.inventory_sync.sync_all_inventory")
def sync_all_inventory() -> Dict[str, Any]:
    return run_inventory_sync()


def kick_inventory_sync(shop: Optional[str] = None) -> Dict[str, Any]:
    """API 入口：inline 模式直接跑，否则投递到 inventory 队列"""
    if _inline_tasks_enabled():
        return run_inventory_sync([shop] if shop else None)
    res = sync_partner_inventory.delay(shop) if shop else sync_all_inventory.delay()
    return {"queued": True, "task_id": res.id, "shop": shop}


def _owner_failure(factory: sessionmaker, message: str) -> Dict[str, Any]:
    logger.error("inventory.owner_unavailable err=%s", message)
    with session_scope(factory) as db:
        create_sync_log(db, sync_type=SYNC_TYPE, status="failed", error_message=f"owner store: {message}")
    return {"status": "failed", "error": message, "partners": {}}


def _ensure_location(connection: OwnerConnection, owner, provider: OwnerStoreTokenProvider) -> OwnerConnection:
    if connection.location_id:
        return connection
    location_id = owner.primary_location_id()
    if not location_id:
        return connection
    logger.info("inventory.owner_location_resolved shop=%s location=%s", connection.shop, location_id)
    return provider.remember_location(connection, location_id)


'''
一轮库存同步（partner 库存为准，覆盖 owner 店铺的 available）：
    1) 取 owner 连接（token 快过期会先续期），没有 location 就查一次并缓存
    2) 读出可用 partner 及其未删除的缓存商品
    3) 每个 partner：读 partner 变体库存 → 按 partner SKU 找 owner 的 inventoryItem → 小批量写入
    4) 每个 partner 一条 SyncLog；partner 401/403 → 吊销该 partner；owner 401/403 → 清 owner token，本轮结束
返回 {"status", "partners": {shop: {...}}}
'''
def run_inventory_sync(
    shops: Optional[Iterable[str]] = None,
    *,
    session_factory: Optional[sessionmaker] = None,
    token_provider: Optional[OwnerStoreTokenProvider] = None,
    owner_client_factory: Callable[..., Any] = OwnerStoreClient.for_connection,
    partner_client_factory: Callable[..., Any] = PartnerGraphQLClient.for_partner,
    read_batch_size: Optional[int] = None,
    lookup_batch_size: Optional[int] = None,
    write_batch_size: Optional[int] = None,
) -> Dict[str, Any]:
    factory = session_factory or SessionLocal
    provider = token_provider or OwnerStoreTokenProvider.from_settings(session_factory=factory)
    batches = {
        "read": read_batch_size or settings.INVENTORY_READ_BATCH_SIZE,
        "lookup": lookup_batch_size or settings.INVENTORY_SKU_LOOKUP_BATCH_SIZE,
        "write": write_batch_size or settings.INVENTORY_WRITE_BATCH_SIZE,
    }

    connection = provider.get_connection()
    if not connection.ok:
        return _owner_failure(factory, connection.error or connection.status.value)

    try:
        owner = owner_client_factory(connection)
        connection = _ensure_location(connection, owner, provider)
    except ShopifyError as e:
        if isinstance(e, ShopifyAuthError):
            provider.invalidate()
        return _owner_failure(factory, f"{type(e).__name__}: {e}")
    if not connection.location_id:
        return _owner_failure(factory, "no location available for inventory writes")

    summary: Dict[str, Any] = {}
    with session_scope(factory) as db:
        partners, skipped = partition_partners(db, shops)
        products = {p.shop: list_partner_products(db, p.shop) for p in partners}

    for shop, status in skipped.items():
        summary[shop] = {"status": "skipped", "reason": status}

    overall = "completed"
    for partner in partners:
        shop = partner.shop
        if not products[shop]:
            summary[shop] = {"status": "skipped", "reason": "no_products"}
            continue
        try:
            client = partner_client_factory(partner)
        except ShopifyAuthError as e:
            summary[shop] = {"status": "skipped", "reason": str(e)}
            continue

        try:
            with session_scope(factory) as db:
                summary[shop] = _sync_partner(
                    db, shop, products[shop], client, owner, connection.location_id, batches,
                )
        except OwnerStoreUnavailable as e:
            provider.invalidate()
            summary[shop] = {"status": "failed", "error": str(e)}
            overall = "failed"
            logger.error("inventory.owner_token_rejected shop=%s -> abort run", shop)
            break
        except Exception as e:
            # 单个 partner 出错不影响其它 partner
            logger.exception("inventory.partner_crashed shop=%s", shop)
            summary[shop] = {"status": "failed", "error": f"{type(e).__name__}: {e}"}

        if summary[shop]["status"] != "completed":
            overall = "failed"

    logger.info("inventory.sync_done status=%s partners=%s", overall, len(summary))
    return {"status": overall, "partners": summary}


def _sync_partner(
    db: Session,
    shop: str,
    products: List[PartnerProduct],
    partner_client,
    owner,
    location_id: str,
    batches: Dict[str, int],
) -> Dict[str, Any]:
    log = create_sync_log(db, sync_type=SYNC_TYPE, partner_shop=shop)
    processed = len(products)

    # 1) partner 当前库存
    try:
        levels = partner_client.variant_inventory([p.partner_variant_id for p in products], batch_size=batches["read"])
    except ShopifyAuthError as e:
        logger.warning("inventory.partner_auth_failed shop=%s err=%s -> revoke", shop, e)
        revoked = revoke_after_auth_failure(db, shop)
        finish_sync_log(db, log, status="failed", items_processed=processed, error_message=f"partner auth: {e}")
        return {"status": "revoked" if revoked else "failed", "error": str(e)}
    except ShopifyError as e:
        logger.error("inventory.partner_read_failed shop=%s err=%s", shop, e)
        finish_sync_log(db, log, status="failed", items_processed=processed, error_message=f"{type(e).__name__}: {e}")
        return {"status": "failed", "error": f"{type(e).__name__}: {e}"}

    record_inventory_levels(db, shop, levels)

    wanted: Dict[str, int] = {}
    for p in products:
        qty = levels.get(p.partner_variant_id)
        if qty is not None:
            wanted[p.partner_sku] = qty
    skipped = processed - len(wanted)

    # 2) owner 店铺：SKU → inventoryItem，再小批量写
    try:
        items = owner.inventory_items_by_sku(list(wanted), batch_size=batches["lookup"])
        updates = [InventoryUpdate(items[sku], qty) for sku, qty in wanted.items() if sku in items]
        skipped += len(wanted) - len(updates)
        written = owner.set_inventory_quantities(location_id, updates, batch_size=batches["write"])
    except ShopifyAuthError as e:
        finish_sync_log(db, log, status="failed", items_processed=processed, error_message=f"owner auth: {e}")
        raise OwnerStoreUnavailable(str(e)) from e
    except ShopifyError as e:
        logger.error("inventory.owner_write_failed shop=%s err=%s", shop, e)
        finish_sync_log(db, log, status="failed", items_processed=processed, error_message=f"{type(e).__name__}: {e}")
        return {"status": "failed", "error": f"{type(e).__name__}: {e}"}

    status = "completed" if written.failed == 0 else "failed"
    finish_sync_log(
        db, log, status=status,
        items_processed=processed,
        items_updated=written.updated,
        items_failed=written.failed,
        error_message="; ".join(written.errors) or None,
    )
    logger.info("inventory.partner_synced shop=%s processed=%s updated=%s failed=%s skipped=%s",
                shop, processed, written.updated, written.failed, skipped)
    return {
        "status": status,
        "processed": processed,
        "updated": written.updated,
        "failed": written.failed,
        "skipped": skipped,
        "errors": written.errors[:10],
    }
