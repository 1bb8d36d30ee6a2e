
from __future__ import annotations
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.model.partner import PartnerProduct
from app.utils.clock import now_utc

logger = logging.getLogger(__name__)


# 参与“是否有变化”比较的字段
_TRACKED_FIELDS = ("partner_product_id", "title", "sku", "partner_sku", "price", "selling_price", "inventory_quantity")


def list_partner_products(db: Session, shop: str, *, include_deleted: bool = False) -> List[PartnerProduct]:
    stmt = select(PartnerProduct).where(PartnerProduct.partner_shop == shop).order_by(PartnerProduct.id.asc())
    if not include_deleted:
        stmt = stmt.where(PartnerProduct.is_deleted.is_(False))
    return list(db.execute(stmt).scalars())


def find_by_partner_sku(db: Session, partner_sku: str) -> Optional[PartnerProduct]:
    stmt = select(PartnerProduct).where(
        PartnerProduct.partner_sku == partner_sku, PartnerProduct.is_deleted.is_(False)
    )
    return db.execute(stmt).scalars().first()


def upsert_partner_products(
    db: Session,
    shop: str,
    rows: List[dict],
    *,
    prune_missing: bool = True,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    用一次同步的结果覆盖某个 partner 的商品缓存。

      - 新变体 → 插入（is_new=True）
      - 已有变体 → 有字段变化才算 updated；曾软删除的 → 恢复（restored）
      - 本轮没出现的变体 → 软删除（deleted），仅当 prune_missing=True
        （目录被 max_pages 截断时没看到 ≠ 已下架，调用方必须传 False）
    返回 {"new", "updated", "deleted", "restored", "unchanged"} 计数。
    """
    now = now or now_utc()
    counts = {"new": 0, "updated": 0, "deleted": 0, "restored": 0, "unchanged": 0}

    existing = {
        p.partner_variant_id: p
        for p in list_partner_products(db, shop, include_deleted=True)
    }
    seen: set[str] = set()

    try:
        for row in rows:
            variant_id = str(row["partner_variant_id"])
            if variant_id in seen:
                continue
            seen.add(variant_id)

            current = existing.get(variant_id)
            if current is None:
                db.add(PartnerProduct(
                    partner_shop=shop,
                    partner_variant_id=variant_id,
                    is_new=True,
                    is_deleted=False,
                    first_seen_at=now,
                    last_synced_at=now,
                    **{k: row.get(k) for k in _TRACKED_FIELDS},
                ))
                counts["new"] += 1
                continue

            changed = any(getattr(current, k) != row.get(k) for k in _TRACKED_FIELDS)
            for k in _TRACKED_FIELDS:
                setattr(current, k, row.get(k))
            current.last_synced_at = now

            if current.is_deleted:
                current.is_deleted = False
                current.deleted_at = None
                counts["restored"] += 1
            elif changed:
                current.is_new = False
                counts["updated"] += 1
            else:
                current.is_new = False
                counts["unchanged"] += 1

        if prune_missing:
            for variant_id, product in existing.items():
                if variant_id not in seen and not product.is_deleted:
                    product.is_deleted = True
                    product.deleted_at = now
                    counts["deleted"] += 1

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("partner_products.upsert shop=%s %s", shop, counts)
    return counts


def record_inventory_levels(db: Session, shop: str, levels: Dict[str, int], *, now: Optional[datetime] = None) -> int:
    """库存同步读到的 partner 数量写回缓存；返回数量有变化的行数"""
    if not levels:
        return 0
    now = now or now_utc()
    changed = 0
    try:
        for p in list_partner_products(db, shop):
            qty = levels.get(p.partner_variant_id)
            if qty is None:
                continue
            if p.inventory_quantity != qty:
                p.inventory_quantity = qty
                changed += 1
            p.last_synced_at = now
        db.commit()
    except Exception:
        db.rollback()
        raise
    return changed


def deactivate_partner_products(db: Session, shop: str, *, now: Optional[datetime] = None) -> int:
    """partner 被删除时，把它的缓存商品全部软删除（记录保留）"""
    now = now or now_utc()
    products = list_partner_products(db, shop)
    for p in products:
        p.is_deleted = True
        p.deleted_at = now
    db.commit()
    return len(products)
