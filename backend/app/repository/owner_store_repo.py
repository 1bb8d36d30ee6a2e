
from __future__ import annotations
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.model.owner_store import OwnerStore
from app.utils.clock import now_utc

logger = logging.getLogger(__name__)


def get_owner_store(db: Session, shop: str) -> Optional[OwnerStore]:
    return db.execute(select(OwnerStore).where(OwnerStore.shop == shop)).scalar_one_or_none()


'''
保存新换到的 owner token（首次 → 新建；之后 → 覆盖 token / scope / expires_at）
location_id 保留：换 token 不会换 location
'''
def save_owner_token(
    db: Session,
    shop: str,
    access_token: str,
    scope: Optional[str],
    expires_at: Optional[datetime],
    *,
    now: Optional[datetime] = None,
) -> OwnerStore:
    now = now or now_utc()
    try:
        store = get_owner_store(db, shop)
        if store is None:
            store = OwnerStore(shop=shop)
            db.add(store)
        if not store.is_connected:
            store.connected_at = now
        store.access_token = access_token
        store.scope = scope
        store.expires_at = expires_at
        store.is_connected = True
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(store)
    logger.info("owner_store.token_saved shop=%s expires_at=%s", shop, expires_at)
    return store


def set_owner_location(db: Session, shop: str, location_id: str) -> Optional[OwnerStore]:
    store = get_owner_store(db, shop)
    if store is None:
        return None
    store.location_id = location_id
    db.commit()
    return store


def clear_owner_token(db: Session, shop: str) -> Optional[OwnerStore]:
    """owner 店铺拒绝了 token（401/403）：清掉，下一次取连接时重新换"""
    store = get_owner_store(db, shop)
    if store is None:
        return None
    store.access_token = None
    store.expires_at = None
    store.is_connected = False
    db.commit()
    logger.info("owner_store.token_cleared shop=%s", shop)
    return store
