# Owner 店铺连接状态 / 手动重连 / 手动触发库存同步

from __future__ import annotations
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_owner_token_provider
from app.db.session import get_db
from app.orchestration.inventory_sync.inventory_sync_task import kick_inventory_sync
from app.repository.partner_repo import find_partner_by_shop
from app.services.owner_store import OwnerStoreTokenProvider, OwnerTokenStatus

router = APIRouter(tags=["owner-store"])


class OwnerStoreOut(BaseModel):
    status: str
    shop: Optional[str] = None
    expires_at: Optional[datetime] = None
    location_id: Optional[str] = None
    error: Optional[str] = None


@router.get("/owner-store", response_model=OwnerStoreOut)
def owner_store_status(provider: OwnerStoreTokenProvider = Depends(get_owner_token_provider)):
    # token 快过期时这里会顺带续期
    return provider.get_connection().public()


@router.post("/owner-store/refresh", response_model=OwnerStoreOut)
def owner_store_refresh(provider: OwnerStoreTokenProvider = Depends(get_owner_token_provider)):
    connection = provider.refresh()
    if connection.status is OwnerTokenStatus.NOT_CONFIGURED:
        raise HTTPException(status_code=409, detail=connection.error)
    return connection.public()


'''
手动触发库存同步：
   - 不带 shop → 全部可用 partner
   - 带 shop → 只同步该 partner（不存在 404，不可用 409）
'''
@router.post("/inventory-sync")
def inventory_sync(shop: Optional[str] = None, db: Session = Depends(get_db)):
    if shop:
        partner = find_partner_by_shop(db, shop)
        if partner is None:
            raise HTTPException(status_code=404, detail=f"Partner {shop} not found")
        if not partner.is_usable:
            raise HTTPException(status_code=409, detail=f"Partner {shop} is {partner.status.value}")
    return {"ok": True, "shop": shop, "result": kick_inventory_sync(shop)}
