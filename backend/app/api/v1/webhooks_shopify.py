# app/api/v1/webhooks_shopify.py

from __future__ import annotations
import json, logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import sign_base64, verify_constant_time
from app.db.session import get_db
from app.repository.partner_product_repo import deactivate_partner_products
from app.repository.partner_repo import find_partner_by_shop, soft_delete_partner, update_scope
from app.repository.sync_log_repo import create_sync_log
from app.services.partner_oauth.shop_domain import validate_shop_domain

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/shopify", tags=["webhooks.shopify"])


'''
Partner 店铺推送的 App webhook：
   - app/uninstalled    → partner 软删除（凭证清空，业务记录保留）
   - app/scopes_update  → 更新授权 scope
   - compliance         → GDPR 三个 topic
Shopify 可能重复投递，所有处理都要幂等；校验通过后尽快 200。
'''


# =============== 公共：HMAC 校验（X-Shopify-Hmac-Sha256 = base64(HMAC-SHA256(raw body))） ===============
def _verify_hmac_or_401(provided_hmac_b64: str, raw_body: bytes) -> None:
    if not provided_hmac_b64:
        raise HTTPException(status_code=401, detail="Missing HMAC")

    expected = sign_base64(raw_body, settings.shopify_api_secret)
    if not verify_constant_time(provided_hmac_b64, expected):
        raise HTTPException(status_code=401, detail="Invalid HMAC")


def _shop_or_400(x_shopify_shop_domain: str) -> str:
    shop = validate_shop_domain(x_shopify_shop_domain)
    if not shop:
        raise HTTPException(status_code=400, detail="Invalid shop domain")
    return shop


def _json_or_400(raw: bytes) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    return payload if isinstance(payload, dict) else {}


@router.post("/app/uninstalled")
async def app_uninstalled(
    request: Request,
    x_shopify_hmac_sha256: str = Header(default=""),
    x_shopify_topic: str = Header(default=""),
    x_shopify_shop_domain: str = Header(default=""),
    db: Session = Depends(get_db),
):
    # 先做 HMAC 校验，再看其它 header
    raw = await request.body()
    _verify_hmac_or_401(x_shopify_hmac_sha256, raw)
    shop = _shop_or_400(x_shopify_shop_domain)

    logger.info("webhook.received topic=%s shop=%s", x_shopify_topic, shop)

    partner = soft_delete_partner(db, shop)
    if partner is None:
        # 从未连接过 / 已清理：仍然 200，避免 Shopify 重试
        return {"ok": True, "shop": shop, "found": False}

    deactivated = deactivate_partner_products(db, shop)
    create_sync_log(db, sync_type="app_uninstalled", status="completed", partner_shop=shop,
                    items_processed=1, items_updated=deactivated)
    return {"ok": True, "shop": shop, "found": True, "products_deactivated": deactivated}


@router.post("/app/scopes_update")
async def app_scopes_update(
    request: Request,
    x_shopify_hmac_sha256: str = Header(default=""),
    x_shopify_shop_domain: str = Header(default=""),
    db: Session = Depends(get_db),
):
    raw = await request.body()
    _verify_hmac_or_401(x_shopify_hmac_sha256, raw)
    shop = _shop_or_400(x_shopify_shop_domain)

    current = _json_or_400(raw).get("current") or []
    if isinstance(current, str):
        current = [current]
    scope = ",".join(str(s) for s in current)

    partner = update_scope(db, shop, scope)
    if partner is None:
        return {"ok": True, "shop": shop, "found": False}

    create_sync_log(db, sync_type="scopes_update", status="completed", partner_shop=shop, items_processed=1)
    logger.info("webhook.scopes_update shop=%s scope=%s", shop, scope)
    return {"ok": True, "shop": shop, "found": True, "scope": scope}


'''
GDPR compliance：
   - customers/data_request、customers/redact：我们不存客户 PII，只记一条日志
   - shop/redact：卸载 48 小时后推送 → 软删除 partner + 下架其缓存商品
'''
@router.post("/compliance")
async def compliance(
    request: Request,
    x_shopify_hmac_sha256: str = Header(default=""),
    x_shopify_topic: str = Header(default=""),
    x_shopify_shop_domain: str = Header(default=""),
    db: Session = Depends(get_db),
):
    raw = await request.body()
    _verify_hmac_or_401(x_shopify_hmac_sha256, raw)
    shop = _shop_or_400(x_shopify_shop_domain)

    # header 是 customers/data_request，也兼容 CUSTOMERS_DATA_REQUEST
    topic = (x_shopify_topic or "").strip().upper().replace("/", "_")
    logger.info("webhook.compliance topic=%s shop=%s", topic, shop)

    if topic == "CUSTOMERS_DATA_REQUEST":
        create_sync_log(db, sync_type="gdpr_data_request", status="completed", partner_shop=shop, items_processed=1)
    elif topic == "CUSTOMERS_REDACT":
        create_sync_log(db, sync_type="gdpr_customers_redact", status="completed", partner_shop=shop, items_processed=1)
    elif topic == "SHOP_REDACT":
        if find_partner_by_shop(db, shop) is None:
            create_sync_log(db, sync_type="gdpr_shop_redact", status="completed", items_processed=0)
            return {"ok": True, "topic": topic, "shop": shop, "found": False}
        soft_delete_partner(db, shop)
        deactivated = deactivate_partner_products(db, shop)
        create_sync_log(db, sync_type="gdpr_shop_redact", status="completed", partner_shop=shop,
                        items_processed=1, items_updated=1 + deactivated)
    else:
        logger.warning("webhook.compliance_unhandled topic=%s shop=%s", x_shopify_topic, shop)
        return {"ok": True, "ignored": f"topic={x_shopify_topic}"}

    return {"ok": True, "topic": topic, "shop": shop}
