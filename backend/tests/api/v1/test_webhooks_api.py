import json
from decimal import Decimal

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import SecretStr

from app.api.v1 import webhooks_shopify as webhooks_module
from app.core.security import sign_base64
from app.db.model import SyncLog
from app.db.session import get_db
from app.repository.partner_product_repo import list_partner_products, upsert_partner_products
from app.repository.partner_repo import find_partner_by_shop, upsert_partner
from app.services.partner_lifecycle import PartnerStatus

SECRET = "webhook-secret"
SHOP = "roastery.myshopify.com"


@pytest.fixture()
def client(monkeypatch, db_factory):
    monkeypatch.setattr(webhooks_module.settings, "SHOPIFY_API_SECRET", SecretStr(SECRET))

    def override_get_db():
        db = db_factory()
        try:
            yield db
        finally:
            db.close()

    app = FastAPI()
    app.include_router(webhooks_module.router)
    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture()
def partner(db):
    upsert_partner(db, SHOP, "shpat_live", "read_products")
    upsert_partner_products(db, SHOP, [{
        "partner_product_id": "gid://shopify/Product/1",
        "partner_variant_id": "gid://shopify/ProductVariant/11",
        "title": "Blend",
        "sku": "BLEND001",
        "partner_sku": "PARTNER-roastery-BLEND001",
        "price": Decimal("10.00"),
        "selling_price": Decimal("14.29"),
        "inventory_quantity": 5,
    }])


def _post(client, path, payload, *, topic="", shop=SHOP, hmac=None):
    raw = json.dumps(payload).encode("utf-8")
    headers = {
        "X-Shopify-Topic": topic,
        "X-Shopify-Shop-Domain": shop,
        "X-Shopify-Hmac-Sha256": sign_base64(raw, SECRET) if hmac is None else hmac,
        "Content-Type": "application/json",
    }
    return client.post(path, content=raw, headers=headers)


# ---------- HMAC ----------
def test_missing_hmac_is_401(client):
    resp = _post(client, "/webhooks/shopify/app/uninstalled", {}, hmac="")
    assert resp.status_code == 401


def test_hmac_over_other_body_is_401(client, partner, db):
    forged = sign_base64(b'{"other": 1}', SECRET)
    resp = _post(client, "/webhooks/shopify/app/uninstalled", {"id": 1}, hmac=forged)
    assert resp.status_code == 401
    db.expire_all()
    assert find_partner_by_shop(db, SHOP).status is PartnerStatus.ACTIVE


def test_invalid_shop_header_is_400(client):
    resp = _post(client, "/webhooks/shopify/app/uninstalled", {}, shop="evil.com")
    assert resp.status_code == 400


# ---------- app/uninstalled ----------
def test_uninstall_soft_deletes_and_deactivates_products(client, partner, db):
    resp = _post(client, "/webhooks/shopify/app/uninstalled", {"id": 1}, topic="app/uninstalled")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "shop": SHOP, "found": True, "products_deactivated": 1}

    db.expire_all()
    stored = find_partner_by_shop(db, SHOP)
    assert stored.status is PartnerStatus.SOFT_DELETED
    assert stored.access_token is None
    assert list_partner_products(db, SHOP) == []
    assert db.query(SyncLog).filter_by(sync_type="app_uninstalled").count() == 1


def test_uninstall_is_idempotent(client, partner):
    first = _post(client, "/webhooks/shopify/app/uninstalled", {"id": 1})
    second = _post(client, "/webhooks/shopify/app/uninstalled", {"id": 1})
    assert first.status_code == second.status_code == 200
    assert second.json()["products_deactivated"] == 0


def test_uninstall_unknown_shop_still_200(client):
    resp = _post(client, "/webhooks/shopify/app/uninstalled", {})
    assert resp.status_code == 200
    assert resp.json()["found"] is False


# ---------- app/scopes_update ----------
def test_scopes_update_joins_current_scopes(client, partner, db):
    resp = _post(client, "/webhooks/shopify/app/scopes_update", {"current": ["read_products", "read_inventory"]})
    assert resp.json()["scope"] == "read_products,read_inventory"
    db.expire_all()
    assert find_partner_by_shop(db, SHOP).scope == "read_products,read_inventory"


def test_scopes_update_rejects_non_json(client, partner):
    raw = b"not json"
    resp = client.post(
        "/webhooks/shopify/app/scopes_update",
        content=raw,
        headers={"X-Shopify-Shop-Domain": SHOP, "X-Shopify-Hmac-Sha256": sign_base64(raw, SECRET)},
    )
    assert resp.status_code == 400


# ---------- compliance ----------
@pytest.mark.parametrize("topic, sync_type", [
    ("customers/data_request", "gdpr_data_request"),
    ("CUSTOMERS_REDACT", "gdpr_customers_redact"),
])
def test_customer_compliance_topics_only_log(client, partner, db, topic, sync_type):
    resp = _post(client, "/webhooks/shopify/compliance", {"shop_domain": SHOP}, topic=topic)
    assert resp.status_code == 200
    assert db.query(SyncLog).filter_by(sync_type=sync_type).count() == 1
    db.expire_all()
    assert find_partner_by_shop(db, SHOP).status is PartnerStatus.ACTIVE


def test_shop_redact_soft_deletes_partner(client, partner, db):
    resp = _post(client, "/webhooks/shopify/compliance", {"shop_domain": SHOP}, topic="shop/redact")
    assert resp.json() == {"ok": True, "topic": "SHOP_REDACT", "shop": SHOP}
    db.expire_all()
    assert find_partner_by_shop(db, SHOP).status is PartnerStatus.SOFT_DELETED
    assert list_partner_products(db, SHOP) == []


def test_unknown_compliance_topic_is_ignored(client):
    resp = _post(client, "/webhooks/shopify/compliance", {}, topic="orders/create")
    assert resp.status_code == 200
    assert "ignored" in resp.json()
