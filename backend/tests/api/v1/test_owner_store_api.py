from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_owner_token_provider
from app.api.v1 import owner_store as owner_store_module
from app.core.config import settings
from app.db.session import get_db
from app.main import app
from app.repository.partner_repo import revoke_partner, upsert_partner
from app.services.owner_store import OwnerConnection, OwnerTokenStatus

PREFIX = settings.API_PREFIX
OWNER = "owner.myshopify.com"
EXPIRES = datetime(2026, 5, 1, 8, 0, tzinfo=timezone.utc)


class FakeProvider:
    def __init__(self, connection):
        self.connection = connection
        self.refreshed = 0

    def get_connection(self, *, force_refresh=False):
        return self.connection

    def refresh(self):
        self.refreshed += 1
        return self.connection


@pytest.fixture()
def provider():
    return FakeProvider(OwnerConnection(
        OwnerTokenStatus.CONNECTED, shop=OWNER, access_token="shpat_owner_secret",
        expires_at=EXPIRES, location_id="gid://shopify/Location/1",
    ))


@pytest.fixture()
def client(db_factory, provider):
    def override_get_db():
        db = db_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_owner_token_provider] = lambda: provider
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_status_never_exposes_owner_token(client):
    resp = client.get(f"{PREFIX}/owner-store")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "connected"
    assert body["location_id"] == "gid://shopify/Location/1"
    assert "shpat_owner_secret" not in resp.text


def test_refresh_forces_a_new_token(client, provider):
    assert client.post(f"{PREFIX}/owner-store/refresh").status_code == 200
    assert provider.refreshed == 1


def test_refresh_without_owner_domain_is_conflict(client, provider):
    provider.connection = OwnerConnection(OwnerTokenStatus.NOT_CONFIGURED, error="OWNER_STORE_DOMAIN not set")
    resp = client.post(f"{PREFIX}/owner-store/refresh")
    assert resp.status_code == 409


def test_inventory_sync_for_all_partners(client, monkeypatch):
    kicked = []
    monkeypatch.setattr(owner_store_module, "kick_inventory_sync", lambda shop: kicked.append(shop) or {"queued": True})
    resp = client.post(f"{PREFIX}/inventory-sync")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "shop": None, "result": {"queued": True}}
    assert kicked == [None]


def test_inventory_sync_checks_the_requested_partner(client, db, monkeypatch):
    monkeypatch.setattr(owner_store_module, "kick_inventory_sync", lambda shop: {"queued": True, "shop": shop})
    assert client.post(f"{PREFIX}/inventory-sync", params={"shop": "nobody.myshopify.com"}).status_code == 404

    upsert_partner(db, "roastery.myshopify.com", "shpat_live", "read_products")
    assert client.post(f"{PREFIX}/inventory-sync", params={"shop": "roastery.myshopify.com"}).status_code == 200

    revoke_partner(db, "roastery.myshopify.com")
    assert client.post(f"{PREFIX}/inventory-sync", params={"shop": "roastery.myshopify.com"}).status_code == 409
