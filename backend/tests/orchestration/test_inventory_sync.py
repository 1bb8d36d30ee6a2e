from decimal import Decimal

import pytest

from app.db.model import PartnerProduct, SyncLog
from app.integrations.shopify.errors import ShopifyAuthError, ShopifyServerError
from app.integrations.shopify.owner_client import InventoryWriteResult
from app.orchestration.inventory_sync.inventory_sync_task import run_inventory_sync
from app.repository import partner_product_repo, partner_repo
from app.services.owner_store import OwnerConnection, OwnerTokenStatus
from app.services.partner_lifecycle import PartnerStatus

OWNER = "owner.myshopify.com"
LOCATION = "gid://shopify/Location/1"
CONNECTED = OwnerConnection(OwnerTokenStatus.CONNECTED, shop=OWNER, access_token="shpat_owner", location_id=LOCATION)


def _row(shop, n, sku):
    return {
        "partner_product_id": f"gid://shopify/Product/{n}",
        "partner_variant_id": f"gid://shopify/ProductVariant/{n}",
        "title": "Blend",
        "sku": sku,
        "partner_sku": f"PARTNER-{shop.split('.')[0]}-{sku}",
        "price": Decimal("10.00"),
        "selling_price": Decimal("14.29"),
        "inventory_quantity": 1,
    }


class FakeProvider:
    def __init__(self, connection=CONNECTED):
        self.connection = connection
        self.invalidated = 0
        self.remembered = []

    def get_connection(self, *, force_refresh=False):
        return self.connection

    def remember_location(self, connection, location_id):
        self.remembered.append(location_id)
        return OwnerConnection(connection.status, shop=connection.shop, access_token=connection.access_token,
                               location_id=location_id)

    def invalidate(self):
        self.invalidated += 1


class FakePartnerClient:
    def __init__(self, levels=None, error=None):
        self.levels = levels or {}
        self.error = error
        self.calls = []

    def variant_inventory(self, variant_ids, *, batch_size):
        self.calls.append((list(variant_ids), batch_size))
        if self.error is not None:
            raise self.error
        return {v: q for v, q in self.levels.items() if v in variant_ids}


class FakeOwner:
    def __init__(self, items=None, location=LOCATION, write_error=None):
        self.items = items or {}
        self.location = location
        self.write_error = write_error
        self.writes = []

    def primary_location_id(self):
        return self.location

    def inventory_items_by_sku(self, skus, *, batch_size):
        return {s: self.items[s] for s in skus if s in self.items}

    def set_inventory_quantities(self, location_id, updates, *, batch_size):
        if self.write_error is not None:
            raise self.write_error
        self.writes.append((location_id, sorted((u.inventory_item_id, u.quantity) for u in updates)))
        return InventoryWriteResult(updated=len(updates))


@pytest.fixture()
def catalog(db):
    for shop in ("good.myshopify.com", "expired.myshopify.com"):
        partner_repo.upsert_partner(db, shop, f"shpat_{shop[:4]}", "read_products")
    partner_product_repo.upsert_partner_products(db, "good.myshopify.com", [
        _row("good.myshopify.com", 11, "A"),
        _row("good.myshopify.com", 12, "B"),
        _row("good.myshopify.com", 13, "C"),
    ])
    partner_product_repo.upsert_partner_products(db, "expired.myshopify.com", [_row("expired.myshopify.com", 21, "X")])
    partner_repo.upsert_partner(db, "empty.myshopify.com", "shpat_empty", "read_products")


def _run(db_factory, provider, owner, clients, shops=None):
    return run_inventory_sync(
        shops,
        session_factory=db_factory,
        token_provider=provider,
        owner_client_factory=lambda connection: owner,
        partner_client_factory=lambda partner: clients[partner.shop],
    )


def test_partner_levels_are_written_to_owner_store(db, db_factory, catalog):
    owner = FakeOwner(items={
        "PARTNER-good-A": "gid://shopify/InventoryItem/1",
        "PARTNER-good-B": "gid://shopify/InventoryItem/2",
    })
    good = FakePartnerClient(levels={
        "gid://shopify/ProductVariant/11": 7,
        "gid://shopify/ProductVariant/12": 0,
        "gid://shopify/ProductVariant/13": 3,     # owner 店铺没有这个 SKU
    })
    result = _run(db_factory, FakeProvider(), owner, {"good.myshopify.com": good}, ["good.myshopify.com"])

    assert result["status"] == "completed"
    assert result["partners"]["good.myshopify.com"] == {
        "status": "completed", "processed": 3, "updated": 2, "failed": 0, "skipped": 1, "errors": [],
    }
    assert owner.writes == [(LOCATION, [("gid://shopify/InventoryItem/1", 7), ("gid://shopify/InventoryItem/2", 0)])]

    db.expire_all()
    cached = {p.partner_sku: p.inventory_quantity for p in db.query(PartnerProduct).filter_by(partner_shop="good.myshopify.com")}
    assert cached == {"PARTNER-good-A": 7, "PARTNER-good-B": 0, "PARTNER-good-C": 3}
    log = db.query(SyncLog).filter_by(sync_type="inventory", partner_shop="good.myshopify.com").one()
    assert (log.status, log.items_processed, log.items_updated) == ("completed", 3, 2)


def test_partner_without_products_is_skipped(db_factory, catalog):
    result = _run(db_factory, FakeProvider(), FakeOwner(), {}, ["empty.myshopify.com"])
    assert result["partners"] == {"empty.myshopify.com": {"status": "skipped", "reason": "no_products"}}


def test_partner_auth_failure_revokes_only_that_partner(db, db_factory, catalog):
    owner = FakeOwner(items={"PARTNER-good-A": "gid://shopify/InventoryItem/1"})
    clients = {
        "good.myshopify.com": FakePartnerClient(levels={"gid://shopify/ProductVariant/11": 2}),
        "expired.myshopify.com": FakePartnerClient(error=ShopifyAuthError("401")),
    }
    result = _run(db_factory, FakeProvider(), owner, clients)

    assert result["status"] == "failed"
    assert result["partners"]["expired.myshopify.com"]["status"] == "revoked"
    assert result["partners"]["good.myshopify.com"]["status"] == "completed"
    db.expire_all()
    assert partner_repo.find_partner_by_shop(db, "expired.myshopify.com").status is PartnerStatus.REVOKED


def test_partner_read_failure_is_recorded_and_run_continues(db, db_factory, catalog):
    clients = {
        "good.myshopify.com": FakePartnerClient(levels={}),
        "expired.myshopify.com": FakePartnerClient(error=ShopifyServerError("503")),
    }
    result = _run(db_factory, FakeProvider(), FakeOwner(), clients)

    assert result["partners"]["expired.myshopify.com"]["status"] == "failed"
    assert result["partners"]["good.myshopify.com"]["status"] == "completed"
    log = db.query(SyncLog).filter_by(sync_type="inventory", partner_shop="expired.myshopify.com").one()
    assert log.error_message.startswith("ShopifyServerError")


def test_owner_not_connected_fails_the_run_without_touching_partners(db, db_factory, catalog):
    provider = FakeProvider(OwnerConnection(OwnerTokenStatus.NOT_CONFIGURED, error="OWNER_STORE_DOMAIN not set"))
    client = FakePartnerClient()
    result = _run(db_factory, provider, FakeOwner(), {"good.myshopify.com": client})

    assert result == {"status": "failed", "error": "OWNER_STORE_DOMAIN not set", "partners": {}}
    assert client.calls == []
    log = db.query(SyncLog).filter_by(sync_type="inventory").one()
    assert log.partner_shop is None and log.status == "failed"


def test_missing_location_is_resolved_once_and_remembered(db_factory, catalog):
    provider = FakeProvider(OwnerConnection(OwnerTokenStatus.CONNECTED, shop=OWNER, access_token="shpat_owner"))
    owner = FakeOwner(items={"PARTNER-good-A": "gid://shopify/InventoryItem/1"}, location="gid://shopify/Location/9")
    client = FakePartnerClient(levels={"gid://shopify/ProductVariant/11": 5})

    _run(db_factory, provider, owner, {"good.myshopify.com": client}, ["good.myshopify.com"])
    assert provider.remembered == ["gid://shopify/Location/9"]
    assert owner.writes[0][0] == "gid://shopify/Location/9"


def test_owner_without_locations_fails_the_run(db_factory, catalog):
    provider = FakeProvider(OwnerConnection(OwnerTokenStatus.CONNECTED, shop=OWNER, access_token="shpat_owner"))
    result = _run(db_factory, provider, FakeOwner(location=None), {})
    assert result["status"] == "failed"
    assert "location" in result["error"]


def test_rejected_owner_token_aborts_remaining_partners(db, db_factory, catalog):
    provider = FakeProvider()
    owner = FakeOwner(items={"PARTNER-good-A": "i1", "PARTNER-expired-X": "i2"}, write_error=ShopifyAuthError("401"))
    clients = {
        "good.myshopify.com": FakePartnerClient(levels={"gid://shopify/ProductVariant/11": 1}),
        "expired.myshopify.com": FakePartnerClient(levels={"gid://shopify/ProductVariant/21": 1}),
    }
    result = _run(db_factory, provider, owner, clients)

    assert result["status"] == "failed"
    assert provider.invalidated == 1
    # 第一个 partner 撞上 owner 401 后，后面的 partner 不再尝试
    assert len(result["partners"]) == 1
    assert sum(len(c.calls) for c in clients.values()) == 1
