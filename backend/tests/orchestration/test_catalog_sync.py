import asyncio
from decimal import Decimal

import pytest

from app.db.model import PartnerProduct, SyncLog
from app.integrations.shopify.errors import ShopifyAuthError, ShopifyServerError
from app.orchestration.catalog_sync.catalog_sync_task import run_catalog_sync
from app.orchestration.catalog_sync.utils import build_product_rows, collect_partner_catalog
from app.repository import partner_repo
from app.services.partner_lifecycle import PartnerStatus
from app.services.pricing.price_engine import PriceEngine


ENGINE = PriceEngine(Decimal("0.30"))


def _product(pid, variants, title="Blend"):
    return {
        "id": f"gid://shopify/Product/{pid}",
        "title": title,
        "variants": {"edges": [{"node": v} for v in variants]},
    }


def _variant(vid, sku="BLEND001", price="10.00", title="Default Title", qty=5):
    return {"id": f"gid://shopify/ProductVariant/{vid}", "title": title, "sku": sku, "price": price, "inventoryQuantity": qty}


def _page(products, has_next=False, cursor=None):
    return {"products": {
        "edges": [{"node": p} for p in products],
        "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
    }}


class FakeClient:
    def __init__(self, pages=None, error=None):
        self.pages = pages or [_page([])]
        self.error = error
        self.calls = []

    async def query(self, doc, variables):
        self.calls.append(dict(variables))
        if self.error is not None:
            raise self.error
        return self.pages[min(len(self.calls), len(self.pages)) - 1]


def test_build_product_rows_flattens_variants():
    products = [_product(1, [
        _variant(11, sku="blend 001", price="10.00", title="250g"),
        _variant(12, sku=None, price=None, title="Default Title", qty=None),
    ])]
    rows = build_product_rows("roastery.myshopify.com", products, price_engine=ENGINE)

    assert rows[0] == {
        "partner_product_id": "gid://shopify/Product/1",
        "partner_variant_id": "gid://shopify/ProductVariant/11",
        "title": "Blend - 250g",
        "sku": "blend 001",
        "partner_sku": "PARTNER-roastery-BLEND-001",
        "price": Decimal("10.00"),
        "selling_price": Decimal("14.29"),
        "inventory_quantity": 5,
    }
    assert rows[1]["title"] == "Blend"
    assert rows[1]["partner_sku"] == "PARTNER-roastery-NOSKU"
    assert rows[1]["price"] is None and rows[1]["selling_price"] is None


def test_collect_partner_catalog_follows_cursor():
    client = FakeClient(pages=[
        _page([_product(1, [_variant(11)])], has_next=True, cursor="c1"),
        _page([_product(2, [_variant(21)])]),
    ])
    result = asyncio.run(collect_partner_catalog(client, page_size=1, product_query="status:active"))
    products = result.items
    assert [p["id"] for p in products] == ["gid://shopify/Product/1", "gid://shopify/Product/2"]
    assert result.page_info.has_next_page is False
    assert client.calls == [
        {"query": "status:active", "first": 1, "after": None},
        {"query": "status:active", "first": 1, "after": "c1"},
    ]


@pytest.fixture()
def partners(db):
    partner_repo.upsert_partner(db, "good.myshopify.com", "shpat_good", "read_products")
    partner_repo.upsert_partner(db, "expired.myshopify.com", "shpat_expired", "read_products")
    partner_repo.upsert_partner(db, "flaky.myshopify.com", "shpat_flaky", "read_products")
    partner_repo.upsert_partner(db, "revoked.myshopify.com", "shpat_revoked", "read_products")
    partner_repo.revoke_partner(db, "revoked.myshopify.com")


def test_run_catalog_sync_handles_each_partner_independently(db, db_factory, partners):
    clients = {
        "good.myshopify.com": FakeClient(pages=[_page([_product(1, [_variant(11), _variant(12, sku="B2")])])]),
        "expired.myshopify.com": FakeClient(error=ShopifyAuthError("401")),
        "flaky.myshopify.com": FakeClient(error=ShopifyServerError("503")),
    }
    summary = run_catalog_sync(
        session_factory=db_factory,
        client_factory=lambda partner: clients[partner.shop],
        price_engine=ENGINE,
    )

    assert "revoked.myshopify.com" not in summary
    assert summary["good.myshopify.com"]["status"] == "completed"
    assert summary["good.myshopify.com"]["new"] == 2
    assert summary["expired.myshopify.com"]["status"] == "revoked"
    assert summary["flaky.myshopify.com"]["status"] == "failed"

    db.expire_all()
    assert partner_repo.find_partner_by_shop(db, "expired.myshopify.com").status is PartnerStatus.REVOKED
    assert partner_repo.find_partner_by_shop(db, "flaky.myshopify.com").status is PartnerStatus.ACTIVE

    products = db.query(PartnerProduct).filter_by(partner_shop="good.myshopify.com").all()
    assert sorted(p.partner_sku for p in products) == ["PARTNER-good-B2", "PARTNER-good-BLEND001"]

    logs = {log.partner_shop: log for log in db.query(SyncLog).all()}
    assert logs["good.myshopify.com"].status == "completed"
    assert logs["good.myshopify.com"].items_processed == 2
    assert logs["expired.myshopify.com"].status == "failed"
    assert logs["flaky.myshopify.com"].error_message.startswith("ShopifyServerError")


def test_run_catalog_sync_skips_unusable_requested_shops(db_factory, partners):
    called = []
    summary = run_catalog_sync(
        ["revoked.myshopify.com", "missing.myshopify.com"],
        session_factory=db_factory,
        client_factory=lambda partner: called.append(partner) or FakeClient(),
        price_engine=ENGINE,
    )
    assert summary == {
        "revoked.myshopify.com": {"status": "skipped", "reason": "revoked"},
        "missing.myshopify.com": {"status": "skipped", "reason": "absent"},
    }
    assert called == []


def test_run_catalog_sync_respects_max_pages(db_factory, partners):
    endless = FakeClient(pages=[_page([_product(1, [_variant(11)])], has_next=True, cursor="again")])
    run_catalog_sync(
        ["good.myshopify.com"],
        session_factory=db_factory,
        client_factory=lambda partner: endless,
        price_engine=ENGINE,
        page_size=10,
        max_pages=3,
    )
    assert len(endless.calls) == 3


def test_truncated_walk_keeps_variants_it_did_not_reach(db, db_factory, partners):
    two_pages = FakeClient(pages=[
        _page([_product(1, [_variant(11, sku="A")])], has_next=True, cursor="c1"),
        _page([_product(2, [_variant(21, sku="B")])]),
    ])
    first = run_catalog_sync(["good.myshopify.com"], session_factory=db_factory,
                             client_factory=lambda partner: two_pages, price_engine=ENGINE)
    assert first["good.myshopify.com"]["new"] == 2
    assert first["good.myshopify.com"]["truncated"] is False

    # 第二轮只拉到第一页就撞上 max_pages，第二页的变体不能被当成下架
    cut = FakeClient(pages=[_page([_product(1, [_variant(11, sku="A")])], has_next=True, cursor="c1")])
    second = run_catalog_sync(["good.myshopify.com"], session_factory=db_factory,
                              client_factory=lambda partner: cut, price_engine=ENGINE, max_pages=1)

    assert second["good.myshopify.com"]["truncated"] is True
    assert second["good.myshopify.com"]["deleted"] == 0
    db.expire_all()
    tail = db.query(PartnerProduct).filter_by(partner_variant_id="gid://shopify/ProductVariant/21").one()
    assert tail.is_deleted is False


def test_complete_walk_still_soft_deletes_missing_variants(db, db_factory, partners):
    run_catalog_sync(["good.myshopify.com"], session_factory=db_factory, price_engine=ENGINE,
                     client_factory=lambda partner: FakeClient(pages=[_page([_product(1, [_variant(11), _variant(12, sku="B2")])])]))
    summary = run_catalog_sync(["good.myshopify.com"], session_factory=db_factory, price_engine=ENGINE,
                               client_factory=lambda partner: FakeClient(pages=[_page([_product(1, [_variant(11)])])]))

    assert summary["good.myshopify.com"]["deleted"] == 1
    db.expire_all()
    gone = db.query(PartnerProduct).filter_by(partner_variant_id="gid://shopify/ProductVariant/12").one()
    assert gone.is_deleted is True


class UninstalledMidSync:
    """拉取途中收到 uninstall webhook，随后 token 失效返回 401"""

    def __init__(self, factory, shop):
        self.factory = factory
        self.shop = shop

    async def query(self, doc, variables):
        with self.factory() as session:
            partner_repo.soft_delete_partner(session, self.shop)
        raise ShopifyAuthError("401 Unauthorized")


def test_auth_failure_after_uninstall_does_not_abort_the_run(db, db_factory, partners):
    clients = {
        "good.myshopify.com": FakeClient(pages=[_page([_product(1, [_variant(11)])])]),
        "expired.myshopify.com": UninstalledMidSync(db_factory, "expired.myshopify.com"),
    }
    summary = run_catalog_sync(
        ["good.myshopify.com", "expired.myshopify.com"],
        session_factory=db_factory,
        client_factory=lambda partner: clients[partner.shop],
        price_engine=ENGINE,
    )

    assert summary["good.myshopify.com"]["status"] == "completed"
    assert summary["expired.myshopify.com"]["status"] == "failed"

    db.expire_all()
    assert partner_repo.find_partner_by_shop(db, "expired.myshopify.com").status is PartnerStatus.SOFT_DELETED
    logs = {log.partner_shop: log for log in db.query(SyncLog).all()}
    assert logs["expired.myshopify.com"].status == "failed"
    assert logs["good.myshopify.com"].status == "completed"
    assert db.query(PartnerProduct).filter_by(partner_shop="good.myshopify.com").count() == 1
