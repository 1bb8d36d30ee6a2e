import asyncio
from types import SimpleNamespace

import pytest
import requests

from app.core.config import settings
from app.integrations.shopify.errors import (
    ShopifyAuthError,
    ShopifyClientError,
    ShopifyPayloadError,
    ShopifyRateLimitError,
    ShopifyServerError,
)
from app.integrations.shopify.partner_client import PartnerGraphQLClient

SHOP = "roastery.myshopify.com"


class FakeResponse:
    def __init__(self, status_code=200, payload=None, headers=None, bad_json=False):
        self.status_code = status_code
        self._payload = payload if payload is not None else {"data": {"ok": True}}
        self.headers = headers or {}
        self._bad_json = bad_json

    def json(self):
        if self._bad_json:
            raise ValueError("not json")
        return self._payload


class FakeSession:
    """按顺序吐出预设的响应；元素是异常时直接抛"""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeLimiter:
    def __init__(self):
        self.acquired = 0

    def acquire(self, **kwargs):
        self.acquired += 1
        return True


@pytest.fixture()
def sleeps():
    return []


def _client(session, sleeps, **kw):
    kw.setdefault("max_retries", 2)
    return PartnerGraphQLClient(
        SHOP, "shpat_secret_token", api_version="2025-07", session=session,
        timeout=5, backoff_ms=100, sleep=sleeps.append, **kw,
    )


def test_ok_posts_to_partner_endpoint_with_partner_token(sleeps):
    session = FakeSession(FakeResponse(payload={"data": {"shop": {"name": "Roastery"}}}))
    body = _client(session, sleeps).post_graphql("{ shop { name } }", {"a": 1})

    assert body == {"data": {"shop": {"name": "Roastery"}}}
    url, kwargs = session.calls[0]
    assert url == "https://roastery.myshopify.com/admin/api/2025-07/graphql.json"
    assert kwargs["headers"]["X-Shopify-Access-Token"] == "shpat_secret_token"
    assert kwargs["json"] == {"query": "{ shop { name } }", "variables": {"a": 1}}
    assert sleeps == []


def test_429_honours_retry_after(sleeps):
    session = FakeSession(FakeResponse(429, headers={"Retry-After": "2"}), FakeResponse())
    _client(session, sleeps).post_graphql("q")
    assert sleeps == [2.0]
    assert len(session.calls) == 2


def test_429_without_retry_after_uses_backoff(sleeps):
    session = FakeSession(FakeResponse(429), FakeResponse())
    _client(session, sleeps).post_graphql("q")
    assert sleeps == [0.1]


def test_5xx_retries_with_exponential_backoff(sleeps):
    session = FakeSession(FakeResponse(500), FakeResponse(502), FakeResponse())
    _client(session, sleeps).post_graphql("q")
    assert sleeps == [0.1, 0.2]


def test_5xx_exhausted_raises_server_error(sleeps):
    session = FakeSession(FakeResponse(500), FakeResponse(500), FakeResponse(503))
    with pytest.raises(ShopifyServerError):
        _client(session, sleeps).post_graphql("q")
    assert len(session.calls) == 3


def test_429_exhausted_raises_rate_limit_error(sleeps):
    session = FakeSession(*(FakeResponse(429, headers={"Retry-After": "1"}) for _ in range(3)))
    with pytest.raises(ShopifyRateLimitError):
        _client(session, sleeps).post_graphql("q")


@pytest.mark.parametrize("status", [401, 403])
def test_auth_errors_are_not_retried(sleeps, status):
    session = FakeSession(FakeResponse(status))
    with pytest.raises(ShopifyAuthError):
        _client(session, sleeps).post_graphql("q")
    assert len(session.calls) == 1


def test_other_4xx_is_client_error(sleeps):
    session = FakeSession(FakeResponse(404))
    with pytest.raises(ShopifyClientError):
        _client(session, sleeps).post_graphql("q")
    assert len(session.calls) == 1


def test_timeout_then_success(sleeps):
    session = FakeSession(requests.Timeout("slow"), FakeResponse())
    assert _client(session, sleeps).post_graphql("q") == {"data": {"ok": True}}
    assert sleeps == [0.1]


def test_connection_errors_exhausted(sleeps):
    session = FakeSession(*(requests.ConnectionError("down") for _ in range(3)))
    with pytest.raises(ShopifyClientError):
        _client(session, sleeps).post_graphql("q")


def test_non_json_is_retried_then_payload_error(sleeps):
    session = FakeSession(*(FakeResponse(bad_json=True) for _ in range(3)))
    with pytest.raises(ShopifyPayloadError):
        _client(session, sleeps).post_graphql("q")
    assert len(session.calls) == 3


def test_top_level_graphql_errors(sleeps):
    session = FakeSession(FakeResponse(payload={"errors": [{"message": "syntax"}]}))
    with pytest.raises(ShopifyPayloadError):
        _client(session, sleeps).post_graphql("q")
    assert len(session.calls) == 1


def test_limiter_is_consulted_per_attempt(sleeps):
    limiter = FakeLimiter()
    session = FakeSession(FakeResponse(500), FakeResponse())
    _client(session, sleeps, limiter=limiter).post_graphql("q")
    assert limiter.acquired == 2


def test_async_query_returns_data_object(sleeps):
    session = FakeSession(FakeResponse(payload={"data": {"products": {"edges": []}}}))
    data = asyncio.run(_client(session, sleeps).query("q", {"first": 1}))
    assert data == {"products": {"edges": []}}


def test_async_query_without_data_is_payload_error(sleeps):
    session = FakeSession(FakeResponse(payload={"extensions": {}}))
    with pytest.raises(ShopifyPayloadError):
        asyncio.run(_client(session, sleeps).query("q"))


def test_missing_token_is_auth_error():
    with pytest.raises(ShopifyAuthError):
        PartnerGraphQLClient(SHOP, "")


def test_for_partner_rejects_unusable_partner():
    revoked = SimpleNamespace(shop=SHOP, access_token=None, is_active=False, is_deleted=False)
    deleted = SimpleNamespace(shop=SHOP, access_token=None, is_active=False, is_deleted=True)
    for partner in (revoked, deleted, None):
        with pytest.raises(ShopifyAuthError):
            PartnerGraphQLClient.for_partner(partner)


def test_for_partner_without_rate_limit(monkeypatch):
    monkeypatch.setattr(settings, "PARTNER_RL_ENABLED", False)
    partner = SimpleNamespace(shop=SHOP, access_token="shpat_x", is_active=True, is_deleted=False)
    client = PartnerGraphQLClient.for_partner(partner, session=FakeSession())
    assert client.shop == SHOP
    assert client.limiter is None


def test_ensure_webhook_noop_when_present(sleeps):
    listing = {"data": {"webhookSubscriptions": {"edges": [
        {"node": {"id": "gid://1", "topic": "APP_UNINSTALLED",
                  "endpoint": {"__typename": "WebhookHttpEndpoint", "callbackUrl": "https://hub/cb"}}},
    ]}}}
    session = FakeSession(FakeResponse(payload=listing))
    result = _client(session, sleeps).ensure_webhook("APP_UNINSTALLED", "https://hub/cb")
    assert result["action"] == "noop"
    assert len(session.calls) == 1


def test_ensure_webhook_creates_when_missing(sleeps):
    listing = {"data": {"webhookSubscriptions": {"edges": []}}}
    created = {"data": {"webhookSubscriptionCreate": {
        "userErrors": [],
        "webhookSubscription": {"id": "gid://2", "topic": "APP_UNINSTALLED"},
    }}}
    session = FakeSession(FakeResponse(payload=listing), FakeResponse(payload=created))
    result = _client(session, sleeps).ensure_webhook("APP_UNINSTALLED", "https://hub/cb")
    assert result == {"action": "created", "id": "gid://2", "topic": "APP_UNINSTALLED", "callbackUrl": "https://hub/cb"}
    assert session.calls[1][1]["json"]["variables"] == {"topic": "APP_UNINSTALLED", "cb": "https://hub/cb"}


def test_ensure_webhook_user_errors(sleeps):
    listing = {"data": {"webhookSubscriptions": {"edges": []}}}
    created = {"data": {"webhookSubscriptionCreate": {"userErrors": [{"message": "bad"}], "webhookSubscription": None}}}
    session = FakeSession(FakeResponse(payload=listing), FakeResponse(payload=created))
    with pytest.raises(ShopifyPayloadError):
        _client(session, sleeps).ensure_webhook("APP_UNINSTALLED", "https://hub/cb")


def test_variant_inventory_batches_ids_and_skips_missing_nodes(sleeps):
    first = {"data": {"nodes": [
        {"id": "gid://shopify/ProductVariant/1", "inventoryQuantity": 4},
        None,
    ]}}
    second = {"data": {"nodes": [
        {"id": "gid://shopify/ProductVariant/3", "inventoryQuantity": None},
    ]}}
    session = FakeSession(FakeResponse(payload=first), FakeResponse(payload=second))
    ids = [f"gid://shopify/ProductVariant/{i}" for i in (1, 2, 3)]

    levels = _client(session, sleeps).variant_inventory(ids, batch_size=2)

    assert levels == {"gid://shopify/ProductVariant/1": 4}
    assert [c[1]["json"]["variables"]["ids"] for c in session.calls] == [ids[:2], ids[2:]]


def test_variant_inventory_without_nodes_list_is_payload_error(sleeps):
    session = FakeSession(FakeResponse(payload={"data": {"nodes": None}}))
    with pytest.raises(ShopifyPayloadError):
        _client(session, sleeps).variant_inventory(["gid://shopify/ProductVariant/1"])
