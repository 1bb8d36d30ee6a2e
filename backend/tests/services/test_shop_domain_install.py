from urllib.parse import parse_qs, urlparse

import pytest

from app.services.partner_oauth.install import build_install_url
from app.services.partner_oauth.shop_domain import validate_shop_domain


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("roastery.myshopify.com", "roastery.myshopify.com"),
        ("roastery", "roastery.myshopify.com"),
        ("  the-best-roastery  ", "the-best-roastery.myshopify.com"),
        ("Shop1.myshopify.com", "Shop1.myshopify.com"),
    ],
)
def test_valid_domains_are_normalized(raw, expected):
    assert validate_shop_domain(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [None, "", "-bad", "bad_shop", "evil.com", "roastery.myshopify.com.evil.com", "a b", "roastery.myshopify.com/admin"],
)
def test_invalid_domains_are_rejected(raw):
    assert validate_shop_domain(raw) is None


def test_validation_is_idempotent():
    once = validate_shop_domain("roastery")
    assert validate_shop_domain(once) == once


def test_install_url_carries_oauth_params():
    url = build_install_url(
        "roastery.myshopify.com",
        "https://hub.example.com/partner/callback",
        "state-token",
        client_id="key123",
        scopes="read_products,read_inventory",
    )
    parsed = urlparse(url)
    assert parsed.scheme == "https"
    assert parsed.netloc == "roastery.myshopify.com"
    assert parsed.path == "/admin/oauth/authorize"

    qs = parse_qs(parsed.query)
    assert qs["client_id"] == ["key123"]
    assert qs["scope"] == ["read_products,read_inventory"]
    assert qs["redirect_uri"] == ["https://hub.example.com/partner/callback"]
    assert qs["state"] == ["state-token"]
    assert qs["grant_options[]"] == ["offline"]
