from __future__ import annotations

import re
from typing import Optional

PLATFORM_DOMAIN = "myshopify.com"
_SHOP_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9-]*\." + re.escape(PLATFORM_DOMAIN) + r"$")


def validate_shop_domain(shop: Optional[str]) -> Optional[str]:
    """
    Normalize and validate a shop domain.

    A bare subdomain gets the platform suffix appended before matching, so
    validating the returned value again yields the same value.
    """
    if not shop:
        return None
    shop = shop.strip()
    normalized = shop if f".{PLATFORM_DOMAIN}" in shop else f"{shop}.{PLATFORM_DOMAIN}"
    if not _SHOP_RE.match(normalized):
        return None
    return normalized
