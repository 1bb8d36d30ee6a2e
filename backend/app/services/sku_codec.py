"""
Partner SKU 编解码

Format: PARTNER-{shopPrefix}-{originalSku}
Example: PARTNER-roastery-BLEND001

owner 店里的 SKU 就是和 partner 变体对账的 join key：
  - shopPrefix = 店铺域名去掉 .myshopify.com
  - originalSku 会被规范化（大写 / 非法字符替换为 - / 合并连续 - / 去首尾 -），这一步不可逆
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from app.services.partner_oauth.shop_domain import PLATFORM_DOMAIN

SKU_PREFIX = "PARTNER"
SKU_SEPARATOR = "-"
MISSING_SKU_PLACEHOLDER = "NOSKU"
PLATFORM_SUFFIX = f".{PLATFORM_DOMAIN}"

_INVALID_CHARS = re.compile(r"[^A-Z0-9\-_]")
_DASH_RUNS = re.compile(r"-+")
_SUFFIX_RE = re.compile(re.escape(PLATFORM_SUFFIX) + r"$", re.IGNORECASE)


@dataclass(frozen=True)
class DecodedSku:
    shop: str
    original_sku: str


def shop_prefix(shop: str) -> str:
    """e.g. "the-best-roastery.myshopify.com" -> "the-best-roastery" """
    return _SUFFIX_RE.sub("", shop)


def normalize_sku(sku: Optional[str]) -> str:
    if not sku:
        return MISSING_SKU_PLACEHOLDER
    cleaned = _DASH_RUNS.sub("-", _INVALID_CHARS.sub("-", sku.upper())).strip("-")
    return cleaned or MISSING_SKU_PLACEHOLDER


def encode(shop: str, original_sku: Optional[str]) -> str:
    return SKU_SEPARATOR.join((SKU_PREFIX, shop_prefix(shop), normalize_sku(original_sku)))


def is_encoded(sku: Optional[str]) -> bool:
    return bool(sku) and sku.startswith(SKU_PREFIX + SKU_SEPARATOR)


def decode(sku: Optional[str], known_shops: Optional[Iterable[str]] = None) -> Optional[DecodedSku]:
    """
    Parse a partner SKU back into (shop, original SKU).

    Without ``known_shops`` the first segment after the prefix is taken as the
    shop prefix and the rest is the original SKU (which may itself contain
    separators). A shop subdomain that contains a hyphen cannot be recovered
    that way, so callers that know their partners pass ``known_shops`` and the
    longest matching shop prefix wins.
    """
    if not is_encoded(sku):
        return None

    parts = sku.split(SKU_SEPARATOR)
    if len(parts) < 3:
        return None

    body = sku[len(SKU_PREFIX) + len(SKU_SEPARATOR):]

    if known_shops:
        prefixes = sorted({shop_prefix(s) for s in known_shops}, key=len, reverse=True)
        for prefix in prefixes:
            head = prefix + SKU_SEPARATOR
            if prefix and body.startswith(head):
                return DecodedSku(shop=f"{prefix}{PLATFORM_SUFFIX}", original_sku=body[len(head):])

    # 去掉 PARTNER 前缀，第一段是店铺前缀，剩下的原样拼回
    prefix = parts[1]
    original = SKU_SEPARATOR.join(parts[2:])
    return DecodedSku(shop=f"{prefix}{PLATFORM_SUFFIX}", original_sku=original)


def shop_from_sku(sku: str, known_shops: Optional[Iterable[str]] = None) -> Optional[str]:
    parsed = decode(sku, known_shops)
    return parsed.shop if parsed else None


def shop_prefix_from_sku(sku: str) -> Optional[str]:
    if not is_encoded(sku):
        return None
    parts = sku.split(SKU_SEPARATOR)
    return parts[1] if len(parts) >= 2 else None
