"""
Margin 定价

Formula: my_price = partner_price / (1 - margin)

Example with 30% margin:
  - Partner price: $70
  - My price: $70 / (1 - 0.30) = $70 / 0.70 = $100
  - My profit: $100 - $70 = $30 (which is 30% of $100)

selling_price 与 margin_from_prices 互为逆运算（误差在舍入精度内）。
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

from app.core.errors import DomainError

logger = logging.getLogger(__name__)

Number = Union[Decimal, int, float, str]

FALLBACK_MARGIN = Decimal("0.30")
_Q_CENTS = Decimal("0.01")
_Q_MARGIN = Decimal("0.0001")
_ONE = Decimal("1")
_ZERO = Decimal("0")


def _d(value: Number) -> Decimal:
    # float 先转 str，避免 0.1 这类二进制误差
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise DomainError(f"Not a number: {value!r}") from e
    if not result.is_finite():
        raise DomainError(f"Not a finite number: {value!r}")
    return result


def _margin_in_range(margin: Decimal) -> bool:
    return _ZERO <= margin < _ONE


def resolve_default_margin(raw: Optional[Number]) -> Decimal:
    """Parse the configured default margin; unset, unparsable or out-of-range values fall back to 0.30."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return FALLBACK_MARGIN
    try:
        parsed = _d(raw.strip() if isinstance(raw, str) else raw)
    except DomainError:
        logger.warning("pricing.default_margin_invalid raw=%r fallback=%s", raw, FALLBACK_MARGIN)
        return FALLBACK_MARGIN
    if not _margin_in_range(parsed):
        logger.warning("pricing.default_margin_out_of_range raw=%r fallback=%s", raw, FALLBACK_MARGIN)
        return FALLBACK_MARGIN
    return parsed


class PriceEngine:
    """Margin-based price transform; the default margin is read-only once constructed."""

    def __init__(self, default_margin: Number = FALLBACK_MARGIN):
        margin = _d(default_margin)
        if not _margin_in_range(margin):
            raise DomainError(f"Default margin must be in [0, 1), got {default_margin!r}")
        self._default_margin = margin

    @classmethod
    def from_settings(cls) -> "PriceEngine":
        from app.core.config import settings

        return cls(resolve_default_margin(settings.DEFAULT_MARGIN))

    @property
    def default_margin(self) -> Decimal:
        return self._default_margin

    def selling_price(self, partner_price: Number, margin: Optional[Number] = None) -> Decimal:
        effective = self._default_margin if margin is None else _d(margin)
        if not _margin_in_range(effective):
            raise DomainError(f"Margin must be between 0 and 1 (exclusive), got {margin!r}")

        price = _d(partner_price)
        if price < _ZERO:
            raise DomainError(f"Partner price cannot be negative, got {partner_price!r}")

        return (price / (_ONE - effective)).quantize(_Q_CENTS, rounding=ROUND_HALF_UP)

    def margin_from_prices(self, partner_price: Number, selling_price: Number) -> Decimal:
        selling = _d(selling_price)
        if selling == _ZERO:
            return _ZERO
        margin = _ONE - (_d(partner_price) / selling)
        return margin.quantize(_Q_MARGIN, rounding=ROUND_HALF_UP)


# ---------------- API 边界：价格一律序列化为两位小数字符串 ----------------

def format_price(value: Number) -> str:
    return str(_d(value).quantize(_Q_CENTS, rounding=ROUND_HALF_UP))


def parse_price(text: Optional[str]) -> Decimal:
    """Shopify 返回的价格字符串；解析不了按 0 处理。"""
    if text is None:
        return _ZERO
    try:
        return _d(text)
    except DomainError:
        return _ZERO
