from __future__ import annotations

import logging
from typing import Iterable, Mapping, Tuple, Union

from app.core.security import sign, verify_constant_time

logger = logging.getLogger(__name__)

QueryParams = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def query_pairs(params: QueryParams) -> list[tuple[str, str]]:
    # Starlette QueryParams 也是 Mapping，但重复 key 要用 multi_items 才能全部拿到
    if hasattr(params, "multi_items"):
        return list(params.multi_items())
    if isinstance(params, Mapping):
        return list(params.items())
    return list(params)


class CallbackHmacValidator:
    """
    校验 OAuth callback 的 hmac 参数：
      - 去掉 hmac 本身，按 key 字典序排序，拼成 key=value&key=value
      - 用 app secret 做 HMAC-SHA256 hex，与收到的值常量时间比较
    """

    def __init__(self, secret: str) -> None:
        self._secret = secret

    @classmethod
    def from_settings(cls) -> "CallbackHmacValidator":
        from app.core.config import settings

        return cls(settings.shopify_api_secret)

    def message_for(self, params: QueryParams) -> str:
        remaining = [(k, v) for k, v in query_pairs(params) if k != "hmac"]
        remaining.sort(key=lambda kv: kv[0])
        return "&".join(f"{k}={v}" for k, v in remaining)

    def validate(self, params: QueryParams) -> bool:
        try:
            pairs = query_pairs(params)
            received = next((v for k, v in pairs if k == "hmac"), None)
            if not received:
                return False
            expected = sign(self.message_for(pairs), self._secret)
            return verify_constant_time(received, expected)
        except (TypeError, ValueError, UnicodeError) as e:
            logger.warning("partner.oauth.hmac_undecodable err=%s", type(e).__name__)
            return False
