"""
授权码换 access token
   - 只发一次 POST，不重试：code 一次性且很快过期，重试策略交给调用方
   - HTTP 非 2xx / 非 JSON / 缺字段 / 网络异常 都返回 ExchangeFailure（不抛异常）
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Union

import requests

from app.core.logging import mask_token

logger = logging.getLogger(__name__)


class TokenKind(str, enum.Enum):
    OFFLINE = "offline"      # 永久 token（shpat_ / shpca_），不带 expires_in
    ONLINE = "online"        # 随用户 session 过期
    UNKNOWN = "unknown"


_OFFLINE_PREFIXES = ("shpat_", "shpca_")
_ONLINE_PREFIXES = ("shpua_",)


def classify_token(token: Optional[str], expires_in: Optional[int] = None) -> TokenKind:
    if expires_in:
        return TokenKind.ONLINE
    if not token:
        return TokenKind.UNKNOWN
    if token.startswith(_ONLINE_PREFIXES):
        return TokenKind.ONLINE
    if token.startswith(_OFFLINE_PREFIXES):
        return TokenKind.OFFLINE
    return TokenKind.UNKNOWN


@dataclass(frozen=True)
class AccessGrant:
    access_token: str
    scope: str
    token_kind: TokenKind = TokenKind.UNKNOWN


@dataclass(frozen=True)
class ExchangeFailure:
    error: str


ExchangeResult = Union[AccessGrant, ExchangeFailure]


class TokenExchangeClient:

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: int = 15,
    ) -> None:
        self.api_key = api_key
        self._api_secret = api_secret
        self._session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "TokenExchangeClient":
        from app.core.config import settings

        return cls(
            settings.SHOPIFY_API_KEY,
            settings.shopify_api_secret,
            timeout=settings.OAUTH_TOKEN_EXCHANGE_TIMEOUT,
        )

    def exchange(self, shop: str, code: str) -> ExchangeResult:
        url = f"https://{shop}/admin/oauth/access_token"
        body = {"client_id": self.api_key, "client_secret": self._api_secret, "code": code}

        try:
            resp = self._session.post(
                url,
                json=body,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("partner.oauth.exchange_network_error shop=%s err=%s", shop, type(e).__name__)
            return ExchangeFailure("Network error during token exchange")

        if not resp.ok:
            logger.error(
                "partner.oauth.exchange_http_error shop=%s status=%s body=%s",
                shop, resp.status_code, (resp.text or "")[:500],
            )
            return ExchangeFailure(f"Token exchange failed: {resp.status_code}")

        try:
            data = resp.json()
        except ValueError:
            logger.error("partner.oauth.exchange_non_json shop=%s status=%s", shop, resp.status_code)
            return ExchangeFailure("Token exchange returned a non-JSON response")

        if not isinstance(data, dict):
            return ExchangeFailure("Token exchange returned an unexpected payload")

        access_token = data.get("access_token")
        scope = data.get("scope")
        if not isinstance(access_token, str) or not access_token or not isinstance(scope, str):
            logger.error("partner.oauth.exchange_missing_fields shop=%s keys=%s", shop, sorted(data.keys()))
            return ExchangeFailure("Token exchange response is missing access_token or scope")

        kind = classify_token(access_token, data.get("expires_in"))
        # 诊断用：看清楚拿到的是 offline 还是 online token
        logger.info(
            "partner.oauth.exchange_ok shop=%s token=%s kind=%s has_associated_user=%s keys=%s",
            shop, mask_token(access_token), kind.value, bool(data.get("associated_user")), sorted(data.keys()),
        )
        return AccessGrant(access_token=access_token, scope=scope, token_kind=kind)
