"""
OAuth state (CSRF) token

Format (base64url, no padding): {timestamp_ms}:{shop}:{signature}
   - signature = HMAC-SHA256(secret, "{timestamp_ms}:{shop}") hex
   - 不落库：有效性完全由 token 本身 + 共享密钥重算，所以多实例部署不需要共享 session
   - 过期（> TTL）或任何字节被改动都会校验失败
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import Callable, Optional

from app.core.security import sign, verify_constant_time

logger = logging.getLogger(__name__)

STATE_TTL_SEC = 10 * 60


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.b64decode(f"{data}{padding}", altchars=b"-_", validate=True)


class OAuthStateManager:

    def __init__(
        self,
        secret: str,
        ttl_seconds: int = STATE_TTL_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = secret
        self.ttl_ms = int(ttl_seconds * 1000)
        self._clock = clock

    @classmethod
    def from_settings(cls) -> "OAuthStateManager":
        from app.core.config import settings

        return cls(settings.shopify_api_secret, ttl_seconds=settings.OAUTH_STATE_TTL_SEC)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def issue(self, shop: str) -> str:
        data = f"{self._now_ms()}:{shop}"
        signature = sign(data, self._secret)
        return _b64url_encode(f"{data}:{signature}".encode("utf-8"))

    def validate(self, token: Optional[str]) -> Optional[str]:
        """Return the embedded shop when the token is authentic and fresh, otherwise None."""
        if not token:
            return None
        try:
            raw = _b64url_decode(token)
            decoded = raw.decode("utf-8")
        except (binascii.Error, ValueError, UnicodeDecodeError):
            logger.info("partner.oauth.state_undecodable")
            return None
        # 末位字符的填充位不参与解码：只接受规范编码，否则改一个字符也能解出同样的内容
        if _b64url_encode(raw) != token:
            return None

        fields = decoded.split(":")
        if len(fields) != 3:
            return None
        timestamp, shop, signature = fields
        if not timestamp or not shop or not signature:
            return None
        if not (timestamp.isascii() and timestamp.isdigit()):
            return None

        age_ms = self._now_ms() - int(timestamp)
        if age_ms > self.ttl_ms:
            logger.info("partner.oauth.state_expired shop=%s age_ms=%s", shop, age_ms)
            return None

        expected = sign(f"{timestamp}:{shop}", self._secret)
        if not verify_constant_time(signature, expected):
            logger.warning("partner.oauth.state_bad_signature shop=%s", shop)
            return None

        return shop
