"""
Partner OAuth callback 编排

GET /partner/callback?code=xxx&shop=xxx&state=xxx&hmac=xxx

固定顺序，不跳步、不换序：
  1) 必填参数          → missing_params
  2) 店铺域名格式       → invalid_shop
  3) HMAC（全部参数）   → invalid_hmac
  4) state + shop 一致  → invalid_state
  5) code 换 token     → token_exchange
  6) 落库              → database_error
任何一步失败都只返回 reason code，不把异常/堆栈漏给用户。
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from app.services.partner_oauth.hmac_validator import CallbackHmacValidator, QueryParams, query_pairs
from app.services.partner_oauth.shop_domain import validate_shop_domain
from app.services.partner_oauth.state import OAuthStateManager
from app.services.partner_oauth.token_exchange import ExchangeFailure, TokenExchangeClient
from app.services.partner_onboarding import PartnerOnboarding

logger = logging.getLogger(__name__)


class CallbackRejection(str, enum.Enum):
    MISSING_PARAMS = "missing_params"
    INVALID_SHOP = "invalid_shop"
    INVALID_HMAC = "invalid_hmac"
    INVALID_STATE = "invalid_state"
    TOKEN_EXCHANGE = "token_exchange"
    DATABASE_ERROR = "database_error"


@dataclass(frozen=True)
class CallbackOutcome:
    shop: Optional[str] = None
    reason: Optional[CallbackRejection] = None
    details: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.reason is None


class PartnerOAuthFlow:

    def __init__(
        self,
        state_manager: OAuthStateManager,
        hmac_validator: CallbackHmacValidator,
        exchanger: TokenExchangeClient,
        onboarding: PartnerOnboarding,
    ) -> None:
        self.state_manager = state_manager
        self.hmac_validator = hmac_validator
        self.exchanger = exchanger
        self.onboarding = onboarding

    def _reject(self, reason: CallbackRejection, shop: Optional[str] = None, details: Optional[str] = None) -> CallbackOutcome:
        logger.warning("partner.oauth.callback_rejected reason=%s shop=%s details=%s", reason.value, shop, details)
        return CallbackOutcome(shop=shop, reason=reason, details=details)

    def handle_callback(self, params: QueryParams) -> CallbackOutcome:
        pairs = query_pairs(params)
        first: Dict[str, str] = {}
        for k, v in pairs:
            first.setdefault(k, v)

        code, shop_param, state = first.get("code"), first.get("shop"), first.get("state")

        # 1) 必填参数
        if not code or not shop_param or not state:
            return self._reject(CallbackRejection.MISSING_PARAMS)

        # 2) 店铺域名
        shop = validate_shop_domain(shop_param)
        if not shop:
            return self._reject(CallbackRejection.INVALID_SHOP, details=shop_param)

        # 3) Shopify 签名：签的是原始参数，所以用 pairs 而不是规范化后的 shop
        if not self.hmac_validator.validate(pairs):
            return self._reject(CallbackRejection.INVALID_HMAC, shop)

        # 4) CSRF state：必须是我们签发的，且与回调里原样的 shop 参数完全一致（不先规范化）
        state_shop = self.state_manager.validate(state)
        if not state_shop or state_shop != shop_param:
            return self._reject(CallbackRejection.INVALID_STATE, shop, details=f"expected={state_shop}")

        # 5) code 换 token（不重试）
        result = self.exchanger.exchange(shop, code)
        if isinstance(result, ExchangeFailure):
            return self._reject(CallbackRejection.TOKEN_EXCHANGE, shop, details=result.error)

        # 6) 落库：任何异常都转成 database_error
        try:
            self.onboarding.ensure_exists(shop, result.access_token, result.scope)
        except Exception as e:
            logger.exception("partner.oauth.persist_failed shop=%s", shop)
            return self._reject(CallbackRejection.DATABASE_ERROR, shop, details=type(e).__name__)

        logger.info("partner.oauth.connected shop=%s kind=%s", shop, result.token_kind.value)
        return CallbackOutcome(shop=shop)
