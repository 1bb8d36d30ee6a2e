# FastAPI 依赖：每个组件一个 provider，测试里用 app.dependency_overrides 替换

from __future__ import annotations
from typing import Callable

from app.integrations.shopify.partner_client import PartnerGraphQLClient
from app.repository.partner_repo import SqlPartnerStore
from app.services.owner_store import OwnerStoreTokenProvider
from app.services.partner_oauth.callback import PartnerOAuthFlow
from app.services.partner_oauth.hmac_validator import CallbackHmacValidator
from app.services.partner_oauth.state import OAuthStateManager
from app.services.partner_oauth.token_exchange import TokenExchangeClient
from app.services.partner_onboarding import PartnerOnboarding
from app.services.pricing.price_engine import PriceEngine


def get_state_manager() -> OAuthStateManager:
    return OAuthStateManager.from_settings()


def get_oauth_flow() -> PartnerOAuthFlow:
    return PartnerOAuthFlow(
        state_manager=OAuthStateManager.from_settings(),
        hmac_validator=CallbackHmacValidator.from_settings(),
        exchanger=TokenExchangeClient.from_settings(),
        onboarding=PartnerOnboarding(SqlPartnerStore()),
    )


def get_price_engine() -> PriceEngine:
    return PriceEngine.from_settings()


def get_client_factory() -> Callable[..., PartnerGraphQLClient]:
    return PartnerGraphQLClient.for_partner


def get_owner_token_provider() -> OwnerStoreTokenProvider:
    return OwnerStoreTokenProvider.from_settings()
