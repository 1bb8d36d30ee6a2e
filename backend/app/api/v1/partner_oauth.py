# Partner OAuth 安装 / 回调：浏览器跳转，不走 /api/v1 前缀，也不需要登录

from __future__ import annotations
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from app.api.deps import get_oauth_flow, get_state_manager
from app.core.config import settings
from app.services.partner_oauth.callback import CallbackRejection, PartnerOAuthFlow
from app.services.partner_oauth.install import build_install_url
from app.services.partner_oauth.shop_domain import validate_shop_domain
from app.services.partner_oauth.state import OAuthStateManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/partner", tags=["partner.oauth"])


ERROR_MESSAGES = {
    "missing_shop": ("Missing Shop Parameter", "The shop parameter is required. Please use a valid install link."),
    "invalid_shop": ("Invalid Shop Domain", "The shop domain provided is not valid. Please check the URL and try again."),
    "config_error": ("Configuration Error", "The app is not properly configured. Please contact support."),
    CallbackRejection.MISSING_PARAMS.value: ("Missing Parameters", "The authorization response is missing required parameters."),
    CallbackRejection.INVALID_HMAC.value: ("Security Validation Failed", "The request signature could not be verified. Please try the authorization again."),
    CallbackRejection.INVALID_STATE.value: ("Session Expired", "Your authorization session has expired. Please start the process again."),
    CallbackRejection.TOKEN_EXCHANGE.value: ("Authorization Failed", "Failed to complete the authorization with Shopify. Please try again."),
    CallbackRejection.DATABASE_ERROR.value: ("Storage Error", "Failed to save your authorization. Please try again or contact support."),
}
DEFAULT_ERROR = ("Authorization Error", "An unexpected error occurred during authorization. Please try again.")


def _error_redirect(reason: str, details: Optional[str] = None) -> RedirectResponse:
    params = {"reason": reason}
    if details:
        params["details"] = details
    return RedirectResponse(f"/partner/error?{urlencode(params)}", status_code=302)


'''
GET /partner/install?shop=partner-store.myshopify.com
   - 校验 shop → 签发 state → 302 到 Shopify 授权页
'''
@router.get("/install")
def install(shop: Optional[str] = None, state_manager: OAuthStateManager = Depends(get_state_manager)):
    if not shop:
        return _error_redirect("missing_shop")

    normalized = validate_shop_domain(shop)
    if not normalized:
        return _error_redirect("invalid_shop")

    if not settings.SHOPIFY_APP_URL or not settings.SHOPIFY_API_KEY:
        logger.error("partner.oauth.config_error app_url_set=%s api_key_set=%s",
                     bool(settings.SHOPIFY_APP_URL), bool(settings.SHOPIFY_API_KEY))
        return _error_redirect("config_error")

    redirect_uri = f"{settings.SHOPIFY_APP_URL.rstrip('/')}/partner/callback"
    url = build_install_url(
        normalized,
        redirect_uri,
        state_manager.issue(normalized),
        client_id=settings.SHOPIFY_API_KEY,
        scopes=settings.SCOPES,
    )
    logger.info("partner.oauth.install shop=%s", normalized)
    return RedirectResponse(url, status_code=302)


'''
GET /partner/callback?code=&shop=&state=&hmac=&timestamp=...
   - 全部校验交给 PartnerOAuthFlow；这里只把结果映射成跳转
   - 只有 token_exchange 会带 details（Shopify 返回的错误），其它原因不回显内部信息
'''
@router.get("/callback")
def callback(request: Request, flow: PartnerOAuthFlow = Depends(get_oauth_flow)):
    outcome = flow.handle_callback(request.query_params)
    if not outcome.ok:
        details = outcome.details if outcome.reason is CallbackRejection.TOKEN_EXCHANGE else None
        return _error_redirect(outcome.reason.value, details)
    return RedirectResponse(f"/partner/success?{urlencode({'shop': outcome.shop})}", status_code=302)


@router.get("/error")
def error(reason: str = "default", details: Optional[str] = None):
    title, message = ERROR_MESSAGES.get(reason, DEFAULT_ERROR)
    return {"ok": False, "reason": reason, "title": title, "message": message, "details": details}


@router.get("/success")
def success(shop: Optional[str] = None):
    return {
        "ok": True,
        "shop": shop,
        "title": "Store Connected",
        "message": "Your store has been connected. Your catalog will be synced shortly.",
    }
