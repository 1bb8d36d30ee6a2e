from fastapi import APIRouter

# 浏览器跳转 / Shopify 服务器回调：挂在根路径（install 链接和 webhook 地址要稳定）
from .partner_oauth import router as partner_oauth_router
from .webhooks_shopify import router as webhooks_router

# 管理接口：挂在 API_PREFIX 下
from .routes_health import router as health_router
from .partners import router as partners_router
from .owner_store import router as owner_store_router


public = APIRouter()
public.include_router(partner_oauth_router)
public.include_router(webhooks_router)

api_v1 = APIRouter()
api_v1.include_router(health_router)
api_v1.include_router(partners_router)
api_v1.include_router(owner_store_router)
