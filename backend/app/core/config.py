# 环境变量和配置
# pydantic‑settings 读取 .env = core/config.py

from typing import Optional
from pydantic import SecretStr, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# 本机直接跑 uvicorn 时（不走 Docker），才会用到 model_config.env_file=".env"：
# 此时它会读取 backend/.env

class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",
        case_sensitive=False,
        populate_by_name=True,
    )

    # ========= project config =========
    PROJECT_NAME: str = "Partner Sync Hub"
    ENVIRONMENT: str = "dev"
    API_PREFIX: str = "/api/v1"
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"


    # ========= Database =========
    # 容器内默认连 docker 网络里的 "db" 服务
    DATABASE_URL: str = Field(
        default="postgresql+psycopg://hub_user:hub_pass@db:5432/partner_hub",
        alias="DATABASE_URL",
    )


    # ========= celery config =========
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None
    CELERY_TIMEZONE: str = "UTC"
    SYNC_TASKS_INLINE: bool = Field(default=True, alias="SYNC_TASKS_INLINE")


    # ========= Shopify app (partner OAuth) =========
    SHOPIFY_API_KEY: str = Field("", alias="SHOPIFY_API_KEY")
    SHOPIFY_API_SECRET: SecretStr = Field(SecretStr(""), alias="SHOPIFY_API_SECRET")  # 同时用于 state 签名 / callback hmac / webhook hmac
    SCOPES: str = Field("read_products,read_inventory,write_orders", alias="SCOPES")
    SHOPIFY_APP_URL: Optional[str] = Field(None, alias="SHOPIFY_APP_URL")           # 回调地址 = {SHOPIFY_APP_URL}/partner/callback
    SHOPIFY_API_VERSION: str = Field("2025-07", alias="SHOPIFY_API_VERSION")
    OAUTH_STATE_TTL_SEC: int = Field(10 * 60, ge=1, alias="OAUTH_STATE_TTL_SEC")   # 10 分钟
    OAUTH_TOKEN_EXCHANGE_TIMEOUT: int = Field(15, ge=1, alias="OAUTH_TOKEN_EXCHANGE_TIMEOUT")


    # 网络/HTTP 层 配置 测试时调参
    SHOPIFY_HTTP_TIMEOUT: int = Field(30, alias="SHOPIFY_HTTP_TIMEOUT")
    SHOPIFY_HTTP_RETRIES: int = Field(3, alias="SHOPIFY_HTTP_RETRIES")
    SHOPIFY_HTTP_BACKOFF_MS: int = Field(200, alias="SHOPIFY_HTTP_BACKOFF_MS")


    # ========= pricing =========
    # 原样保留字符串，非法值/越界由 price_engine 回落到 0.30
    DEFAULT_MARGIN: Optional[str] = Field(None, alias="DEFAULT_MARGIN")


    # ========= catalog sync =========
    CATALOG_SYNC_PAGE_SIZE: int = Field(50, ge=1, le=250, alias="CATALOG_SYNC_PAGE_SIZE")
    CATALOG_SYNC_MAX_PAGES: Optional[int] = Field(200, ge=1, alias="CATALOG_SYNC_MAX_PAGES")   # 上游不可信时必须设上限
    CATALOG_SYNC_PRODUCT_QUERY: str = Field("status:active", alias="CATALOG_SYNC_PRODUCT_QUERY")
    CATALOG_SYNC_INTERVAL_SEC: int = Field(6 * 60 * 60, ge=60, alias="CATALOG_SYNC_INTERVAL_SEC")


    # ========= owner 店铺（库存写入方，client credentials 换 token） =========
    OWNER_STORE_DOMAIN: Optional[str] = Field(None, alias="OWNER_STORE_DOMAIN")      # xxx.myshopify.com；为空 = 未配置
    OWNER_CLIENT_ID: str = Field("", alias="OWNER_CLIENT_ID")
    OWNER_CLIENT_SECRET: SecretStr = Field(SecretStr(""), alias="OWNER_CLIENT_SECRET")
    OWNER_TOKEN_REFRESH_BUFFER_SEC: int = Field(5 * 60, ge=0, alias="OWNER_TOKEN_REFRESH_BUFFER_SEC")   # 过期前 5 分钟就换新


    # ========= inventory sync =========
    INVENTORY_SYNC_INTERVAL_SEC: int = Field(30 * 60, ge=60, alias="INVENTORY_SYNC_INTERVAL_SEC")
    INVENTORY_READ_BATCH_SIZE: int = Field(250, ge=1, le=250, alias="INVENTORY_READ_BATCH_SIZE")       # nodes(ids:) 上限 250
    INVENTORY_SKU_LOOKUP_BATCH_SIZE: int = Field(50, ge=1, le=100, alias="INVENTORY_SKU_LOOKUP_BATCH_SIZE")
    INVENTORY_WRITE_BATCH_SIZE: int = Field(10, ge=1, le=250, alias="INVENTORY_WRITE_BATCH_SIZE")     # 小批量写，一批失败影响面小


    # ========= partner 全局限流配置（按店铺分桶） =========
    PARTNER_RL_ENABLED: bool = False
    PARTNER_RL_REDIS_URL: str = "redis://redis:6379/0"
    PARTNER_RL_MAX_RPM: int = 120
    PARTNER_RL_BURST: int = 10
    PARTNER_RL_MAX_WAIT_MS: int = 5000
    PARTNER_RL_KEY_PREFIX: str = "partner:rl"


    @property
    def shopify_api_secret(self) -> str:
        return self.SHOPIFY_API_SECRET.get_secret_value()

    @property
    def owner_client_secret(self) -> str:
        return self.OWNER_CLIENT_SECRET.get_secret_value()


settings = Settings()  # 只从环境读取（含 .env）
