"""
Owner 店铺连接：client credentials grant 换 token + 自动续期
   - token 约 24h 过期；剩余时间不足 refresh_buffer 时先换新再用
   - get_connection / refresh 永不抛异常：失败都折叠成 status=error 的 OwnerConnection
   - 未配置 OWNER_STORE_DOMAIN → status=not_configured
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.logging import mask_token
from app.db.session import session_scope
from app.repository.owner_store_repo import clear_owner_token, get_owner_store, save_owner_token, set_owner_location
from app.utils.clock import as_utc, now_utc

logger = logging.getLogger(__name__)


class OwnerTokenStatus(str, enum.Enum):
    CONNECTED = "connected"
    NOT_CONFIGURED = "not_configured"
    ERROR = "error"


@dataclass(frozen=True)
class OwnerConnection:
    status: OwnerTokenStatus
    shop: Optional[str] = None
    access_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    location_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is OwnerTokenStatus.CONNECTED and bool(self.access_token)

    def public(self) -> dict:
        """给 API 用：不含 token"""
        return {
            "status": self.status.value,
            "shop": self.shop,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "location_id": self.location_id,
            "error": self.error,
        }


@dataclass(frozen=True)
class ClientCredentialsGrant:
    access_token: str
    scope: Optional[str]
    expires_in: int


@dataclass(frozen=True)
class CredentialsFailure:
    error: str


class ClientCredentialsClient:
    """POST https://{shop}/admin/oauth/access_token  grant_type=client_credentials（不重试）"""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: int = 15,
    ) -> None:
        self.client_id = client_id
        self._client_secret = client_secret
        self._session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "ClientCredentialsClient":
        from app.core.config import settings

        return cls(
            settings.OWNER_CLIENT_ID,
            settings.owner_client_secret,
            timeout=settings.OAUTH_TOKEN_EXCHANGE_TIMEOUT,
        )

    def fetch(self, shop: str) -> Union[ClientCredentialsGrant, CredentialsFailure]:
        if not self.client_id or not self._client_secret:
            return CredentialsFailure("Missing OWNER_CLIENT_ID or OWNER_CLIENT_SECRET")

        try:
            resp = self._session.post(
                f"https://{shop}/admin/oauth/access_token",
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self._client_secret,
                },
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("owner.oauth.network_error shop=%s err=%s", shop, type(e).__name__)
            return CredentialsFailure("Network error during client credentials grant")

        if not resp.ok:
            logger.error("owner.oauth.http_error shop=%s status=%s body=%s", shop, resp.status_code, (resp.text or "")[:500])
            return CredentialsFailure(f"Failed to fetch token: {resp.status_code}")

        try:
            data = resp.json()
        except ValueError:
            return CredentialsFailure("Client credentials grant returned a non-JSON response")

        access_token = data.get("access_token") if isinstance(data, dict) else None
        expires_in = data.get("expires_in") if isinstance(data, dict) else None
        if not isinstance(access_token, str) or not access_token or not isinstance(expires_in, int) or expires_in <= 0:
            return CredentialsFailure("Client credentials response is missing access_token or expires_in")

        logger.info("owner.oauth.token_ok shop=%s token=%s expires_in=%s", shop, mask_token(access_token), expires_in)
        return ClientCredentialsGrant(access_token=access_token, scope=data.get("scope"), expires_in=expires_in)


class OwnerStoreTokenProvider:

    def __init__(
        self,
        shop: Optional[str],
        credentials: ClientCredentialsClient,
        *,
        session_factory: Optional[sessionmaker[Session]] = None,
        refresh_buffer_sec: int = 300,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.shop = shop
        self.credentials = credentials
        self._session_factory = session_factory
        self.refresh_buffer = timedelta(seconds=max(0, refresh_buffer_sec))
        self._clock = clock

    @classmethod
    def from_settings(cls, session_factory: Optional[sessionmaker[Session]] = None) -> "OwnerStoreTokenProvider":
        from app.core.config import settings

        return cls(
            settings.OWNER_STORE_DOMAIN,
            ClientCredentialsClient.from_settings(),
            session_factory=session_factory,
            refresh_buffer_sec=settings.OWNER_TOKEN_REFRESH_BUFFER_SEC,
        )

    def _error(self, message: str) -> OwnerConnection:
        logger.error("owner.connection_error shop=%s err=%s", self.shop, message)
        return OwnerConnection(OwnerTokenStatus.ERROR, shop=self.shop, error=message)

    def _needs_refresh(self, store) -> bool:
        expires_at = as_utc(store.expires_at) if store is not None else None
        if store is None or not store.access_token or expires_at is None:
            return True
        return expires_at - self._clock() < self.refresh_buffer

    def _refresh(self, db: Session, location_id: Optional[str]) -> OwnerConnection:
        result = self.credentials.fetch(self.shop)
        if isinstance(result, CredentialsFailure):
            return self._error(result.error)
        expires_at = self._clock() + timedelta(seconds=result.expires_in)
        save_owner_token(db, self.shop, result.access_token, result.scope, expires_at, now=self._clock())
        return OwnerConnection(
            OwnerTokenStatus.CONNECTED, shop=self.shop, access_token=result.access_token,
            expires_at=expires_at, location_id=location_id,
        )

    '''
    取可用的 owner 连接：
        1) 未配置 → not_configured
        2) 库里没有 token / 快过期 → client credentials 换新并落库
        3) 否则直接用库里的 token
    '''
    def get_connection(self, *, force_refresh: bool = False) -> OwnerConnection:
        if not self.shop:
            return OwnerConnection(OwnerTokenStatus.NOT_CONFIGURED, error="OWNER_STORE_DOMAIN not set")
        try:
            with session_scope(self._session_factory) as db:
                store = get_owner_store(db, self.shop)
                location_id = store.location_id if store is not None else None
                if force_refresh or self._needs_refresh(store):
                    return self._refresh(db, location_id)
                return OwnerConnection(
                    OwnerTokenStatus.CONNECTED, shop=self.shop, access_token=store.access_token,
                    expires_at=as_utc(store.expires_at), location_id=location_id,
                )
        except SQLAlchemyError as e:
            return self._error(f"database error: {type(e).__name__}")

    def refresh(self) -> OwnerConnection:
        """手动重连：不管剩余时间，直接换新 token"""
        return self.get_connection(force_refresh=True)

    def remember_location(self, connection: OwnerConnection, location_id: str) -> OwnerConnection:
        with session_scope(self._session_factory) as db:
            set_owner_location(db, self.shop, location_id)
        return replace(connection, location_id=location_id)

    def invalidate(self) -> None:
        with session_scope(self._session_factory) as db:
            clear_owner_token(db, self.shop)
