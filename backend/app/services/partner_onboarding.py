from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from app.core.errors import PersistenceError

logger = logging.getLogger(__name__)


class PartnerStore(Protocol):
    """Keyed partner storage; upsert atomicity is the store's job."""

    def upsert_partner(self, shop: str, access_token: str, scope: Optional[str]): ...

    def get_all_partners(self, include_deleted: bool = False) -> List: ...

    def find_partner_by_shop(self, shop: str): ...

    def soft_delete_partner(self, shop: str): ...

    def revoke_partner(self, shop: str): ...

    def update_scope(self, shop: str, scope: str): ...


class PartnerOnboarding:
    """
    把换到的 token 落库：
      - 直接委托给 store.upsert_partner（重装会清除软删除标记）
      - 失败包装成 PersistenceError（带 shop）再抛，不重试
    """

    def __init__(self, store: PartnerStore) -> None:
        self.store = store

    def ensure_exists(self, shop: str, access_token: str, scope: Optional[str]):
        try:
            partner = self.store.upsert_partner(shop, access_token, scope)
        except Exception as e:
            logger.error("partner.onboarding.persist_failed shop=%s err=%s", shop, e)
            raise PersistenceError(shop, e) from e
        logger.info("partner.onboarding.ok shop=%s", shop)
        return partner
