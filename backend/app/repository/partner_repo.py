
from __future__ import annotations
import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from app.core.errors import PartnerLifecycleError
from app.db.model.partner import Partner
from app.services.partner_lifecycle import PartnerEvent, PartnerStatus, apply_event, is_usable, status_of
from app.utils.clock import now_utc

logger = logging.getLogger(__name__)


def find_partner_by_shop(db: Session, shop: str) -> Optional[Partner]:
    return db.execute(select(Partner).where(Partner.shop == shop)).scalar_one_or_none()


def get_all_partners(db: Session, *, include_deleted: bool = False) -> List[Partner]:
    stmt = select(Partner).order_by(Partner.created_at.desc(), Partner.id.desc())
    if not include_deleted:
        stmt = stmt.where(Partner.is_deleted.is_(False))
    return list(db.execute(stmt).scalars())


def get_usable_partners(db: Session) -> List[Partner]:
    """有 token、active、未删除的 partner（可以直接调 API）"""
    stmt = (
        select(Partner)
        .where(Partner.is_deleted.is_(False), Partner.is_active.is_(True), Partner.access_token.is_not(None))
        .order_by(Partner.id.asc())
    )
    return list(db.execute(stmt).scalars())


def partition_partners(db: Session, shops: Optional[Iterable[str]] = None) -> Tuple[List[Partner], Dict[str, str]]:
    """返回 (可同步的 partner, {shop: 跳过原因})；shops=None 表示全部可用 partner"""
    if shops is None:
        return get_usable_partners(db), {}

    usable, skipped = [], {}
    for shop in shops:
        partner = find_partner_by_shop(db, shop)
        if is_usable(partner):
            usable.append(partner)
        else:
            skipped[shop] = status_of(partner).value
    return usable, skipped


'''
首次安装 → 新建（absent → active）
重新安装 → 刷新 token/scope，并清掉软删除标记（soft_deleted/revoked → active）
'''
def upsert_partner(db: Session, shop: str, access_token: str, scope: Optional[str]) -> Partner:
    try:
        partner = find_partner_by_shop(db, shop)
        if partner is None:
            partner = Partner(shop=shop, is_active=True, is_deleted=False)
            apply_event(partner, PartnerEvent.INSTALL, current=PartnerStatus.ABSENT,
                        access_token=access_token, scope=scope)
            db.add(partner)
            event = PartnerEvent.INSTALL
        else:
            previous = status_of(partner)
            apply_event(partner, PartnerEvent.REINSTALL, access_token=access_token, scope=scope)
            event = PartnerEvent.REINSTALL
            logger.info("partner.reinstall shop=%s previous=%s", shop, previous.value)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(partner)
    logger.info("partner.upsert shop=%s event=%s", shop, event.value)
    return partner


def _transition(db: Session, shop: str, event: PartnerEvent) -> Optional[Partner]:
    partner = find_partner_by_shop(db, shop)
    if partner is None:
        return None
    try:
        apply_event(partner, event, now=now_utc())
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("partner.%s shop=%s status=%s", event.value, shop, partner.status.value)
    return partner


def soft_delete_partner(db: Session, shop: str) -> Optional[Partner]:
    """卸载 / shop redact：清除凭证，保留业务记录；找不到返回 None"""
    return _transition(db, shop, PartnerEvent.UNINSTALL)


def revoke_partner(db: Session, shop: str) -> Optional[Partner]:
    """token 失效（401）或手动撤销：只擦 token，不删除"""
    return _transition(db, shop, PartnerEvent.TOKEN_WIPE)


def revoke_after_auth_failure(db: Session, shop: str) -> bool:
    """
    401/403 之后吊销 partner。请求期间 partner 可能已被 uninstall webhook 软删除，
    这时不能再 token_wipe；返回是否真的吊销了。
    """
    current = status_of(find_partner_by_shop(db, shop))
    if current not in (PartnerStatus.ACTIVE, PartnerStatus.REVOKED):
        logger.info("partner.revoke_skipped shop=%s status=%s", shop, current.value)
        return False
    try:
        revoke_partner(db, shop)
    except PartnerLifecycleError as e:
        logger.warning("partner.revoke_rejected shop=%s err=%s", shop, e)
        return False
    return True


def update_scope(db: Session, shop: str, scope: str) -> Optional[Partner]:
    partner = find_partner_by_shop(db, shop)
    if partner is None:
        return None
    partner.scope = scope
    db.commit()
    return partner



class SqlPartnerStore:
    """PartnerStore 的 SQLAlchemy 实现：每次操作一个短会话。"""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None) -> None:
        if session_factory is None:
            from app.db.session import SessionLocal
            session_factory = SessionLocal
        self._session_factory: Callable[[], Session] | sessionmaker = session_factory

    def upsert_partner(self, shop: str, access_token: str, scope: Optional[str]) -> Partner:
        with self._session_factory() as db:
            return upsert_partner(db, shop, access_token, scope)

    def get_all_partners(self, include_deleted: bool = False) -> List[Partner]:
        with self._session_factory() as db:
            return get_all_partners(db, include_deleted=include_deleted)

    def find_partner_by_shop(self, shop: str) -> Optional[Partner]:
        with self._session_factory() as db:
            return find_partner_by_shop(db, shop)

    def soft_delete_partner(self, shop: str) -> Optional[Partner]:
        with self._session_factory() as db:
            return soft_delete_partner(db, shop)

    def revoke_partner(self, shop: str) -> Optional[Partner]:
        with self._session_factory() as db:
            return revoke_partner(db, shop)

    def update_scope(self, shop: str, scope: str) -> Optional[Partner]:
        with self._session_factory() as db:
            return update_scope(db, shop, scope)
