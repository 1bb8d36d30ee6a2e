"""
Partner 生命周期状态机

   absent ──install──▶ active ──token_wipe──▶ revoked
                          │  ▲                  │
                 uninstall│  │reinstall         │uninstall
                          ▼  │                  ▼
                       soft_deleted ◀───────────┘

  - 只做软删除，永不物理删除（业务记录要保留）
  - access_token 为空的 partner 一律视为不可用，不管 is_active 是什么
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from app.core.errors import PartnerLifecycleError
from app.utils.clock import now_utc


class PartnerStatus(str, enum.Enum):
    ABSENT = "absent"
    ACTIVE = "active"
    REVOKED = "revoked"
    SOFT_DELETED = "soft_deleted"


class PartnerEvent(str, enum.Enum):
    INSTALL = "install"
    REINSTALL = "reinstall"
    UNINSTALL = "uninstall"
    TOKEN_WIPE = "token_wipe"


TRANSITIONS: dict[tuple[PartnerStatus, PartnerEvent], PartnerStatus] = {
    (PartnerStatus.ABSENT, PartnerEvent.INSTALL): PartnerStatus.ACTIVE,
    (PartnerStatus.ACTIVE, PartnerEvent.REINSTALL): PartnerStatus.ACTIVE,
    (PartnerStatus.REVOKED, PartnerEvent.REINSTALL): PartnerStatus.ACTIVE,
    (PartnerStatus.SOFT_DELETED, PartnerEvent.REINSTALL): PartnerStatus.ACTIVE,
    (PartnerStatus.ACTIVE, PartnerEvent.UNINSTALL): PartnerStatus.SOFT_DELETED,
    (PartnerStatus.REVOKED, PartnerEvent.UNINSTALL): PartnerStatus.SOFT_DELETED,
    # webhook 可能重复投递
    (PartnerStatus.SOFT_DELETED, PartnerEvent.UNINSTALL): PartnerStatus.SOFT_DELETED,
    (PartnerStatus.ACTIVE, PartnerEvent.TOKEN_WIPE): PartnerStatus.REVOKED,
    (PartnerStatus.REVOKED, PartnerEvent.TOKEN_WIPE): PartnerStatus.REVOKED,
}


def status_of(partner) -> PartnerStatus:
    if partner is None:
        return PartnerStatus.ABSENT
    if partner.is_deleted:
        return PartnerStatus.SOFT_DELETED
    if not partner.access_token or not partner.is_active:
        return PartnerStatus.REVOKED
    return PartnerStatus.ACTIVE


def is_usable(partner) -> bool:
    return status_of(partner) is PartnerStatus.ACTIVE


def next_status(current: PartnerStatus, event: PartnerEvent) -> PartnerStatus:
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise PartnerLifecycleError(f"Cannot {event.value} a partner that is {current.value}") from None


def apply_event(
    partner,
    event: PartnerEvent,
    *,
    current: Optional[PartnerStatus] = None,
    access_token: Optional[str] = None,
    scope: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PartnerStatus:
    """
    Mutate the partner's flags for ``event`` and return the new status.

    ``current`` overrides the status derived from the partner, which is how a
    freshly constructed row goes through ``install`` from ``absent``.
    """
    current = status_of(partner) if current is None else current
    target = next_status(current, event)

    if event in (PartnerEvent.INSTALL, PartnerEvent.REINSTALL):
        if not access_token:
            raise PartnerLifecycleError(f"{event.value} requires an access token")
        partner.access_token = access_token
        partner.scope = scope
        partner.is_active = True
        partner.is_deleted = False
        partner.deleted_at = None
    elif event is PartnerEvent.UNINSTALL:
        # 重复的 uninstall 不覆盖第一次的删除时间
        if not partner.is_deleted:
            partner.deleted_at = now or now_utc()
        partner.is_deleted = True
        partner.is_active = False
        partner.access_token = None
    elif event is PartnerEvent.TOKEN_WIPE:
        partner.access_token = None
        partner.is_active = False

    return target
