
from __future__ import annotations
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.model.partner import SyncLog
from app.utils.clock import now_utc


def create_sync_log(
    db: Session,
    *,
    sync_type: str,
    status: str = "started",
    partner_shop: Optional[str] = None,
    items_processed: int = 0,
    items_created: int = 0,
    items_updated: int = 0,
    items_failed: int = 0,
    error_message: Optional[str] = None,
) -> SyncLog:
    now = now_utc()
    log = SyncLog(
        partner_shop=partner_shop,
        sync_type=sync_type,
        status=status,
        items_processed=items_processed,
        items_created=items_created,
        items_updated=items_updated,
        items_failed=items_failed,
        error_message=error_message,
        started_at=now,
        completed_at=None if status == "started" else now,
    )
    db.add(log)
    db.commit()
    return log


def finish_sync_log(
    db: Session,
    log: SyncLog,
    *,
    status: str,
    items_processed: int = 0,
    items_created: int = 0,
    items_updated: int = 0,
    items_failed: int = 0,
    error_message: Optional[str] = None,
) -> SyncLog:
    log.status = status
    log.items_processed = items_processed
    log.items_created = items_created
    log.items_updated = items_updated
    log.items_failed = items_failed
    if error_message:
        log.error_message = error_message[:2000] + "…" if len(error_message) > 2000 else error_message
    log.completed_at = now_utc()
    db.commit()
    return log


def recent_sync_logs(db: Session, shop: Optional[str] = None, limit: int = 50) -> List[SyncLog]:
    stmt = select(SyncLog).order_by(SyncLog.id.desc()).limit(limit)
    if shop:
        stmt = stmt.where(SyncLog.partner_shop == shop)
    return list(db.execute(stmt).scalars())
