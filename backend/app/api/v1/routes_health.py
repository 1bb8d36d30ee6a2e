# 健康检查（含 DB 探活）

import logging

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.db.session import engine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health(db: bool = False):
    # 默认只回 ok；?db=true 时做一次轻量 SELECT 1
    if not db:
        return {"status": "ok"}
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("health.db_unreachable err=%s", type(e).__name__)
        return {"status": "degraded", "db": "unreachable"}
    return {"status": "ok", "db": "ok"}
