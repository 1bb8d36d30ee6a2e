# 导出入口，给脚本/测试用；建表走 alembic upgrade head

from .session import engine, SessionLocal, get_db, dispose_engine, session_scope
from app.db.model import Partner, PartnerProduct, SyncLog  # 确保把所有模型加载进 Base.metadata
from .base import Base
