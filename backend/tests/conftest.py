"""共享 fixture：内存 SQLite + 三张表，仓储 / 编排 / API 测试共用。"""

import pytest
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db.session import build_engine, build_session_factory
import app.db.model  # noqa: F401  注册模型


@pytest.fixture()
def db_factory():
    engine = build_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield build_session_factory(engine)
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def db(db_factory):
    session = db_factory()
    try:
        yield session
    finally:
        session.close()
