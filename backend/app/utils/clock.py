
from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite 读回来的 DateTime(timezone=True) 不带 tzinfo，按 UTC 处理
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
