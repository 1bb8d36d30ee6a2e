
from __future__ import annotations
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base



"""
  Owner 店铺（库存写入方）的连接信息，一个 shop 一行
    - access_token 来自 client credentials grant，约 24h 过期，expires_at 记录过期时间
    - location_id 缓存库存写入用的 location，避免每轮都查
"""
class OwnerStore(Base):

    __tablename__ = "owner_store"

    id:           Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop:         Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    scope:        Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at:   Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    location_id:  Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    is_connected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    connected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<OwnerStore shop={self.shop} connected={self.is_connected}>"
