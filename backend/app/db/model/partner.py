
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean, DateTime, Integer, Numeric, String, Text, UniqueConstraint, Index, func, text,
)
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base



"""
  Partner 店铺（供货方）
    - access_token 可空：空 = 被撤销 / 从未授权 / GDPR redact 后清除
    - 卸载只做软删除（is_deleted + deleted_at），重新安装时恢复
"""
class Partner(Base):

    __tablename__ = "partners"

    id:           Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop:         Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)   # xxx.myshopify.com
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    scope:        Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_active:  Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def status(self):
        from app.services.partner_lifecycle import status_of
        return status_of(self)

    @property
    def is_usable(self) -> bool:
        from app.services.partner_lifecycle import is_usable
        return is_usable(self)

    def __repr__(self) -> str:
        return f"<Partner shop={self.shop} status={self.status.value}>"



"""
  Partner 商品缓存（按变体一行）
    - partner_sku = PARTNER-{shopPrefix}-{normalizedSku}，owner 店铺的 join key
    - 本轮同步没看到的变体 → 软删除；再次出现 → 恢复
"""
class PartnerProduct(Base):

    __tablename__ = "partner_products"
    __table_args__ = (
        UniqueConstraint("partner_shop", "partner_variant_id", name="uq_partner_products_shop_variant"),
        Index("ix_partner_products_partner_sku", "partner_sku"),
    )

    id:                 Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    partner_shop:       Mapped[str] = mapped_column(String(255), index=True, nullable=False)   # partner 删除后仍保留
    partner_product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    partner_variant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title:              Mapped[str] = mapped_column(String(512), nullable=False, default="")
    sku:                Mapped[Optional[str]] = mapped_column(String(255), nullable=True)        # partner 原始 SKU
    partner_sku:        Mapped[str] = mapped_column(String(512), nullable=False)

    price:              Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)  # partner 售价 = 我方成本；缺失时为空
    selling_price:      Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)  # 加 margin 之后
    inventory_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_new:     Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    first_seen_at:  Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())



"""
  同步 / webhook 操作日志
"""
class SyncLog(Base):

    __tablename__ = "sync_logs"

    id:              Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    partner_shop:    Mapped[Optional[str]] = mapped_column(String(255), index=True, nullable=True)
    sync_type:       Mapped[str] = mapped_column(String(64), nullable=False)       # products / app_uninstalled / gdpr_* / scopes_update
    status:          Mapped[str] = mapped_column(String(16), nullable=False)       # started / completed / failed
    items_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_created:   Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_updated:   Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_failed:    Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message:   Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    started_at:      Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    completed_at:    Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
