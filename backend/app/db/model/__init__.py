# 聚合导入所有模型，供 Alembic 发现

from .owner_store import OwnerStore
from .partner import Partner, PartnerProduct, SyncLog

__all__ = ["OwnerStore", "Partner", "PartnerProduct", "SyncLog"]
