# partner catalog / 库存定时同步

from celery import Celery
from kombu import Exchange, Queue
from app.core.config import settings
from app.core.logging import configure_logging

configure_logging()


'''
初始化 Celery 应用/实例
   - Beat: 1 台
   - Worker: 按 partner 数量扩容（每个任务内部已对 partner 并发）
'''
celery_app = Celery(
    "partner_sync_hub",
    broker=settings.CELERY_BROKER_URL,          # 队列位置 (Redis)
    backend=settings.CELERY_RESULT_BACKEND,     # 结果存储 (Redis)
    include=[
        "app.orchestration.catalog_sync.catalog_sync_task",     # partner 商品目录同步
        "app.orchestration.inventory_sync.inventory_sync_task", # partner 库存 → owner 店铺
    ],
)


'''
  通用 Celery 配置
'''
celery_app.conf.update(
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,                             # 内部还是存 UTC
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_track_started=True,
    broker_connection_retry_on_startup=True,     # 启动时如果 broker 挂了会重试
    worker_prefetch_multiplier=1,    # 一个 worker 一次只取一个任务
    task_acks_late=True,             # 任务执行完再确认，worker crash 后可重投
    broker_heartbeat=30,
    broker_pool_limit=10,
)


'''
catalog / inventory 同步都是慢 I/O，各自一个队列，不堵 default
'''
celery_app.conf.task_queues = (
    Queue("default", Exchange("default"), routing_key="default"),
    Queue("catalog", Exchange("catalog"), routing_key="catalog"),
    Queue("inventory", Exchange("inventory"), routing_key="inventory"),
)

celery_app.conf.task_routes = {
    "app.orchestration.catalog_sync.sync_partner_catalog": {"queue": "catalog"},
    "app.orchestration.catalog_sync.sync_all_partners": {"queue": "catalog"},
    "app.orchestration.inventory_sync.sync_partner_inventory": {"queue": "inventory"},
    "app.orchestration.inventory_sync.sync_all_inventory": {"queue": "inventory"},
}


# 默认的静态调度
celery_app.conf.beat_schedule = {
    "partner-catalog-sync": {
        "task": "app.orchestration.catalog_sync.sync_all_partners",
        "schedule": settings.CATALOG_SYNC_INTERVAL_SEC,  # 秒
    },
    "partner-inventory-sync": {
        "task": "app.orchestration.inventory_sync.sync_all_inventory",
        "schedule": settings.INVENTORY_SYNC_INTERVAL_SEC,
    },
}
