"""FastAPI 应用主文件

app 创建 + lifespan 管理：Store 初始化/关闭、通知与广播组件、维护定时器启停、路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from loantasks.core.config import (
    MAINTENANCE_INTERVAL_S,
    get_data_file,
    get_db_path,
    get_store_backend,
    load_app_config,
)
from loantasks.core.store import create_store

from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .routes import health, integrations, stream, tasks
from .routes.errors import register_error_handlers
from .services.notifier import WebhookNotifier
from .services.scheduler import MaintenanceScheduler
from .services.sse_hub import SSEHub
from .services.task_service import TaskService
from .settings import load_gateway_settings

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 Store 与服务，关闭时停止定时器并释放资源"""
    settings = app.state.settings
    config = load_app_config()

    backend = get_store_backend()
    store_path = get_db_path() if backend == "sqlite" else get_data_file()
    store = await create_store(backend, store_path)
    app.state.store = store

    sse_hub = SSEHub()
    app.state.sse_hub = sse_hub

    notifier = WebhookNotifier(
        webhook_url=settings.webhook_url,
        enable_dm=settings.enable_dm_notifications,
    )
    service = TaskService(store, notifier, sse_hub, config)
    app.state.task_service = service

    scheduler = MaintenanceScheduler(service, interval_s=MAINTENANCE_INTERVAL_S)
    scheduler.start()
    app.state.scheduler = scheduler

    log.info(
        "loantasks_started",
        store_backend=backend,
        business_timezone=config.business_timezone,
        webhook_enabled=bool(settings.webhook_url),
    )

    yield

    await scheduler.stop()
    await notifier.aclose()
    await store.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="loantasks",
        version="0.1.0",
        description="Loan task lifecycle API",
        lifespan=lifespan,
    )
    app.state.settings = load_gateway_settings()

    app.add_middleware(LoggingMiddleware)
    register_error_handlers(app)

    setup_logging()
    setup_logfire(app)

    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(integrations.router, tags=["integrations"])
    app.include_router(stream.router, tags=["stream"])
    app.include_router(health.router, tags=["health"])

    return app
