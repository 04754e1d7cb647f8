"""CLI 入口模块 -- python -m loantasks.gateway <command>

支持的命令：
  serve            启动 HTTP 服务（含维护定时器）
  run-maintenance  对当前配置的存储执行一次维护扫描
"""

import asyncio
import sys

from loantasks.core.config import (
    get_data_file,
    get_db_path,
    get_store_backend,
    load_app_config,
)

_USAGE = """用法: python -m loantasks.gateway <command>
命令:
  serve            启动 HTTP 服务
  run-maintenance  执行一次维护扫描"""


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print(_USAGE)
        sys.exit(1)

    command = sys.argv[1]

    if command == "serve":
        serve()
    elif command == "run-maintenance":
        asyncio.run(run_maintenance())
    else:
        print(f"未知命令: {command}")
        print("可用命令: serve, run-maintenance")
        sys.exit(1)


def serve() -> None:
    """以 uvicorn 启动服务"""
    import uvicorn

    from .main import create_app
    from .settings import load_gateway_settings

    settings = load_gateway_settings()
    uvicorn.run(create_app(), host=settings.host, port=settings.port, log_config=None)


async def run_maintenance() -> None:
    """执行一次维护扫描并打印结果"""
    from loantasks.core.store import create_store

    from .middleware.logging_config import setup_logging
    from .services.notifier import WebhookNotifier
    from .services.task_service import TaskService
    from .settings import load_gateway_settings

    setup_logging()
    settings = load_gateway_settings()
    backend = get_store_backend()
    store_path = get_db_path() if backend == "sqlite" else get_data_file()

    print(f"存储后端: {backend}")
    print(f"存储路径: {store_path}")

    store = await create_store(backend, store_path)
    notifier = WebhookNotifier(
        webhook_url=settings.webhook_url,
        enable_dm=settings.enable_dm_notifications,
    )
    try:
        service = TaskService(store, notifier, None, load_app_config())
        report = await service.run_maintenance_sweep()
        print(
            f"reminded={report.reminded} auto_archived={report.auto_archived} "
            f"purged={report.purged} failed={len(report.failed_task_ids)}"
        )
    finally:
        await notifier.aclose()
        await store.close()


if __name__ == "__main__":
    main()
