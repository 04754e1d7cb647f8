"""LoggingMiddleware -- 请求级日志

为每个 HTTP 请求生成 request_id 并绑定到 structlog contextvars，
同时绑定请求方 x-user-id 与路径中的 task_id，贯穿该请求内的业务日志。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID


def _task_id_from_path(path: str) -> str | None:
    """从 /api/tasks/{task_id}[/...] 提取 task_id"""
    parts = [p for p in path.split("/") if p]
    if len(parts) >= 3 and parts[0] == "api" and parts[1] == "tasks":
        return parts[2]
    return None


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求级日志中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = str(ULID())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        if user_id := request.headers.get("x-user-id"):
            structlog.contextvars.bind_contextvars(user_id=user_id)
        if task_id := _task_id_from_path(request.url.path):
            structlog.contextvars.bind_contextvars(task_id=task_id)

        log = structlog.get_logger()
        started = time.perf_counter()
        response = await call_next(request)

        await log.ainfo(
            "request_completed",
            status_code=response.status_code,
            duration_ms=int((time.perf_counter() - started) * 1000),
        )

        response.headers["X-Request-ID"] = request_id
        return response
