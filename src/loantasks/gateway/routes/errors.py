"""错误响应 -- 任务异常到 HTTP 状态码的映射

响应体统一为 {"error": {"code": ..., "message": ...}}。
"""

from fastapi import FastAPI, Request
from loantasks.core.exceptions import (
    InvalidTransitionError,
    NotificationDeliveryError,
    PermissionDeniedError,
    TaskError,
    TaskNotFoundError,
)
from starlette.responses import JSONResponse

_STATUS_CODES: dict[type[TaskError], int] = {
    TaskNotFoundError: 404,
    PermissionDeniedError: 403,
    InvalidTransitionError: 409,
    NotificationDeliveryError: 502,
}


def error_response(status_code: int, code: str, message: str, **extra) -> JSONResponse:
    content: dict = {"error": {"code": code, "message": message, **extra}}
    return JSONResponse(status_code=status_code, content=content)


async def _task_error_handler(request: Request, exc: TaskError) -> JSONResponse:
    status_code = _STATUS_CODES.get(type(exc), 400)
    extra: dict = {}
    if isinstance(exc, PermissionDeniedError):
        extra["rule"] = exc.rule.value
    if isinstance(exc, InvalidTransitionError):
        extra["from"] = exc.from_status.value
        extra["to"] = exc.to_status.value
    if isinstance(exc, NotificationDeliveryError):
        # 变更已提交，附带提交后的任务
        extra["task"] = exc.task.to_document()
        extra["targets"] = sorted(t.value for t in exc.failures)
    return error_response(status_code, exc.code, exc.message, **extra)


async def _value_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return error_response(400, "INVALID_REQUEST", str(exc))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TaskError, _task_error_handler)
    app.add_exception_handler(ValueError, _value_error_handler)
