"""集成入口 -- 内部系统通过 API key 创建任务

POST /api/integrations/tasks
- 503: 未配置 LOANTASKS_INBOUND_API_KEY，入口关闭
- 401: x-api-key 不匹配
- 201: 以集成身份创建任务
"""

import secrets

from fastapi import APIRouter, Depends, Header
from loantasks.core.models import CreateTaskInput, UserIdentity, UserRole

from ..deps import get_settings, get_task_service
from ..services.task_service import TaskService
from ..settings import GatewaySettings
from .errors import error_response

router = APIRouter()

INTEGRATION_USER = UserIdentity(
    id="integration",
    display_name="In-house Integration",
    roles=frozenset({UserRole.LOAN_OFFICER}),
)


@router.post("/api/integrations/tasks", status_code=201)
async def create_integration_task(
    body: CreateTaskInput,
    x_api_key: str = Header(default=""),
    settings: GatewaySettings = Depends(get_settings),
    service: TaskService = Depends(get_task_service),
):
    if settings.inbound_api_key is None:
        return error_response(
            503, "INTEGRATION_DISABLED", "Inbound integration endpoint is disabled"
        )

    expected = settings.inbound_api_key.get_secret_value()
    if not secrets.compare_digest(x_api_key.encode(), expected.encode()):
        return error_response(401, "INVALID_API_KEY", "Invalid API key")

    task = await service.create_task(body, INTEGRATION_USER)
    return {"task": task.to_document()}
