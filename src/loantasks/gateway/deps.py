"""依赖注入模块 -- 通过 FastAPI Depends 注入服务实例与请求方身份

服务实例通过 app.state 管理，在 lifespan 中初始化/清理。
身份来自请求头（x-user-id / x-user-name / x-user-roles），不做认证。
"""

from fastapi import Request
from loantasks.core.models import UserIdentity, UserRole

from .services.sse_hub import SSEHub
from .services.task_service import TaskService
from .settings import GatewaySettings

_DEFAULT_ROLES = frozenset({UserRole.LOAN_OFFICER})


def parse_roles(raw: str | None) -> frozenset[UserRole]:
    """解析逗号分隔的角色列表，未知角色忽略，为空时默认 LOAN_OFFICER"""
    if not raw:
        return _DEFAULT_ROLES

    roles = set()
    for part in raw.split(","):
        try:
            roles.add(UserRole(part.strip().upper()))
        except ValueError:
            continue
    return frozenset(roles) or _DEFAULT_ROLES


def get_current_user(request: Request) -> UserIdentity:
    """从请求头构造请求方身份"""
    return UserIdentity(
        id=request.headers.get("x-user-id") or "local-user",
        display_name=request.headers.get("x-user-name") or "Local User",
        roles=parse_roles(request.headers.get("x-user-roles")),
    )


def get_task_service(request: Request) -> TaskService:
    """从 app.state 获取 TaskService 实例"""
    return request.app.state.task_service


def get_sse_hub(request: Request) -> SSEHub:
    """从 app.state 获取 SSEHub 实例"""
    return request.app.state.sse_hub


def get_settings(request: Request) -> GatewaySettings:
    return request.app.state.settings
