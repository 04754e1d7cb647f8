"""全局 pytest 配置 -- 固定时钟、临时 JSON Store、记录型通知与测试身份"""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from loantasks.core.config import AppConfig
from loantasks.core.models import (
    NotificationEvent,
    NotificationTarget,
    Task,
    TaskStatus,
    TaskType,
    UrgencyLevel,
    UserIdentity,
    UserRole,
)
from loantasks.core.store import JsonDocumentStore, create_json_store
from loantasks.gateway.services.sse_hub import SSEHub
from loantasks.gateway.services.task_service import TaskService

# 2026-01-14 为周三（PST，UTC-8）
WEDNESDAY_MORNING = datetime(2026, 1, 14, 18, 0, tzinfo=UTC)


class FixedClock:
    """可手动推进的测试时钟"""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    """记录全部通知事件"""

    def __init__(self) -> None:
        self.events: list[NotificationEvent] = []

    async def notify(self, event: NotificationEvent) -> None:
        self.events.append(event)


class FailingNotifier(RecordingNotifier):
    """对指定目标抛出异常，其余目标正常记录"""

    def __init__(self, failing: set[NotificationTarget]) -> None:
        super().__init__()
        self.failing = failing

    async def notify(self, event: NotificationEvent) -> None:
        if event.target in self.failing:
            raise ConnectionError(f"{event.target} unreachable")
        await super().notify(event)


@pytest.fixture
def app_config() -> AppConfig:
    """默认业务规则配置（America/Los_Angeles，08:30-17:30，保留 90 天）"""
    return AppConfig()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(WEDNESDAY_MORNING)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def channel_down_notifier() -> FailingNotifier:
    """CHANNEL 目标投递失败，IN_APP / DM 正常"""
    return FailingNotifier({NotificationTarget.CHANNEL})


@pytest.fixture
def sse_hub() -> SSEHub:
    return SSEHub()


@pytest_asyncio.fixture
async def json_store(tmp_path: Path) -> AsyncGenerator[JsonDocumentStore, None]:
    """临时目录下已初始化的 JSON 文档存储"""
    store = await create_json_store(tmp_path / "tasks.json")
    yield store
    await store.close()


@pytest_asyncio.fixture
async def service(
    json_store: JsonDocumentStore,
    notifier: RecordingNotifier,
    sse_hub: SSEHub,
    app_config: AppConfig,
    clock: FixedClock,
) -> TaskService:
    return TaskService(json_store, notifier, sse_hub, app_config, clock=clock)


@pytest.fixture
def officer() -> UserIdentity:
    return UserIdentity(id="lo-1", display_name="Lena Officer")


@pytest.fixture
def other_officer() -> UserIdentity:
    return UserIdentity(id="lo-2", display_name="Omar Officer")


@pytest.fixture
def checker() -> UserIdentity:
    return UserIdentity(
        id="fc-1",
        display_name="Fay Checker",
        roles=frozenset({UserRole.FILE_CHECKER}),
    )


@pytest.fixture
def admin() -> UserIdentity:
    return UserIdentity(
        id="admin-1",
        display_name="Ada Admin",
        roles=frozenset({UserRole.ADMIN}),
    )


@pytest.fixture
def make_task(officer: UserIdentity) -> Callable[..., Task]:
    """构造任务值的工厂，默认为 officer 创建的 OPEN 状态 LOI 任务"""

    def _make(**overrides) -> Task:
        fields = {
            "id": "task-1",
            "loan_name": "Smith Refinance",
            "task_type": TaskType.LOI,
            "due_at": WEDNESDAY_MORNING + timedelta(days=1),
            "urgency": UrgencyLevel.GREEN,
            "notes": "Collect signed LOI",
            "status": TaskStatus.OPEN,
            "created_at": WEDNESDAY_MORNING,
            "updated_at": WEDNESDAY_MORNING,
            "created_by": officer.ref(),
        }
        fields.update(overrides)
        return Task(**fields)

    return _make
