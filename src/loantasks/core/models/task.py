"""Task Domain Model -- 任务记录与操作者身份

Task 为不可变值：每次生命周期操作都构造新值（model_copy），
只有 Store 按 id 替换记录。
持久化文档使用 camelCase 字段名，与既有 tasks.json 文档兼容。
"""

from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .enums import TaskStatus, TaskType, UrgencyLevel, UserRole


class DocumentModel(BaseModel):
    """文档模型基类 -- camelCase 序列化，不可变"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_document(self) -> dict[str, Any]:
        """序列化为持久化文档（省略空的可选字段）"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class UserRef(DocumentModel):
    """操作者引用（id + 显示名）"""

    id: str
    display_name: str


class UserIdentity(DocumentModel):
    """请求方身份"""

    id: str
    display_name: str
    roles: frozenset[UserRole] = Field(
        default_factory=lambda: frozenset({UserRole.LOAN_OFFICER})
    )

    def has_role(self, role: UserRole) -> bool:
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return UserRole.ADMIN in self.roles

    def ref(self) -> UserRef:
        return UserRef(id=self.id, display_name=self.display_name)


# 维护扫描使用的系统操作者
SYSTEM_ACTOR = UserRef(id="system", display_name="Task Scheduler")


class Task(DocumentModel):
    """Task 数据模型

    assignee 仅在 CLAIMED 及只能经由 CLAIMED 到达的状态下存在；
    due_at 在创建时确定，维护扫描不会重算。
    """

    id: str = Field(description="唯一标识，ULID 格式")
    loan_name: str = Field(description="贷款名称")
    task_type: TaskType = Field(description="任务类别")
    due_at: AwareDatetime = Field(description="截止时间")
    urgency: UrgencyLevel = Field(default=UrgencyLevel.GREEN, description="紧急度")
    notes: str = Field(default="", description="备注")
    humperdink_link: str | None = Field(default=None, description="外部系统链接")
    server_location: str | None = Field(default=None, description="文件服务器位置")
    status: TaskStatus = Field(default=TaskStatus.OPEN, description="当前状态")
    created_at: AwareDatetime
    updated_at: AwareDatetime
    created_by: UserRef
    assignee: UserRef | None = None
    archived_at: AwareDatetime | None = None
    completed_at: AwareDatetime | None = None
    cancelled_at: AwareDatetime | None = None
    last_reminder_at: AwareDatetime | None = None
    review_notes: str | None = None

    def is_created_by(self, user: UserIdentity) -> bool:
        return self.created_by.id == user.id

    def is_assigned_to(self, user: UserIdentity) -> bool:
        return self.assignee is not None and self.assignee.id == user.id


class CreateTaskInput(DocumentModel):
    """创建任务请求"""

    model_config = ConfigDict(frozen=True, extra="ignore")

    loan_name: str = Field(min_length=1)
    task_type: TaskType
    due_at: AwareDatetime | None = None
    urgency: UrgencyLevel | None = None
    notes: str = Field(min_length=1)
    humperdink_link: str | None = None
    server_location: str | None = None

    @field_validator("loan_name", "notes")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value
