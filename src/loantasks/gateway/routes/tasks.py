"""任务路由 -- 查询、创建与生命周期操作

GET  /api/tasks: 任务列表，支持 status 筛选，按 updatedAt 倒序
POST /api/tasks: 创建任务
GET  /api/tasks/{task_id}: 任务详情 + 当前可流转的目标状态
GET  /api/tasks/{task_id}/history: 任务历史
POST /api/tasks/{task_id}/claim | unclaim | transition | review-note
"""

from fastapi import APIRouter, Depends, Query
from loantasks.core.models import CreateTaskInput, TaskStatus, UserIdentity
from loantasks.core.models.task import DocumentModel
from pydantic import Field
from starlette.responses import JSONResponse

from ..deps import get_current_user, get_task_service
from ..services.task_service import TaskService
from .errors import error_response

router = APIRouter()


class TransitionRequest(DocumentModel):
    """状态流转请求"""

    status: TaskStatus
    review_notes: str | None = None


class ReviewNoteRequest(DocumentModel):
    """审阅备注请求"""

    text: str = Field(min_length=1)


@router.get("/api/tasks")
async def list_tasks(
    status: TaskStatus | None = Query(default=None, description="按状态筛选"),
    service: TaskService = Depends(get_task_service),
):
    tasks = await service.list_tasks(status)
    return {"tasks": [t.to_document() for t in tasks]}


@router.post("/api/tasks", status_code=201)
async def create_task(
    body: CreateTaskInput,
    service: TaskService = Depends(get_task_service),
    user: UserIdentity = Depends(get_current_user),
):
    task = await service.create_task(body, user)
    return {"task": task.to_document()}


@router.get("/api/tasks/{task_id}")
async def get_task_detail(
    task_id: str,
    service: TaskService = Depends(get_task_service),
):
    """任务详情，含 allowedTransitions"""
    task = await service.get_task(task_id)
    if task is None:
        return _not_found(task_id)

    allowed = await service.allowed_transitions(task_id)
    return {
        "task": task.to_document(),
        "allowedTransitions": [s.value for s in allowed],
    }


@router.get("/api/tasks/{task_id}/history")
async def get_task_history(
    task_id: str,
    service: TaskService = Depends(get_task_service),
):
    if await service.get_task(task_id) is None:
        return _not_found(task_id)

    history = await service.get_history(task_id)
    return {"history": [e.to_document() for e in history]}


@router.post("/api/tasks/{task_id}/claim")
async def claim_task(
    task_id: str,
    service: TaskService = Depends(get_task_service),
    user: UserIdentity = Depends(get_current_user),
):
    task = await service.claim_task(task_id, user)
    return {"task": task.to_document()}


@router.post("/api/tasks/{task_id}/unclaim")
async def unclaim_task(
    task_id: str,
    service: TaskService = Depends(get_task_service),
    user: UserIdentity = Depends(get_current_user),
):
    task = await service.unclaim_task(task_id, user)
    return {"task": task.to_document()}


@router.post("/api/tasks/{task_id}/transition")
async def transition_task(
    task_id: str,
    body: TransitionRequest,
    service: TaskService = Depends(get_task_service),
    user: UserIdentity = Depends(get_current_user),
):
    task = await service.transition_task(task_id, body.status, user, body.review_notes)
    return {"task": task.to_document()}


@router.post("/api/tasks/{task_id}/review-note")
async def add_review_note(
    task_id: str,
    body: ReviewNoteRequest,
    service: TaskService = Depends(get_task_service),
    user: UserIdentity = Depends(get_current_user),
):
    task = await service.add_review_note(task_id, body.text, user)
    return {"task": task.to_document()}


def _not_found(task_id: str) -> JSONResponse:
    return error_response(
        404, "TASK_NOT_FOUND", f"Task with id {task_id} does not exist"
    )
