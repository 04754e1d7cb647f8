"""SSE 事件流路由

GET /api/stream: 推送所有任务的 task.changed 事件。
连接建立时先发送 connected 事件，之后实时推送，空闲时发送心跳注释保活。
"""

import asyncio
import json

from fastapi import APIRouter, Depends, Request
from loantasks.core.config import SSE_HEARTBEAT_INTERVAL
from loantasks.core.models import BroadcastEvent
from sse_starlette.sse import EventSourceResponse

from ..deps import get_sse_hub
from ..services.sse_hub import SSEHub

router = APIRouter()


def _event_to_sse(event: BroadcastEvent) -> dict:
    return {
        "event": event.type,
        "data": json.dumps(event.task.to_document(), ensure_ascii=False),
    }


@router.get("/api/stream")
async def stream_task_changes(
    request: Request,
    sse_hub: SSEHub = Depends(get_sse_hub),
):
    """SSE 事件流端点"""
    queue = await sse_hub.subscribe()

    async def event_generator():
        try:
            yield {"event": "connected", "data": "{}"}
            while True:
                if await request.is_disconnected():
                    return
                try:
                    event = await asyncio.wait_for(
                        queue.get(), timeout=SSE_HEARTBEAT_INTERVAL
                    )
                except TimeoutError:
                    yield {"comment": "heartbeat"}
                    continue
                yield _event_to_sse(event)
        finally:
            await sse_hub.unsubscribe(queue)

    return EventSourceResponse(event_generator())
