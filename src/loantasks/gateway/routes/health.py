"""健康检查路由

GET /health: Liveness 检查，附带当前 SSE 订阅数与维护定时器状态。
"""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    sse_hub = getattr(request.app.state, "sse_hub", None)
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": "ok",
        "clients": sse_hub.subscriber_count if sse_hub else 0,
        "scheduler_running": bool(scheduler and scheduler.running),
    }
