"""SSEHub -- 内存中 task.changed 事件广播器

每个订阅者持有一个有界 asyncio.Queue，支持 subscribe/unsubscribe/broadcast。
消费过慢（队列已满）的订阅者被移除。
"""

import asyncio

import structlog

from loantasks.core.models import BroadcastEvent

log = structlog.get_logger()


class SSEHub:
    """SSE 事件广播器 -- 基于 asyncio.Queue 的发布/订阅模式"""

    def __init__(self, queue_maxsize: int = 100) -> None:
        self._subscribers: set[asyncio.Queue] = set()
        self._queue_maxsize = queue_maxsize

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(self) -> asyncio.Queue:
        """订阅任务变更事件流

        Returns:
            asyncio.Queue 实例，新事件会被推送到此队列
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers.add(queue)
        return queue

    async def unsubscribe(self, queue: asyncio.Queue) -> None:
        """取消订阅"""
        self._subscribers.discard(queue)

    async def broadcast(self, event: BroadcastEvent) -> None:
        """向所有订阅者广播事件"""
        dead_queues = []
        for queue in self._subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                dead_queues.append(queue)

        # 清理已满的队列
        for q in dead_queues:
            self._subscribers.discard(q)
        if dead_queues:
            log.warning("sse_subscribers_dropped", count=len(dead_queues))
