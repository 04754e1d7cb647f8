"""通知投递测试 -- WebhookNotifier 经 httpx.MockTransport 验证"""

import json

import httpx
import pytest
from loantasks.core.models import (
    NotificationEvent,
    NotificationKind,
    NotificationTarget,
    UrgencyLevel,
)
from loantasks.gateway.services.notifier import LogNotifier, WebhookNotifier

WEBHOOK_URL = "https://chat.example.test/hooks/loans"


def _event(make_task, officer, clock, target: NotificationTarget) -> NotificationEvent:
    return NotificationEvent(
        kind=NotificationKind.TASK_CREATED,
        task=make_task(urgency=UrgencyLevel.YELLOW),
        actor=officer.ref(),
        message="Lena Officer created task Smith Refinance",
        target=target,
        created_at=clock.now,
    )


class _Recorder:
    def __init__(self, status_code: int = 200) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = status_code

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code)


class TestWebhookNotifier:
    """CHANNEL 走 webhook，DM 可关闭，其余写日志"""

    async def test_channel_posts_webhook(self, make_task, officer, clock):
        recorder = _Recorder()
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
            notifier = WebhookNotifier(WEBHOOK_URL, client=client)
            await notifier.notify(_event(make_task, officer, clock, NotificationTarget.CHANNEL))

        assert len(recorder.requests) == 1
        request = recorder.requests[0]
        assert str(request.url) == WEBHOOK_URL
        body = json.loads(request.content)
        assert body["title"] == "[LOI] [YELLOW] Lena Officer created task Smith Refinance"
        assert "Loan: Smith Refinance" in body["text"]
        assert "Status: OPEN" in body["text"]

    async def test_non_channel_targets_skip_webhook(self, make_task, officer, clock):
        recorder = _Recorder()
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
            notifier = WebhookNotifier(WEBHOOK_URL, client=client)
            for target in (NotificationTarget.IN_APP, NotificationTarget.DM):
                await notifier.notify(_event(make_task, officer, clock, target))

        assert recorder.requests == []

    async def test_webhook_error_raised(self, make_task, officer, clock):
        recorder = _Recorder(status_code=500)
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
            notifier = WebhookNotifier(WEBHOOK_URL, client=client)
            with pytest.raises(httpx.HTTPStatusError):
                await notifier.notify(
                    _event(make_task, officer, clock, NotificationTarget.CHANNEL)
                )

    async def test_without_webhook_url_logs_only(self, make_task, officer, clock):
        notifier = WebhookNotifier(None)
        try:
            await notifier.notify(_event(make_task, officer, clock, NotificationTarget.CHANNEL))
        finally:
            await notifier.aclose()

    async def test_dm_disabled_is_dropped(self, make_task, officer, clock, monkeypatch):
        delivered = []

        async def capture(self, event):
            delivered.append(event)

        monkeypatch.setattr(LogNotifier, "notify", capture)
        notifier = WebhookNotifier(None, enable_dm=False)
        try:
            await notifier.notify(_event(make_task, officer, clock, NotificationTarget.DM))
            await notifier.notify(_event(make_task, officer, clock, NotificationTarget.IN_APP))
        finally:
            await notifier.aclose()

        assert [e.target for e in delivered] == [NotificationTarget.IN_APP]
