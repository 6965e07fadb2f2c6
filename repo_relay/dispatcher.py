"""
Notification fan-out: one inbound event → one message per subscribed chat.

Deliveries run concurrently up to a fixed limit. Each delivery is isolated:
a failed send is logged and reported, never retried, and never stops the
remaining deliveries. No ordering is promised between chats.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol

import structlog

from .messages import render_issue, render_pull_request, render_push
from .metrics import MetricsCollector
from .models import DeliveryFailure, DeliveryReport, NotifyKind
from .state import RelayState

log = structlog.get_logger()

RENDERERS: dict[NotifyKind, Callable[[Any], str]] = {
    NotifyKind.COMMIT: render_push,
    NotifyKind.ISSUE: render_issue,
    NotifyKind.PR: render_pull_request,
}


class MessageSender(Protocol):
    async def send_message(self, chat_id: int, text: str) -> None: ...


class NotificationDispatcher:
    def __init__(
        self,
        state: RelayState,
        sender: MessageSender,
        concurrency: int = 8,
        metrics: MetricsCollector | None = None,
    ):
        self._state = state
        self._sender = sender
        self._limit = asyncio.Semaphore(max(1, concurrency))
        self._metrics = metrics

    async def dispatch(self, owner: str, repo: str, kind: NotifyKind, event: Any) -> DeliveryReport:
        """Deliver ``event`` to every chat subscribed to ``kind`` on owner/repo."""
        subscribers = await self._state.list_subscribers(owner, repo, kind)
        report = DeliveryReport()
        if not subscribers:
            return report

        text = RENDERERS[kind](event)
        results = await asyncio.gather(
            *(self._deliver(sub.chat_id, text) for sub in subscribers)
        )
        for chat_id, cause in results:
            if cause is None:
                report.delivered += 1
            else:
                report.failed.append(DeliveryFailure(chat_id=chat_id, cause=cause))

        if self._metrics:
            self._metrics.inc("notifications_delivered_total", report.delivered)
            self._metrics.inc("notifications_failed_total", len(report.failed))
        log.info(
            "dispatch.completed",
            repo=f"{owner}/{repo}",
            kind=kind.value,
            delivered=report.delivered,
            failed=len(report.failed),
        )
        return report

    async def _deliver(self, chat_id: int, text: str) -> tuple[int, str | None]:
        async with self._limit:
            try:
                await self._sender.send_message(chat_id, text)
            except Exception as exc:
                log.warning("dispatch.delivery_failed", chat_id=chat_id, error=str(exc))
                return chat_id, str(exc) or type(exc).__name__
        return chat_id, None
