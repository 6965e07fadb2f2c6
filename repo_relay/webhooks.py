"""
GitHub webhook intake.

Authenticates a delivery (HMAC-SHA256 over the raw body), classifies it by
event kind, and routes it through a dispatch table:

- push → commit notifications
- issues / pull_request → issue / PR notifications for opened, closed,
  reopened and edited only
- installation → mirror App installs and uninstalls locally
- installation_repositories → logged

Unrecognized event kinds are accepted and ignored.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Awaitable, Callable, Optional

import structlog
from pydantic import BaseModel, ValidationError

from .dispatcher import NotificationDispatcher
from .errors import MalformedPayload, MissingHeaders, SignatureMismatch
from .metrics import MetricsCollector
from .models import (
    FORWARDED_ACTIONS,
    DeliveryReport,
    EventKind,
    Installation,
    InstallationEvent,
    IssuesEvent,
    NotifyKind,
    PullRequestEvent,
    PushEvent,
)
from .state import RelayState

log = structlog.get_logger()

SIGNATURE_PREFIX = "sha256="


class IngressOutcome(BaseModel):
    status: str  # dispatched | filtered | ignored | duplicate | installation
    report: Optional[DeliveryReport] = None


Handler = Callable[[dict[str, Any]], Awaitable[IngressOutcome]]


def sign(secret: str, body: bytes) -> str:
    """The X-Hub-Signature-256 header value GitHub sends for ``body``."""
    digest = hmac.new(secret.encode("utf-8"), msg=body, digestmod=hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """Check a signature header. Nothing verifies while no secret is configured."""
    if not secret:
        return False
    return hmac.compare_digest(sign(secret, body).encode(), signature.encode("utf-8", "replace"))


class WebhookIngress:
    def __init__(
        self,
        secret: str,
        state: RelayState,
        dispatcher: NotificationDispatcher,
        metrics: MetricsCollector | None = None,
        dedup_deliveries: bool = True,
        delivery_ttl_seconds: int = 600,
    ):
        self._secret = secret
        self._state = state
        self._dispatcher = dispatcher
        self._metrics = metrics
        self._dedup = dedup_deliveries
        self._delivery_ttl = delivery_ttl_seconds
        self._handlers: dict[EventKind, Handler] = {
            EventKind.PUSH: self._handle_push,
            EventKind.ISSUES: self._handle_issues,
            EventKind.PULL_REQUEST: self._handle_pull_request,
            EventKind.INSTALLATION: self._handle_installation,
            EventKind.INSTALLATION_REPOSITORIES: self._handle_installation_repositories,
        }

    def _inc(self, name: str) -> None:
        if self._metrics:
            self._metrics.inc(name)

    async def ingest(
        self,
        raw_body: bytes,
        signature: str | None,
        event_kind: str | None,
        delivery_id: str | None = None,
    ) -> IngressOutcome:
        """
        Authenticate and route one webhook delivery.

        Raises MissingHeaders, SignatureMismatch or MalformedPayload before any
        store access.
        """
        missing = [
            name
            for name, value in (("X-Hub-Signature-256", signature), ("X-GitHub-Event", event_kind))
            if not value
        ]
        if missing:
            self._inc("webhooks_rejected_total")
            raise MissingHeaders(missing)

        if not verify_signature(self._secret, raw_body, signature):
            self._inc("webhooks_rejected_total")
            log.warning("webhook.bad_signature", github_event=event_kind, delivery=delivery_id)
            raise SignatureMismatch()

        try:
            payload = json.loads(raw_body)
        except ValueError as exc:
            raise MalformedPayload("body is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise MalformedPayload("body is not a JSON object")

        self._inc("webhooks_received_total")
        log.info("webhook.received", github_event=event_kind, delivery=delivery_id)

        try:
            kind = EventKind(event_kind)
        except ValueError:
            return IngressOutcome(status="ignored")

        remembered = False
        if self._dedup and delivery_id:
            if not await self._state.remember_delivery(delivery_id, self._delivery_ttl):
                self._inc("webhooks_duplicate_total")
                log.info("webhook.duplicate", github_event=event_kind, delivery=delivery_id)
                return IngressOutcome(status="duplicate")
            remembered = True

        try:
            try:
                return await self._handlers[kind](payload)
            except ValidationError as exc:
                raise MalformedPayload(f"unexpected {kind.value} payload") from exc
        except Exception:
            # A failed delivery must stay eligible for redelivery
            if remembered:
                await self._state.forget_delivery(delivery_id)
            raise

    # --- Repository events ---

    async def _handle_push(self, payload: dict[str, Any]) -> IngressOutcome:
        event = PushEvent.model_validate(payload)
        if event.repository is None:
            return IngressOutcome(status="ignored")
        report = await self._dispatcher.dispatch(
            event.repository.owner.login, event.repository.name, NotifyKind.COMMIT, event
        )
        return IngressOutcome(status="dispatched", report=report)

    async def _handle_issues(self, payload: dict[str, Any]) -> IngressOutcome:
        event = IssuesEvent.model_validate(payload)
        if event.repository is None:
            return IngressOutcome(status="ignored")
        if event.action not in FORWARDED_ACTIONS:
            return IngressOutcome(status="filtered")
        report = await self._dispatcher.dispatch(
            event.repository.owner.login, event.repository.name, NotifyKind.ISSUE, event
        )
        return IngressOutcome(status="dispatched", report=report)

    async def _handle_pull_request(self, payload: dict[str, Any]) -> IngressOutcome:
        event = PullRequestEvent.model_validate(payload)
        if event.repository is None:
            return IngressOutcome(status="ignored")
        if event.action not in FORWARDED_ACTIONS:
            return IngressOutcome(status="filtered")
        report = await self._dispatcher.dispatch(
            event.repository.owner.login, event.repository.name, NotifyKind.PR, event
        )
        return IngressOutcome(status="dispatched", report=report)

    # --- Installation events ---

    async def _handle_installation(self, payload: dict[str, Any]) -> IngressOutcome:
        event = InstallationEvent.model_validate(payload)
        account = event.installation.account
        if event.action == "created":
            await self._state.save_installation(
                Installation(
                    installation_id=event.installation.id,
                    account_login=account.login,
                    account_id=account.id or 0,
                )
            )
            log.info("webhook.app_installed", account=account.login)
        elif event.action == "deleted":
            removed = await self._state.remove_installations(account.login)
            log.info("webhook.app_uninstalled", account=account.login, installations=removed)
        return IngressOutcome(status="installation")

    async def _handle_installation_repositories(self, payload: dict[str, Any]) -> IngressOutcome:
        event = InstallationEvent.model_validate(payload)
        log.info(
            "webhook.installation_repositories",
            account=event.installation.account.login,
            action=event.action,
            added=[r.full_name or r.name for r in event.repositories_added],
            removed=[r.full_name or r.name for r in event.repositories_removed],
        )
        return IngressOutcome(status="installation")
