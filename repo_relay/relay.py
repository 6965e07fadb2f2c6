"""
Relay service: wires state, GitHub and Telegram clients and the domain services.

Owns the lifecycle of every stateful component. The HTTP app opens it on
startup and closes it on shutdown.
"""

from __future__ import annotations

import httpx
import structlog

from .commands import CommandHandler
from .config import Settings
from .dispatcher import NotificationDispatcher
from .github import GitHubClient
from .linking import AccountLinker
from .metrics import MetricsCollector
from .permissions import PermissionGate
from .state import RelayState
from .subscriptions import SubscriptionManager
from .telegram import TelegramClient
from .webhooks import WebhookIngress

log = structlog.get_logger()


class RelayService:
    """
    Composition root for the relay.

    ``github_transport`` and ``telegram_transport`` replace the network layer
    of the outbound clients; tests pass ``httpx.MockTransport`` instances.
    """

    def __init__(
        self,
        settings: Settings,
        github_transport: httpx.AsyncBaseTransport | None = None,
        telegram_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.metrics = MetricsCollector()
        self.state = RelayState(settings.database_path)
        self.github = GitHubClient(
            client_id=settings.github_client_id,
            client_secret=settings.github_client_secret,
            redirect_url=settings.oauth_redirect_url,
            scope=settings.oauth_scope,
            api_url=settings.github_api_url,
            web_url=settings.github_web_url,
            request_timeout=settings.request_timeout_seconds,
            transport=github_transport,
        )
        self.telegram = TelegramClient(
            bot_token=settings.telegram_bot_token,
            api_url=settings.telegram_api_url,
            request_timeout=settings.request_timeout_seconds,
            transport=telegram_transport,
        )

        self.gate = PermissionGate(self.github, self.state)
        self.linker = AccountLinker(self.state, self.github, metrics=self.metrics)
        self.subscriptions = SubscriptionManager(
            self.state,
            self.linker,
            self.gate,
            chat_admins=self.telegram,
            install_url=settings.install_url,
            metrics=self.metrics,
        )
        self.dispatcher = NotificationDispatcher(
            self.state,
            self.telegram,
            concurrency=settings.dispatch_concurrency,
            metrics=self.metrics,
        )
        self.ingress = WebhookIngress(
            settings.webhook_secret,
            self.state,
            self.dispatcher,
            metrics=self.metrics,
            dedup_deliveries=settings.dedup_deliveries,
            delivery_ttl_seconds=settings.delivery_ttl_seconds,
        )
        self.commands = CommandHandler(self.linker, self.subscriptions, self.telegram)

    async def open(self) -> None:
        """Open the store and the outbound HTTP clients."""
        log.info("relay.starting", database=self.settings.database_path)
        if not self.settings.webhook_secret:
            log.warning("relay.webhook_secret_missing", effect="all webhook deliveries are rejected")
        if not self.settings.telegram_bot_token:
            log.warning("relay.telegram_token_missing")

        await self.state.open()
        await self.github.open()
        await self.telegram.open()
        log.info("relay.started")

    async def close(self) -> None:
        log.info("relay.stopping")
        await self.telegram.close()
        await self.github.close()
        await self.state.close()
        log.info("relay.stopped")
