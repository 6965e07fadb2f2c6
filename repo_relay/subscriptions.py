"""
Subscription lifecycle: authorizes and records chat → repository subscriptions.

Creating a subscription requires, in order:
1. a linked GitHub account for the requesting user
2. chat administrator rights (group and supergroup chats only)
3. admin or write permission on the repository
4. the GitHub App installed for the repository owner

Local checks run before the GitHub round trip. Unsubscribing only needs the
chat administrator check.
"""

from __future__ import annotations

from typing import Protocol

import structlog

from .errors import AppNotInstalled, InsufficientPermission, NotAdmin, NotBound
from .linking import AccountLinker
from .metrics import MetricsCollector
from .models import ChatKind, EventFlags, Subscription
from .permissions import PermissionGate
from .state import RelayState

log = structlog.get_logger()


class ChatAdminChecker(Protocol):
    async def is_chat_admin(self, chat_id: int, user_id: int) -> bool: ...


class SubscriptionManager:
    """Manages repository subscriptions for Telegram chats."""

    def __init__(
        self,
        state: RelayState,
        linker: AccountLinker,
        gate: PermissionGate,
        chat_admins: ChatAdminChecker,
        install_url: str = "",
        metrics: MetricsCollector | None = None,
    ):
        self._state = state
        self._linker = linker
        self._gate = gate
        self._chat_admins = chat_admins
        self._install_url = install_url
        self._metrics = metrics

    async def _require_chat_admin(self, chat_id: int, chat_kind: ChatKind, user_id: int) -> None:
        if chat_kind == ChatKind.PRIVATE:
            return
        if not await self._chat_admins.is_chat_admin(chat_id, user_id):
            raise NotAdmin(chat_id, user_id)

    async def create_or_update(
        self,
        chat_id: int,
        chat_kind: ChatKind,
        owner: str,
        repo: str,
        flags: EventFlags,
        requesting_user: int,
    ) -> Subscription:
        """
        Subscribe a chat to a repository.

        Re-subscribing replaces the stored event flags with ``flags``; flags are
        not merged with the previous set.
        """
        credential = await self._linker.get_credential(requesting_user)
        if credential is None:
            raise NotBound(requesting_user)

        await self._require_chat_admin(chat_id, chat_kind, requesting_user)

        if not await self._gate.has_subscribe_permission(credential.access_token, owner, repo):
            raise InsufficientPermission(owner, repo)

        if not await self._gate.is_app_installed(owner):
            raise AppNotInstalled(owner, self._install_url)

        subscription = await self._state.upsert_subscription(
            Subscription(
                chat_id=chat_id,
                chat_kind=chat_kind,
                owner=owner,
                repo=repo,
                wants_commit=flags.commit,
                wants_issue=flags.issue,
                wants_pr=flags.pr,
                created_by=requesting_user,
            )
        )
        if self._metrics:
            self._metrics.inc("subscriptions_created_total")
        log.info(
            "subscriptions.saved",
            chat_id=chat_id,
            repo=subscription.full_name,
            events=flags.names(),
        )
        return subscription

    async def delete(
        self,
        chat_id: int,
        owner: str,
        repo: str,
        requesting_user: int,
        chat_kind: ChatKind,
    ) -> bool:
        await self._require_chat_admin(chat_id, chat_kind, requesting_user)
        removed = await self._state.delete_subscription(chat_id, owner, repo)
        if removed:
            log.info("subscriptions.removed", chat_id=chat_id, repo=f"{owner}/{repo}")
        return removed

    async def list(self, chat_id: int) -> list[Subscription]:
        return await self._state.list_subscriptions(chat_id)
