"""
Account linking: Telegram user ↔ GitHub account via a one-time OAuth handshake.

States per Telegram user:

    Unbound ──start_handshake──▶ HandshakeIssued ──complete_handshake──▶ Bound
       ▲                              │ (expired / unknown / exchange failed)
       └──────────────────────────────┘
    Bound ──unbind──▶ Unbound

A handshake token is the OAuth ``state`` parameter. It lives for ten minutes
and is deleted on first lookup whether or not it is still valid.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog

from .errors import AlreadyBound, HandshakeExpired, HandshakeNotFound
from .github import GitHubClient
from .metrics import MetricsCollector
from .models import AuthorizationHandshake, Credential, HandshakeStart
from .state import RelayState

log = structlog.get_logger()

HANDSHAKE_TTL = timedelta(minutes=10)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountLinker:
    def __init__(
        self,
        state: RelayState,
        github: GitHubClient,
        metrics: MetricsCollector | None = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self._state = state
        self._github = github
        self._metrics = metrics
        self._now = now

    async def get_credential(self, chat_user_id: int) -> Credential | None:
        """The user's credential, if it is bound."""
        credential = await self._state.get_credential(chat_user_id)
        if credential is None or not credential.is_bound:
            return None
        return credential

    async def is_bound(self, chat_user_id: int) -> bool:
        return await self.get_credential(chat_user_id) is not None

    async def start_handshake(self, chat_user_id: int) -> HandshakeStart:
        """Issue a handshake and the GitHub authorize URL that carries it."""
        if await self.is_bound(chat_user_id):
            raise AlreadyBound(chat_user_id)

        token = secrets.token_urlsafe(32)
        await self._state.create_handshake(
            AuthorizationHandshake(
                token=token,
                chat_user_id=chat_user_id,
                expires_at=self._now() + HANDSHAKE_TTL,
            )
        )
        log.info("linking.handshake_issued", chat_user_id=chat_user_id)
        return HandshakeStart(authorize_url=self._github.authorize_url(token), token=token)

    async def complete_handshake(self, token: str, code: str) -> Credential:
        """
        Consume the handshake for ``token`` and bind its user to the GitHub
        account ``code`` authorizes.

        Raises HandshakeNotFound, HandshakeExpired or ExchangeFailed.
        """
        handshake = await self._state.consume_handshake(token)
        if handshake is None:
            raise HandshakeNotFound()
        if handshake.is_expired(self._now()):
            log.info("linking.handshake_expired", chat_user_id=handshake.chat_user_id)
            raise HandshakeExpired()

        identity = await self._github.exchange_code(code)
        credential = Credential(
            chat_user_id=handshake.chat_user_id,
            provider_user_id=identity.user_id,
            provider_username=identity.username,
            access_token=identity.access_token,
        )
        await self._state.save_credential(credential)

        if self._metrics:
            self._metrics.inc("accounts_linked_total")
        log.info(
            "linking.bound",
            chat_user_id=credential.chat_user_id,
            github_username=credential.provider_username,
        )
        return credential

    async def unbind(self, chat_user_id: int) -> bool:
        """Remove the user's credential and every subscription they created."""
        removed = await self._state.delete_credential(chat_user_id)
        if removed:
            log.info("linking.unbound", chat_user_id=chat_user_id)
        return removed
