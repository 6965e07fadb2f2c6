"""
Telegram Bot API client.

Handles:
- Outbound messages (HTML parse mode, link previews disabled)
- Chat member role lookup for group admin checks
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from .errors import DeliveryFailed

log = structlog.get_logger()

ADMIN_STATUSES = frozenset({"creator", "administrator"})


class TelegramClient:
    """
    Minimal Telegram Bot API client.

    Sends are single attempts: delivery is best-effort and a failed send
    surfaces as DeliveryFailed for the caller to log.
    """

    def __init__(
        self,
        bot_token: str,
        api_url: str = "https://api.telegram.org",
        request_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = f"{api_url.rstrip('/')}/bot{bot_token}"
        self._request_timeout = request_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def open(self) -> None:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._request_timeout),
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _call(self, method: str, payload: dict[str, Any]) -> Any:
        assert self._client
        resp = await self._client.post(f"{self._base_url}/{method}", json=payload)
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.status_code == 429:
            retry_after = body.get("parameters", {}).get("retry_after")
            log.warning("telegram.rate_limited", method=method, retry_after=retry_after)
        if resp.status_code >= 400 or not body.get("ok"):
            description = body.get("description") or f"HTTP {resp.status_code}"
            raise httpx.HTTPStatusError(description, request=resp.request, response=resp)
        return body.get("result")

    async def send_message(self, chat_id: int, text: str) -> None:
        """Send an HTML message. Raises DeliveryFailed on any failure."""
        try:
            await self._call(
                "sendMessage",
                {
                    "chat_id": chat_id,
                    "text": text,
                    "parse_mode": "HTML",
                    "link_preview_options": {"is_disabled": True},
                },
            )
        except httpx.HTTPStatusError as exc:
            raise DeliveryFailed(chat_id, str(exc)) from exc
        except httpx.HTTPError as exc:
            raise DeliveryFailed(chat_id, str(exc) or type(exc).__name__) from exc

    async def get_chat_member_status(self, chat_id: int, user_id: int) -> str:
        result = await self._call("getChatMember", {"chat_id": chat_id, "user_id": user_id})
        return result.get("status", "") if result else ""

    async def is_chat_admin(self, chat_id: int, user_id: int) -> bool:
        """True if the user is the chat's creator or an administrator. Errors count as no."""
        try:
            status = await self.get_chat_member_status(chat_id, user_id)
        except httpx.HTTPError as exc:
            log.warning("telegram.member_lookup_failed", chat_id=chat_id, error=str(exc))
            return False
        return status in ADMIN_STATUSES
