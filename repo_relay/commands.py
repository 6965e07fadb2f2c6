"""
Telegram bot commands.

Parses command messages from Telegram updates, calls the account-link and
subscription services, and replies with rendered outcomes:

/start, /help        usage
/bind                DM the user a GitHub authorization link
/unbind              unlink GitHub and drop the user's subscriptions
/subscribe r events  subscribe this chat to owner/repo
/unsubscribe r       unsubscribe this chat from owner/repo
/list                list this chat's subscriptions
"""

from __future__ import annotations

import re
from typing import Any, Awaitable, Callable

import structlog
from pydantic import BaseModel, Field

from . import messages
from .errors import AlreadyBound, AuthzFailure, DeliveryFailed
from .linking import AccountLinker
from .models import ChatKind, EventFlags
from .subscriptions import SubscriptionManager
from .telegram import TelegramClient

log = structlog.get_logger()

_REPO_RE = re.compile(r"^([A-Za-z0-9-]+)/([A-Za-z0-9._-]+)$")


def parse_repo(text: str) -> tuple[str, str] | None:
    """Split ``owner/repo``; None if the text is not a repository name."""
    match = _REPO_RE.match(text.strip())
    if not match:
        return None
    return match.group(1), match.group(2)


class ChatCommand(BaseModel):
    name: str
    args: list[str] = Field(default_factory=list)
    chat_id: int
    chat_kind: ChatKind
    user_id: int


def parse_command(update: dict[str, Any]) -> ChatCommand | None:
    """Extract a bot command from a Telegram update, or None if there is none."""
    message = update.get("message") or {}
    text = (message.get("text") or "").strip()
    chat = message.get("chat") or {}
    sender = message.get("from") or {}
    if not text.startswith("/") or "id" not in chat or "id" not in sender:
        return None
    try:
        chat_kind = ChatKind(chat.get("type"))
    except ValueError:
        return None

    head, *args = text.split()
    name = head[1:].split("@", 1)[0].lower()
    return ChatCommand(
        name=name,
        args=args,
        chat_id=chat["id"],
        chat_kind=chat_kind,
        user_id=sender["id"],
    )


class CommandHandler:
    def __init__(
        self,
        linker: AccountLinker,
        subscriptions: SubscriptionManager,
        telegram: TelegramClient,
    ):
        self._linker = linker
        self._subscriptions = subscriptions
        self._telegram = telegram
        self._commands: dict[str, Callable[[ChatCommand], Awaitable[None]]] = {
            "start": self._help,
            "help": self._help,
            "bind": self._bind,
            "unbind": self._unbind,
            "subscribe": self._subscribe,
            "unsubscribe": self._unsubscribe,
            "list": self._list,
        }

    async def handle_update(self, update: dict[str, Any]) -> bool:
        """Handle one Telegram update. Returns True if it carried a known command."""
        command = parse_command(update)
        if command is None:
            return False
        handler = self._commands.get(command.name)
        if handler is None:
            return False
        log.info(
            "commands.received",
            command=command.name,
            chat_id=command.chat_id,
            user_id=command.user_id,
        )
        await handler(command)
        return True

    async def _reply(self, command: ChatCommand, text: str) -> None:
        try:
            await self._telegram.send_message(command.chat_id, text)
        except DeliveryFailed as exc:
            log.warning("commands.reply_failed", chat_id=command.chat_id, error=exc.reason)

    async def _help(self, command: ChatCommand) -> None:
        await self._reply(command, messages.HELP_TEXT)

    async def _bind(self, command: ChatCommand) -> None:
        try:
            start = await self._linker.start_handshake(command.user_id)
        except AlreadyBound as exc:
            await self._reply(command, messages.render_error(exc))
            return

        # The link is personal, so it always goes to the user's private chat.
        try:
            await self._telegram.send_message(
                command.user_id, messages.render_bind_link(start.authorize_url)
            )
        except DeliveryFailed:
            await self._reply(
                command,
                "❌ I can't message you privately. Start a chat with me first, then use /bind again.",
            )
            return
        if command.chat_kind != ChatKind.PRIVATE:
            await self._reply(command, "I've sent you a private message with the link.")

    async def _unbind(self, command: ChatCommand) -> None:
        if await self._linker.unbind(command.user_id):
            await self._reply(
                command, "✅ Your GitHub account was unlinked and your subscriptions were removed."
            )
        else:
            await self._reply(command, "You have no linked GitHub account.")

    async def _subscribe(self, command: ChatCommand) -> None:
        if len(command.args) < 2:
            await self._reply(command, messages.SUBSCRIBE_USAGE)
            return
        repo = parse_repo(command.args[0])
        if repo is None:
            await self._reply(command, "❌ Invalid repository. Use the owner/repo format.")
            return
        try:
            flags = EventFlags.parse(command.args[1])
        except ValueError:
            await self._reply(command, "❌ Invalid event types. Available: commit, issue, pr")
            return

        owner, name = repo
        try:
            subscription = await self._subscriptions.create_or_update(
                command.chat_id, command.chat_kind, owner, name, flags, command.user_id
            )
        except AuthzFailure as exc:
            log.info("commands.subscribe_denied", reason=type(exc).__name__, repo=f"{owner}/{name}")
            await self._reply(command, messages.render_error(exc))
            return
        await self._reply(command, messages.render_subscribed(subscription))

    async def _unsubscribe(self, command: ChatCommand) -> None:
        if not command.args:
            await self._reply(command, messages.UNSUBSCRIBE_USAGE)
            return
        repo = parse_repo(command.args[0])
        if repo is None:
            await self._reply(command, "❌ Invalid repository. Use the owner/repo format.")
            return

        owner, name = repo
        try:
            removed = await self._subscriptions.delete(
                command.chat_id, owner, name, command.user_id, command.chat_kind
            )
        except AuthzFailure as exc:
            await self._reply(command, messages.render_error(exc))
            return
        if removed:
            await self._reply(command, f"✅ Unsubscribed from {owner}/{name}")
        else:
            await self._reply(command, f"❌ No subscription found for {owner}/{name}.")

    async def _list(self, command: ChatCommand) -> None:
        subscriptions = await self._subscriptions.list(command.chat_id)
        await self._reply(command, messages.render_subscription_list(subscriptions))
