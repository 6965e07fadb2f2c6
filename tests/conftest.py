"""
Shared fixtures for relay tests.

GitHub and the Telegram Bot API are replaced by in-process fakes served
through httpx.MockTransport; the store is a fresh SQLite file per test.
"""

import json

import httpx
import pytest

from repo_relay.config import Settings
from repo_relay.errors import DeliveryFailed
from repo_relay.github import GitHubClient
from repo_relay.relay import RelayService
from repo_relay.state import RelayState
from repo_relay.telegram import TelegramClient

GITHUB_WEB = "https://github.test"
GITHUB_API = "https://api.github.test"
TELEGRAM_API = "https://telegram.test"


class FakeGitHub:
    """OAuth token endpoint plus the /user and /repos REST endpoints."""

    def __init__(self):
        self.token_response: dict = {"access_token": "gho_test_token", "token_type": "bearer"}
        self.user: dict | list | bytes = {"id": 1001, "login": "octocat"}
        self.permissions: dict[tuple[str, str], dict] = {}
        self.requests: list[httpx.Request] = []

    def grant(self, owner: str, repo: str, level: str) -> None:
        self.permissions[(owner.lower(), repo.lower())] = {
            "admin": level == "admin",
            "push": level in ("admin", "write"),
            "pull": level in ("admin", "write", "read"),
        }

    def repo_calls(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith("/repos/")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.url.host == "github.test" and path == "/login/oauth/access_token":
            return httpx.Response(200, json=self.token_response)
        if path == "/user":
            if isinstance(self.user, bytes):
                return httpx.Response(200, content=self.user)
            return httpx.Response(200, json=self.user)
        if path.startswith("/repos/"):
            _, _, owner, repo = path.split("/", 3)
            permissions = self.permissions.get((owner.lower(), repo.lower()))
            if permissions is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(
                200, json={"full_name": f"{owner}/{repo}", "permissions": permissions}
            )
        return httpx.Response(404, json={"message": "Not Found"})


class FakeTelegram:
    """Records sendMessage calls and answers getChatMember from a status table."""

    def __init__(self):
        self.sent: list[dict] = []
        self.statuses: dict[tuple[int, int], str] = {}
        self.blocked: set[int] = set()

    def texts_to(self, chat_id: int) -> list[str]:
        return [m["text"] for m in self.sent if m["chat_id"] == chat_id]

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        payload = json.loads(request.content)
        if method == "sendMessage":
            if payload["chat_id"] in self.blocked:
                return httpx.Response(
                    403,
                    json={"ok": False, "error_code": 403, "description": "Forbidden: bot was blocked by the user"},
                )
            self.sent.append(payload)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": len(self.sent)}})
        if method == "getChatMember":
            status = self.statuses.get((payload["chat_id"], payload["user_id"]), "member")
            return httpx.Response(200, json={"ok": True, "result": {"status": status}})
        return httpx.Response(404, json={"ok": False, "description": "Not Found"})


class RecordingSender:
    """MessageSender double; chats in ``failing`` raise DeliveryFailed."""

    def __init__(self, failing: set[int] | None = None):
        self.sent: list[tuple[int, str]] = []
        self.failing = failing or set()

    async def send_message(self, chat_id: int, text: str) -> None:
        if chat_id in self.failing:
            raise DeliveryFailed(chat_id, "chat not found")
        self.sent.append((chat_id, text))


@pytest.fixture
async def state(tmp_path):
    s = RelayState(str(tmp_path / "relay.db"))
    await s.open()
    yield s
    await s.close()


@pytest.fixture
def github_api():
    return FakeGitHub()


@pytest.fixture
def telegram_api():
    return FakeTelegram()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
async def github(github_api):
    client = GitHubClient(
        client_id="client-id",
        client_secret="client-secret",
        redirect_url="https://relay.test/oauth/callback",
        api_url=GITHUB_API,
        web_url=GITHUB_WEB,
        transport=httpx.MockTransport(github_api.handler),
    )
    await client.open()
    yield client
    await client.close()


@pytest.fixture
async def telegram(telegram_api):
    client = TelegramClient(
        "123:test",
        api_url=TELEGRAM_API,
        transport=httpx.MockTransport(telegram_api.handler),
    )
    await client.open()
    yield client
    await client.close()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        telegram_bot_token="123:test",
        telegram_api_url=TELEGRAM_API,
        github_client_id="client-id",
        github_client_secret="client-secret",
        github_app_slug="repo-relay",
        github_api_url=GITHUB_API,
        github_web_url=GITHUB_WEB,
        oauth_redirect_url="https://relay.test/oauth/callback",
        webhook_secret="webhook-secret",
        database_path=str(tmp_path / "relay.db"),
    )


@pytest.fixture
async def relay(settings, github_api, telegram_api):
    service = RelayService(
        settings,
        github_transport=httpx.MockTransport(github_api.handler),
        telegram_transport=httpx.MockTransport(telegram_api.handler),
    )
    await service.open()
    yield service
    await service.close()
