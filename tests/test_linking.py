"""Tests for the account-link handshake."""

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from repo_relay.errors import AlreadyBound, ExchangeFailed, HandshakeExpired, HandshakeNotFound
from repo_relay.linking import HANDSHAKE_TTL, AccountLinker
from repo_relay.metrics import MetricsCollector
from repo_relay.models import ChatKind, Credential, NotifyKind, Subscription


class Clock:
    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def linker(state, github, clock):
    return AccountLinker(state, github, metrics=MetricsCollector(), now=clock)


async def test_start_handshake_builds_authorize_url(linker: AccountLinker):
    start = await linker.start_handshake(42)

    url = urlparse(start.authorize_url)
    query = parse_qs(url.query)
    assert url.netloc == "github.test"
    assert url.path == "/login/oauth/authorize"
    assert query["state"] == [start.token]
    assert query["client_id"] == ["client-id"]
    assert query["redirect_uri"] == ["https://relay.test/oauth/callback"]
    assert query["scope"] == ["repo,read:org"]


async def test_handshake_tokens_are_unique(linker: AccountLinker):
    first = await linker.start_handshake(42)
    second = await linker.start_handshake(42)
    assert first.token != second.token


async def test_complete_handshake_binds_user(linker: AccountLinker, state, github_api):
    start = await linker.start_handshake(42)

    credential = await linker.complete_handshake(start.token, "code-1")

    assert credential.chat_user_id == 42
    assert credential.provider_username == "octocat"
    assert credential.provider_user_id == "1001"
    assert await linker.is_bound(42) is True
    stored = await state.get_credential(42)
    assert stored.access_token == "gho_test_token"
    assert linker._metrics.get("accounts_linked_total") == 1


async def test_handshake_is_single_use(linker: AccountLinker):
    start = await linker.start_handshake(42)
    await linker.complete_handshake(start.token, "code-1")

    with pytest.raises(HandshakeNotFound):
        await linker.complete_handshake(start.token, "code-2")


async def test_unknown_token(linker: AccountLinker):
    with pytest.raises(HandshakeNotFound):
        await linker.complete_handshake("never-issued", "code")


async def test_expired_handshake_is_rejected_and_removed(linker: AccountLinker, clock, github_api):
    start = await linker.start_handshake(42)
    clock.advance(HANDSHAKE_TTL + timedelta(seconds=1))

    with pytest.raises(HandshakeExpired):
        await linker.complete_handshake(start.token, "code")
    with pytest.raises(HandshakeNotFound):
        await linker.complete_handshake(start.token, "code")

    assert await linker.is_bound(42) is False
    # No exchange was attempted
    assert github_api.requests == []


async def test_handshake_valid_until_ttl(linker: AccountLinker, clock):
    start = await linker.start_handshake(42)
    clock.advance(HANDSHAKE_TTL - timedelta(seconds=1))

    credential = await linker.complete_handshake(start.token, "code")
    assert credential.chat_user_id == 42


async def test_exchange_failure_leaves_user_unbound(linker: AccountLinker, github_api):
    github_api.token_response = {"error": "bad_verification_code"}
    start = await linker.start_handshake(42)

    with pytest.raises(ExchangeFailed, match="bad_verification_code"):
        await linker.complete_handshake(start.token, "stale-code")

    assert await linker.is_bound(42) is False
    # The handshake is spent even though the exchange failed
    with pytest.raises(HandshakeNotFound):
        await linker.complete_handshake(start.token, "code")


@pytest.mark.parametrize(
    "user",
    [
        b"<html>Bad gateway</html>",
        ["octocat"],
        {"id": 1001},
    ],
    ids=["not-json", "json-list", "missing-login"],
)
async def test_unexpected_identity_response_fails_exchange(linker: AccountLinker, github_api, user):
    github_api.user = user
    start = await linker.start_handshake(42)

    with pytest.raises(ExchangeFailed, match="identity lookup failed"):
        await linker.complete_handshake(start.token, "code-1")

    assert await linker.is_bound(42) is False


async def test_bound_user_cannot_start_handshake(linker: AccountLinker, state):
    await state.save_credential(
        Credential(chat_user_id=42, provider_user_id="1", provider_username="octocat", access_token="t")
    )
    with pytest.raises(AlreadyBound):
        await linker.start_handshake(42)


async def test_credential_without_token_is_not_bound(linker: AccountLinker, state):
    await state.save_credential(
        Credential(chat_user_id=42, provider_user_id="1", provider_username="octocat", access_token="")
    )
    assert await linker.get_credential(42) is None
    assert await linker.is_bound(42) is False


async def test_unbind_removes_only_own_subscriptions(linker: AccountLinker, state):
    for user in (1, 2):
        await state.save_credential(
            Credential(chat_user_id=user, provider_user_id=str(user), provider_username=f"u{user}", access_token="t")
        )
    for chat_id, creator in ((10, 1), (11, 2)):
        await state.upsert_subscription(
            Subscription(
                chat_id=chat_id,
                chat_kind=ChatKind.GROUP,
                owner="acme",
                repo="widgets",
                wants_commit=True,
                created_by=creator,
            )
        )

    assert await linker.unbind(1) is True
    assert await linker.unbind(1) is False

    remaining = await state.list_subscribers("acme", "widgets", NotifyKind.COMMIT)
    assert [s.chat_id for s in remaining] == [11]
    assert await linker.is_bound(2) is True
