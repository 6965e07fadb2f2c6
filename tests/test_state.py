"""Tests for SQLite state persistence."""

import asyncio
from datetime import datetime, timedelta, timezone

from repo_relay.models import (
    AuthorizationHandshake,
    ChatKind,
    Credential,
    Installation,
    NotifyKind,
    Subscription,
)
from repo_relay.state import RelayState


def _sub(chat_id=-100, owner="acme", repo="widgets", created_by=1, **flags) -> Subscription:
    return Subscription(
        chat_id=chat_id,
        chat_kind=ChatKind.GROUP,
        owner=owner,
        repo=repo,
        created_by=created_by,
        **flags,
    )


def _credential(chat_user_id: int, token: str = "gho_x") -> Credential:
    return Credential(
        chat_user_id=chat_user_id,
        provider_user_id=str(chat_user_id * 10),
        provider_username=f"user{chat_user_id}",
        access_token=token,
    )


async def test_subscription_crud(state: RelayState):
    saved = await state.upsert_subscription(_sub(wants_commit=True))
    assert saved.full_name == "acme/widgets"
    assert saved.flags.names() == ["commit"]

    subs = await state.list_subscriptions(-100)
    assert len(subs) == 1

    assert await state.delete_subscription(-100, "acme", "widgets") is True
    assert await state.delete_subscription(-100, "acme", "widgets") is False
    assert await state.list_subscriptions(-100) == []


async def test_resubscribe_overwrites_flags(state: RelayState):
    await state.upsert_subscription(_sub(wants_commit=True, wants_issue=True))
    updated = await state.upsert_subscription(_sub(wants_pr=True, created_by=2))

    assert updated.flags.names() == ["pr"]
    # The original creator is kept
    assert updated.created_by == 1
    assert len(await state.list_subscriptions(-100)) == 1


async def test_concurrent_upserts_leave_one_row(state: RelayState):
    variants = [
        _sub(wants_commit=True),
        _sub(wants_issue=True),
        _sub(wants_commit=True, wants_pr=True),
        _sub(wants_pr=True),
    ]
    await asyncio.gather(*(state.upsert_subscription(sub) for sub in variants * 3))

    subs = await state.list_subscriptions(-100)
    assert len(subs) == 1
    assert subs[0].flags.names() == ["pr"]


async def test_list_subscribers_by_flag(state: RelayState):
    await state.upsert_subscription(_sub(chat_id=1, wants_commit=True))
    await state.upsert_subscription(_sub(chat_id=2, wants_issue=True, wants_pr=True))
    await state.upsert_subscription(_sub(chat_id=3, repo="gadgets", wants_commit=True))

    commit = await state.list_subscribers("acme", "widgets", NotifyKind.COMMIT)
    pr = await state.list_subscribers("acme", "widgets", NotifyKind.PR)
    assert [s.chat_id for s in commit] == [1]
    assert [s.chat_id for s in pr] == [2]


async def test_repository_match_ignores_case(state: RelayState):
    await state.upsert_subscription(_sub(owner="Acme", repo="Widgets", wants_commit=True))
    subs = await state.list_subscribers("acme", "widgets", NotifyKind.COMMIT)
    assert len(subs) == 1


async def test_credential_crud(state: RelayState):
    assert await state.get_credential(7) is None

    await state.save_credential(_credential(7, "gho_first"))
    await state.save_credential(_credential(7, "gho_second"))
    credential = await state.get_credential(7)
    assert credential.access_token == "gho_second"

    assert await state.delete_credential(7) is True
    assert await state.get_credential(7) is None
    assert await state.delete_credential(7) is False


async def test_delete_credential_cascades_to_own_subscriptions(state: RelayState):
    await state.save_credential(_credential(1))
    await state.save_credential(_credential(2))
    await state.upsert_subscription(_sub(chat_id=10, created_by=1, wants_commit=True))
    await state.upsert_subscription(_sub(chat_id=11, created_by=1, wants_commit=True))
    await state.upsert_subscription(_sub(chat_id=12, created_by=2, wants_commit=True))

    await state.delete_credential(1)

    remaining = await state.list_subscribers("acme", "widgets", NotifyKind.COMMIT)
    assert [s.chat_id for s in remaining] == [12]


async def test_installations(state: RelayState):
    assert await state.has_installation("acme") is False
    await state.save_installation(Installation(installation_id=5, account_login="acme", account_id=9))
    assert await state.has_installation("ACME") is True


async def test_uninstall_cascades_to_owner_subscriptions(state: RelayState):
    await state.save_installation(Installation(installation_id=5, account_login="acme", account_id=9))
    await state.upsert_subscription(_sub(chat_id=1, wants_commit=True))
    await state.upsert_subscription(_sub(chat_id=2, owner="other", wants_commit=True))

    assert await state.remove_installations("acme") == 1

    assert await state.has_installation("acme") is False
    assert await state.list_subscriptions(1) == []
    assert len(await state.list_subscriptions(2)) == 1


async def test_handshake_consumed_once(state: RelayState):
    expires = datetime.now(timezone.utc) + timedelta(minutes=10)
    await state.create_handshake(AuthorizationHandshake(token="abc", chat_user_id=3, expires_at=expires))

    first = await state.consume_handshake("abc")
    second = await state.consume_handshake("abc")

    assert first is not None
    assert first.chat_user_id == 3
    assert first.expires_at == expires
    assert second is None


async def test_concurrent_consume_has_single_winner(state: RelayState):
    expires = datetime.now(timezone.utc) + timedelta(minutes=10)
    await state.create_handshake(AuthorizationHandshake(token="race", chat_user_id=3, expires_at=expires))

    results = await asyncio.gather(*(state.consume_handshake("race") for _ in range(5)))
    assert sum(r is not None for r in results) == 1


async def test_creating_handshake_purges_expired(state: RelayState):
    past = datetime.now(timezone.utc) - timedelta(minutes=1)
    future = datetime.now(timezone.utc) + timedelta(minutes=10)
    await state.create_handshake(AuthorizationHandshake(token="old", chat_user_id=1, expires_at=past))
    await state.create_handshake(AuthorizationHandshake(token="new", chat_user_id=2, expires_at=future))

    assert await state.consume_handshake("old") is None
    assert await state.consume_handshake("new") is not None


async def test_remember_delivery(state: RelayState):
    assert await state.remember_delivery("d-1", ttl_seconds=600) is True
    assert await state.remember_delivery("d-1", ttl_seconds=600) is False
    assert await state.remember_delivery("d-2", ttl_seconds=600) is True


async def test_forget_delivery(state: RelayState):
    assert await state.remember_delivery("d-1", ttl_seconds=600) is True
    await state.forget_delivery("d-1")
    await state.forget_delivery("d-unknown")
    assert await state.remember_delivery("d-1", ttl_seconds=600) is True


async def test_remember_delivery_forgets_after_ttl(state: RelayState):
    assert await state.remember_delivery("d-1", ttl_seconds=600) is True
    # A zero TTL purges every earlier id before recording
    await asyncio.sleep(0.01)
    assert await state.remember_delivery("d-1", ttl_seconds=0) is True
