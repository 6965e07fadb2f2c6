"""
SQLite persistence for installations, credentials, handshakes and subscriptions.

Stores:
- installations: GitHub App installations mirrored from webhook events
- credentials: Telegram user → GitHub account links
- handshakes: one-time OAuth states with expiry
- subscriptions: (chat, owner, repo) → subscribed event flags
- deliveries: recently seen webhook delivery ids

Every write is a single statement. Cascades (uninstall, unbind) run as
triggers inside the deleting statement, so no partial state is observable.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone

import aiosqlite

from .models import (
    AuthorizationHandshake,
    Credential,
    Installation,
    NotifyKind,
    Subscription,
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS installations (
    installation_id INTEGER PRIMARY KEY,
    account_login   TEXT NOT NULL COLLATE NOCASE,
    account_id      INTEGER NOT NULL,
    created_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS credentials (
    chat_user_id      INTEGER PRIMARY KEY,
    provider_user_id  TEXT NOT NULL,
    provider_username TEXT NOT NULL,
    access_token      TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS handshakes (
    token        TEXT PRIMARY KEY,
    chat_user_id INTEGER NOT NULL,
    expires_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS subscriptions (
    chat_id      INTEGER NOT NULL,
    owner        TEXT NOT NULL COLLATE NOCASE,
    repo         TEXT NOT NULL COLLATE NOCASE,
    chat_kind    TEXT NOT NULL,
    wants_commit INTEGER NOT NULL DEFAULT 0,
    wants_issue  INTEGER NOT NULL DEFAULT 0,
    wants_pr     INTEGER NOT NULL DEFAULT 0,
    created_by   INTEGER NOT NULL,
    created_at   TEXT NOT NULL,
    PRIMARY KEY (chat_id, owner, repo)
);

CREATE TABLE IF NOT EXISTS deliveries (
    delivery_id TEXT PRIMARY KEY,
    seen_at     TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_installations_login
    ON installations(account_login);

CREATE INDEX IF NOT EXISTS idx_subscriptions_repo
    ON subscriptions(owner, repo);

CREATE INDEX IF NOT EXISTS idx_subscriptions_creator
    ON subscriptions(created_by);

CREATE TRIGGER IF NOT EXISTS trg_credentials_unbind
AFTER DELETE ON credentials
BEGIN
    DELETE FROM subscriptions WHERE created_by = OLD.chat_user_id;
END;

CREATE TRIGGER IF NOT EXISTS trg_installations_uninstall
AFTER DELETE ON installations
WHEN NOT EXISTS (
    SELECT 1 FROM installations WHERE account_login = OLD.account_login
)
BEGIN
    DELETE FROM subscriptions WHERE owner = OLD.account_login;
END;
"""

_FLAG_COLUMNS = {
    NotifyKind.COMMIT: "wants_commit",
    NotifyKind.ISSUE: "wants_issue",
    NotifyKind.PR: "wants_pr",
}

_SUBSCRIPTION_COLUMNS = (
    "chat_id, chat_kind, owner, repo, wants_commit, wants_issue, wants_pr, created_by"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: datetime) -> str:
    """Fixed-width UTC timestamp; stored timestamps compare as strings."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _subscription(row: aiosqlite.Row) -> Subscription:
    return Subscription(
        chat_id=row["chat_id"],
        chat_kind=row["chat_kind"],
        owner=row["owner"],
        repo=row["repo"],
        wants_commit=bool(row["wants_commit"]),
        wants_issue=bool(row["wants_issue"]),
        wants_pr=bool(row["wants_pr"]),
        created_by=row["created_by"],
    )


class RelayState:
    """Async SQLite state manager for the relay."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def open(self) -> None:
        if self._db_path != ":memory:":
            os.makedirs(os.path.dirname(self._db_path) or ".", exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(_SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    # --- Installations ---

    async def save_installation(self, installation: Installation) -> None:
        assert self._db
        await self._db.execute(
            """INSERT INTO installations (installation_id, account_login, account_id, created_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(installation_id) DO UPDATE SET
                   account_login = excluded.account_login,
                   account_id = excluded.account_id""",
            (
                installation.installation_id,
                installation.account_login,
                installation.account_id,
                _ts(_utcnow()),
            ),
        )
        await self._db.commit()

    async def remove_installations(self, account_login: str) -> int:
        """Remove every installation for an account, cascading its subscriptions."""
        assert self._db
        cursor = await self._db.execute(
            "DELETE FROM installations WHERE account_login = ?", (account_login,)
        )
        await self._db.commit()
        return cursor.rowcount

    async def has_installation(self, account_login: str) -> bool:
        assert self._db
        cursor = await self._db.execute(
            "SELECT 1 FROM installations WHERE account_login = ? LIMIT 1",
            (account_login,),
        )
        return await cursor.fetchone() is not None

    # --- Credentials ---

    async def save_credential(self, credential: Credential) -> None:
        assert self._db
        await self._db.execute(
            """INSERT INTO credentials
               (chat_user_id, provider_user_id, provider_username, access_token, updated_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(chat_user_id) DO UPDATE SET
                   provider_user_id = excluded.provider_user_id,
                   provider_username = excluded.provider_username,
                   access_token = excluded.access_token,
                   updated_at = excluded.updated_at""",
            (
                credential.chat_user_id,
                credential.provider_user_id,
                credential.provider_username,
                credential.access_token,
                _ts(_utcnow()),
            ),
        )
        await self._db.commit()

    async def get_credential(self, chat_user_id: int) -> Credential | None:
        assert self._db
        cursor = await self._db.execute(
            """SELECT chat_user_id, provider_user_id, provider_username, access_token
               FROM credentials WHERE chat_user_id = ?""",
            (chat_user_id,),
        )
        row = await cursor.fetchone()
        return Credential(**dict(row)) if row else None

    async def delete_credential(self, chat_user_id: int) -> bool:
        """Delete a credential and every subscription its owner created."""
        assert self._db
        cursor = await self._db.execute(
            "DELETE FROM credentials WHERE chat_user_id = ?", (chat_user_id,)
        )
        await self._db.commit()
        return cursor.rowcount > 0

    # --- Handshakes ---

    async def create_handshake(self, handshake: AuthorizationHandshake) -> None:
        assert self._db
        await self._db.execute(
            "DELETE FROM handshakes WHERE expires_at < ?", (_ts(_utcnow()),)
        )
        await self._db.execute(
            "INSERT INTO handshakes (token, chat_user_id, expires_at) VALUES (?, ?, ?)",
            (handshake.token, handshake.chat_user_id, _ts(handshake.expires_at)),
        )
        await self._db.commit()

    async def consume_handshake(self, token: str) -> AuthorizationHandshake | None:
        """Look up and delete a handshake in one statement; it can be consumed once."""
        assert self._db
        cursor = await self._db.execute(
            "DELETE FROM handshakes WHERE token = ? RETURNING token, chat_user_id, expires_at",
            (token,),
        )
        row = await cursor.fetchone()
        await cursor.close()
        await self._db.commit()
        if row is None:
            return None
        return AuthorizationHandshake(
            token=row["token"],
            chat_user_id=row["chat_user_id"],
            expires_at=datetime.fromisoformat(row["expires_at"]),
        )

    # --- Subscriptions ---

    async def upsert_subscription(self, subscription: Subscription) -> Subscription:
        """Insert a subscription, or overwrite the event flags of the existing row."""
        assert self._db
        cursor = await self._db.execute(
            f"""INSERT INTO subscriptions ({_SUBSCRIPTION_COLUMNS}, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(chat_id, owner, repo) DO UPDATE SET
                    wants_commit = excluded.wants_commit,
                    wants_issue = excluded.wants_issue,
                    wants_pr = excluded.wants_pr
                RETURNING {_SUBSCRIPTION_COLUMNS}""",
            (
                subscription.chat_id,
                subscription.chat_kind.value,
                subscription.owner,
                subscription.repo,
                int(subscription.wants_commit),
                int(subscription.wants_issue),
                int(subscription.wants_pr),
                subscription.created_by,
                _ts(_utcnow()),
            ),
        )
        row = await cursor.fetchone()
        await cursor.close()
        await self._db.commit()
        return _subscription(row)

    async def delete_subscription(self, chat_id: int, owner: str, repo: str) -> bool:
        assert self._db
        cursor = await self._db.execute(
            "DELETE FROM subscriptions WHERE chat_id = ? AND owner = ? AND repo = ?",
            (chat_id, owner, repo),
        )
        await self._db.commit()
        return cursor.rowcount > 0

    async def list_subscriptions(self, chat_id: int) -> list[Subscription]:
        assert self._db
        cursor = await self._db.execute(
            f"SELECT {_SUBSCRIPTION_COLUMNS} FROM subscriptions WHERE chat_id = ?",
            (chat_id,),
        )
        rows = await cursor.fetchall()
        return [_subscription(r) for r in rows]

    async def list_subscribers(
        self, owner: str, repo: str, kind: NotifyKind
    ) -> list[Subscription]:
        """Subscriptions for a repository whose flag for ``kind`` is set."""
        assert self._db
        column = _FLAG_COLUMNS[kind]
        cursor = await self._db.execute(
            f"""SELECT {_SUBSCRIPTION_COLUMNS} FROM subscriptions
                WHERE owner = ? AND repo = ? AND {column} = 1""",
            (owner, repo),
        )
        rows = await cursor.fetchall()
        return [_subscription(r) for r in rows]

    # --- Deliveries ---

    async def remember_delivery(self, delivery_id: str, ttl_seconds: int) -> bool:
        """Record a webhook delivery id. Returns False if it was seen within the TTL."""
        assert self._db
        now = _utcnow()
        await self._db.execute(
            "DELETE FROM deliveries WHERE seen_at < ?",
            (_ts(now - timedelta(seconds=ttl_seconds)),),
        )
        cursor = await self._db.execute(
            "INSERT OR IGNORE INTO deliveries (delivery_id, seen_at) VALUES (?, ?)",
            (delivery_id, _ts(now)),
        )
        await self._db.commit()
        return cursor.rowcount > 0

    async def forget_delivery(self, delivery_id: str) -> None:
        assert self._db
        await self._db.execute("DELETE FROM deliveries WHERE delivery_id = ?", (delivery_id,))
        await self._db.commit()
