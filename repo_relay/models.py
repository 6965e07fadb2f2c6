"""
Domain records and GitHub webhook envelopes.

Records mirror the rows persisted by RelayState. Envelopes are the typed views
of inbound webhook bodies; unknown fields are ignored.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ChatKind(str, Enum):
    PRIVATE = "private"
    GROUP = "group"
    SUPERGROUP = "supergroup"


class EventKind(str, Enum):
    PUSH = "push"
    ISSUES = "issues"
    PULL_REQUEST = "pull_request"
    INSTALLATION = "installation"
    INSTALLATION_REPOSITORIES = "installation_repositories"


class NotifyKind(str, Enum):
    """Subscription flag a dispatchable event is routed by."""

    COMMIT = "commit"
    ISSUE = "issue"
    PR = "pr"


class PermissionLevel(str, Enum):
    NONE = "none"
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return PERMISSION_ORDER.index(self)


# Ordered lowest to highest
PERMISSION_ORDER: list["PermissionLevel"] = [
    PermissionLevel.NONE,
    PermissionLevel.READ,
    PermissionLevel.WRITE,
    PermissionLevel.ADMIN,
]

# Issue and pull request actions that are relayed; everything else is noise.
FORWARDED_ACTIONS = frozenset({"opened", "closed", "reopened", "edited"})


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------


class Installation(BaseModel):
    installation_id: int
    account_login: str
    account_id: int


class Credential(BaseModel):
    chat_user_id: int
    provider_user_id: str
    provider_username: str
    access_token: str

    @property
    def is_bound(self) -> bool:
        return bool(self.access_token)


class AuthorizationHandshake(BaseModel):
    token: str
    chat_user_id: int
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class HandshakeStart(BaseModel):
    authorize_url: str
    token: str


class EventFlags(BaseModel):
    commit: bool = False
    issue: bool = False
    pr: bool = False

    @classmethod
    def parse(cls, text: str) -> "EventFlags":
        """Parse a comma-separated list such as ``commit,issue,pr``."""
        flags = cls()
        for name in (part.strip().lower() for part in text.split(",")):
            if name not in {kind.value for kind in NotifyKind}:
                raise ValueError(f"Unknown event type: {name or '(empty)'}")
            setattr(flags, name, True)
        if not flags.has_any():
            raise ValueError("At least one event type is required")
        return flags

    def has_any(self) -> bool:
        return self.commit or self.issue or self.pr

    def names(self) -> list[str]:
        return [kind.value for kind in NotifyKind if getattr(self, kind.value)]


class Subscription(BaseModel):
    chat_id: int
    chat_kind: ChatKind
    owner: str
    repo: str
    wants_commit: bool = False
    wants_issue: bool = False
    wants_pr: bool = False
    created_by: int

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def flags(self) -> EventFlags:
        return EventFlags(commit=self.wants_commit, issue=self.wants_issue, pr=self.wants_pr)


class DeliveryFailure(BaseModel):
    chat_id: int
    cause: str


class DeliveryReport(BaseModel):
    delivered: int = 0
    failed: list[DeliveryFailure] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Webhook envelopes
# ---------------------------------------------------------------------------


class Account(BaseModel):
    login: str
    id: Optional[int] = None


class Repository(BaseModel):
    name: str
    full_name: str = ""
    html_url: str = ""
    owner: Account


class CommitAuthor(BaseModel):
    name: str = ""
    email: Optional[str] = None


class Commit(BaseModel):
    id: str
    message: str = ""
    url: str = ""
    author: Optional[CommitAuthor] = None


class PushEvent(BaseModel):
    ref: str = ""
    compare: str = ""
    forced: bool = False
    deleted: bool = False
    commits: list[Commit] = Field(default_factory=list)
    head_commit: Optional[Commit] = None
    repository: Optional[Repository] = None
    sender: Optional[Account] = None

    @property
    def branch(self) -> str:
        return self.ref.removeprefix("refs/heads/")


class IssueItem(BaseModel):
    number: int
    title: str = ""
    html_url: str = ""
    state: str = ""
    user: Optional[Account] = None


class IssuesEvent(BaseModel):
    action: str
    issue: IssueItem
    repository: Optional[Repository] = None
    sender: Optional[Account] = None


class PullRequestItem(IssueItem):
    merged: bool = False


class PullRequestEvent(BaseModel):
    action: str
    pull_request: PullRequestItem
    repository: Optional[Repository] = None
    sender: Optional[Account] = None


class InstallationInfo(BaseModel):
    id: int
    account: Account


class RepositoryRef(BaseModel):
    name: str
    full_name: str = ""


class InstallationEvent(BaseModel):
    action: str
    installation: InstallationInfo
    repositories: list[RepositoryRef] = Field(default_factory=list)
    repositories_added: list[RepositoryRef] = Field(default_factory=list)
    repositories_removed: list[RepositoryRef] = Field(default_factory=list)
