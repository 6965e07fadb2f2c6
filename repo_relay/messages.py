"""
Telegram message rendering (HTML parse mode).

Notification renderers take a typed webhook envelope; reply renderers turn
command outcomes and relay errors into user-facing text. All interpolated
values are HTML-escaped.
"""

from __future__ import annotations

from html import escape

from .errors import (
    AlreadyBound,
    AppNotInstalled,
    InsufficientPermission,
    NotAdmin,
    NotBound,
    RelayError,
)
from .models import (
    ChatKind,
    IssuesEvent,
    PullRequestEvent,
    PushEvent,
    Subscription,
)

MAX_COMMITS = 5

ISSUE_EMOJI = {
    "opened": "🆕",
    "closed": "✅",
    "reopened": "🔄",
    "edited": "✏️",
}

PR_EMOJI = {
    "opened": "🆕",
    "closed": "❌",
    "merged": "🔀",
    "reopened": "🔄",
    "edited": "✏️",
}

HELP_TEXT = (
    "<b>GitHub Repository Relay</b>\n\n"
    "/bind - link your GitHub account\n"
    "/unbind - unlink your GitHub account and remove your subscriptions\n"
    "/subscribe &lt;owner/repo&gt; &lt;events&gt; - subscribe this chat\n"
    "/unsubscribe &lt;owner/repo&gt; - unsubscribe this chat\n"
    "/list - show this chat's subscriptions\n\n"
    "Events: commit, issue, pr (comma separated)\n"
    "Example: <code>/subscribe octocat/hello-world commit,pr</code>"
)

SUBSCRIBE_USAGE = (
    "Usage: /subscribe &lt;owner/repo&gt; &lt;events&gt;\n\n"
    "Events: commit, issue, pr (comma separated)\n"
    "Example: <code>/subscribe octocat/hello-world commit,issue,pr</code>"
)

UNSUBSCRIBE_USAGE = "Usage: /unsubscribe &lt;owner/repo&gt;"


def _first_line(text: str, limit: int = 120) -> str:
    if not text:
        return ""
    return text.splitlines()[0][:limit]


def _link(url: str, label: str) -> str:
    if not url:
        return escape(label)
    return f'<a href="{escape(url)}">{escape(label)}</a>'


def _actor(sender) -> str:
    return sender.login if sender else "unknown"


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def render_push(event: PushEvent) -> str:
    repo = event.repository.full_name if event.repository else "?"
    count = len(event.commits)
    lines = [
        "<b>📤 New Push</b>",
        "",
        f"<b>Repository:</b> {escape(repo)}",
        f"<b>Branch:</b> {escape(event.branch)}",
        f"<b>Commits:</b> {count}",
        f"<b>By:</b> {escape(_actor(event.sender))}",
    ]
    if event.forced:
        lines.append("<i>(forced)</i>")

    if event.commits:
        lines.append("")
        for commit in event.commits[:MAX_COMMITS]:
            lines.append(f"{_link(commit.url, commit.id[:7])}: {escape(_first_line(commit.message))}")
        overflow = count - MAX_COMMITS
        if overflow > 0:
            lines.append(f"<i>+{overflow} more commits</i>")
    elif event.head_commit:
        head = event.head_commit
        lines.append("")
        lines.append("<b>Latest commit:</b>")
        lines.append(f"{_link(head.url, head.id[:7])}: {escape(_first_line(head.message))}")
    return "\n".join(lines)


def render_issue(event: IssuesEvent) -> str:
    issue = event.issue
    repo = event.repository.full_name if event.repository else "?"
    emoji = ISSUE_EMOJI.get(event.action, "📝")
    return "\n".join(
        [
            f"<b>{emoji} Issue {escape(event.action)}</b>",
            "",
            f"<b>Repository:</b> {escape(repo)}",
            f"<b>Issue:</b> {_link(issue.html_url, f'#{issue.number} {issue.title}')}",
            f"<b>State:</b> {escape(issue.state)}",
            f"<b>By:</b> {escape(_actor(event.sender))}",
        ]
    )


def render_pull_request(event: PullRequestEvent) -> str:
    pr = event.pull_request
    repo = event.repository.full_name if event.repository else "?"
    action = "merged" if event.action == "closed" and pr.merged else event.action
    emoji = PR_EMOJI.get(action, "📝")
    return "\n".join(
        [
            f"<b>{emoji} Pull Request {escape(action)}</b>",
            "",
            f"<b>Repository:</b> {escape(repo)}",
            f"<b>PR:</b> {_link(pr.html_url, f'#{pr.number} {pr.title}')}",
            f"<b>State:</b> {escape(pr.state)}",
            f"<b>By:</b> {escape(_actor(event.sender))}",
        ]
    )


# ---------------------------------------------------------------------------
# Command replies
# ---------------------------------------------------------------------------


def render_bind_link(authorize_url: str) -> str:
    return (
        "🔗 <b>Link your GitHub account</b>\n\n"
        "Open this link to authorize the relay:\n\n"
        f"{_link(authorize_url, authorize_url)}\n\n"
        "The link is valid for 10 minutes."
    )


def render_subscribed(subscription: Subscription) -> str:
    target = "this private chat" if subscription.chat_kind == ChatKind.PRIVATE else "this group"
    return (
        "✅ Subscribed!\n\n"
        f"Repository: {escape(subscription.full_name)}\n"
        f"Events: {', '.join(subscription.flags.names())}\n"
        f"Delivered to: {target}"
    )


def render_subscription_list(subscriptions: list[Subscription]) -> str:
    if not subscriptions:
        return "This chat has no subscriptions."
    lines = ["<b>📋 Subscriptions</b>", ""]
    for sub in subscriptions:
        lines.append(f"<b>{escape(sub.full_name)}</b>")
        lines.append(f"  Events: {', '.join(sub.flags.names())}")
    return "\n".join(lines)


def render_error(exc: RelayError) -> str:
    """User-facing remediation text for a relay error."""
    if isinstance(exc, NotBound):
        return "❌ You have not linked a GitHub account yet. Use /bind first."
    if isinstance(exc, AlreadyBound):
        return "You have already linked a GitHub account. Use /unbind first to link a different one."
    if isinstance(exc, NotAdmin):
        return "❌ Only chat administrators can manage subscriptions here."
    if isinstance(exc, InsufficientPermission):
        return (
            f"❌ You need admin or write access to {escape(exc.owner)}/{escape(exc.repo)} "
            "to subscribe to it."
        )
    if isinstance(exc, AppNotInstalled):
        text = f"❌ The GitHub App is not installed for <b>{escape(exc.owner)}</b>."
        if exc.install_url:
            text += f"\n\nInstall it first: {_link(exc.install_url, exc.install_url)}"
        return text
    return f"❌ {escape(str(exc))}"
