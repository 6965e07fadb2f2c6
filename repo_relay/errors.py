"""
Error taxonomy for the relay core.

Core components raise these; the HTTP routers and the chat command handler
translate them into status codes or user-facing replies.

- AuthFailure: rejected at the webhook boundary (headers, signature, body)
- AuthzFailure: the requesting user may not perform the operation
- StateFailure: the account-link handshake is unknown or stale
- ExternalFailure: a provider or chat-platform call failed
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for all relay errors."""


# ---------------------------------------------------------------------------
# Boundary failures
# ---------------------------------------------------------------------------


class AuthFailure(RelayError):
    status_code = 400


class MissingHeaders(AuthFailure):
    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required headers: {', '.join(missing)}")


class SignatureMismatch(AuthFailure):
    status_code = 401

    def __init__(self) -> None:
        super().__init__("Invalid signature")


class MalformedPayload(AuthFailure):
    def __init__(self, reason: str):
        super().__init__(f"Malformed payload: {reason}")


# ---------------------------------------------------------------------------
# Authorization failures
# ---------------------------------------------------------------------------


class AuthzFailure(RelayError):
    pass


class NotBound(AuthzFailure):
    def __init__(self, chat_user_id: int):
        self.chat_user_id = chat_user_id
        super().__init__(f"User {chat_user_id} has no linked GitHub account")


class AlreadyBound(AuthzFailure):
    def __init__(self, chat_user_id: int):
        self.chat_user_id = chat_user_id
        super().__init__(f"User {chat_user_id} is already linked to a GitHub account")


class NotAdmin(AuthzFailure):
    def __init__(self, chat_id: int, chat_user_id: int):
        self.chat_id = chat_id
        self.chat_user_id = chat_user_id
        super().__init__(f"User {chat_user_id} is not an administrator of chat {chat_id}")


class InsufficientPermission(AuthzFailure):
    def __init__(self, owner: str, repo: str):
        self.owner = owner
        self.repo = repo
        super().__init__(f"No admin or write permission on {owner}/{repo}")


class AppNotInstalled(AuthzFailure):
    def __init__(self, owner: str, install_url: str = ""):
        self.owner = owner
        self.install_url = install_url
        super().__init__(f"GitHub App is not installed for {owner}")


# ---------------------------------------------------------------------------
# Handshake state failures
# ---------------------------------------------------------------------------


class StateFailure(RelayError):
    pass


class HandshakeNotFound(StateFailure):
    def __init__(self) -> None:
        super().__init__("Authorization state is unknown or was already used")


class HandshakeExpired(StateFailure):
    def __init__(self) -> None:
        super().__init__("Authorization state has expired")


# ---------------------------------------------------------------------------
# External failures
# ---------------------------------------------------------------------------


class ExternalFailure(RelayError):
    pass


class ExchangeFailed(ExternalFailure):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"GitHub OAuth error: {reason}")


class DeliveryFailed(ExternalFailure):
    def __init__(self, chat_id: int, reason: str):
        self.chat_id = chat_id
        self.reason = reason
        super().__init__(f"Delivery to chat {chat_id} failed: {reason}")
