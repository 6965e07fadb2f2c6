"""
Permission gate: may a linked GitHub account subscribe a chat to a repository?

Repository permission is read live from GitHub with the user's token. Any
failure to read it degrades to NONE. App installation is a local read of the
installations mirrored from webhook events.
"""

from __future__ import annotations

import httpx
import structlog

from .github import GitHubClient
from .models import PermissionLevel
from .state import RelayState

log = structlog.get_logger()


class PermissionGate:
    def __init__(self, github: GitHubClient, state: RelayState):
        self._github = github
        self._state = state

    async def check_repo_permission(
        self, access_token: str, owner: str, repo: str
    ) -> PermissionLevel:
        """Highest permission the token holds on owner/repo; NONE if unknown."""
        try:
            data = await self._github.get_repository(access_token, owner, repo)
        except httpx.HTTPStatusError as exc:
            log.warning(
                "permissions.lookup_denied",
                repo=f"{owner}/{repo}",
                status=exc.response.status_code,
            )
            return PermissionLevel.NONE
        except (httpx.HTTPError, ValueError) as exc:
            log.warning("permissions.lookup_failed", repo=f"{owner}/{repo}", error=str(exc))
            return PermissionLevel.NONE

        permissions = data.get("permissions") if isinstance(data, dict) else None
        if not isinstance(permissions, dict):
            log.warning("permissions.unexpected_response", repo=f"{owner}/{repo}")
            return PermissionLevel.NONE
        if permissions.get("admin"):
            return PermissionLevel.ADMIN
        if permissions.get("push"):
            return PermissionLevel.WRITE
        if permissions.get("pull"):
            return PermissionLevel.READ
        return PermissionLevel.NONE

    async def has_subscribe_permission(self, access_token: str, owner: str, repo: str) -> bool:
        level = await self.check_repo_permission(access_token, owner, repo)
        return level.rank >= PermissionLevel.WRITE.rank

    async def is_app_installed(self, owner: str) -> bool:
        return await self._state.has_installation(owner)
