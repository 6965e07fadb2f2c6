"""
GitHub API client.

Handles:
- OAuth authorize URL construction and code → token exchange
- Identity lookup for a user token
- Repository metadata (permissions) lookup for a user token
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from .errors import ExchangeFailed

GITHUB_ACCEPT = "application/vnd.github+json"


class GitHubIdentity(BaseModel):
    """Result of a successful code exchange."""

    access_token: str
    user_id: str
    username: str


class GitHubClient:
    """Thin async wrapper around the GitHub OAuth and REST endpoints the relay uses."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_url: str,
        scope: str = "repo,read:org",
        api_url: str = "https://api.github.com",
        web_url: str = "https://github.com",
        request_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_url = redirect_url
        self._scope = scope
        self._api_url = api_url.rstrip("/")
        self._web_url = web_url.rstrip("/")
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

    # --- OAuth ---

    def authorize_url(self, state: str) -> str:
        query = urlencode(
            {
                "client_id": self._client_id,
                "redirect_uri": self._redirect_url,
                "state": state,
                "scope": self._scope,
            }
        )
        return f"{self._web_url}/login/oauth/authorize?{query}"

    async def exchange_code(self, code: str) -> GitHubIdentity:
        """Exchange an OAuth code for a token and resolve who it belongs to."""
        assert self._client
        try:
            resp = await self._client.post(
                f"{self._web_url}/login/oauth/access_token",
                json={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "code": code,
                },
                headers={"Accept": "application/json"},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise ExchangeFailed(f"token endpoint returned {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ExchangeFailed(str(exc) or type(exc).__name__) from exc

        if not isinstance(data, dict):
            raise ExchangeFailed("token endpoint returned an unexpected body")
        access_token = data.get("access_token")
        if data.get("error") or not access_token:
            raise ExchangeFailed(data.get("error") or "No access token")

        try:
            user = await self.get_user(access_token)
            return GitHubIdentity(
                access_token=access_token,
                user_id=str(user["id"]),
                username=user["login"],
            )
        except (httpx.HTTPError, ValueError, TypeError, KeyError) as exc:
            raise ExchangeFailed(f"identity lookup failed: {exc!r}") from exc

    # --- REST ---

    def _auth_headers(self, access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": GITHUB_ACCEPT,
        }

    async def get_user(self, access_token: str) -> dict[str, Any]:
        assert self._client
        resp = await self._client.get(
            f"{self._api_url}/user", headers=self._auth_headers(access_token)
        )
        resp.raise_for_status()
        return resp.json()

    async def get_repository(self, access_token: str, owner: str, repo: str) -> dict[str, Any]:
        """Fetch repository metadata as seen by ``access_token``. Raises httpx errors."""
        assert self._client
        resp = await self._client.get(
            f"{self._api_url}/repos/{owner}/{repo}",
            headers=self._auth_headers(access_token),
        )
        resp.raise_for_status()
        return resp.json()
