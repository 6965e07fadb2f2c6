"""
Application configuration loaded from environment variables.

Secrets (bot token, OAuth client secret, webhook secret) are only ever read
from the environment or a local .env file.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Repository relay configuration."""

    model_config = SettingsConfigDict(env_prefix="RELAY_", env_file=".env", extra="ignore")

    # Telegram
    telegram_bot_token: str = ""
    telegram_api_url: str = "https://api.telegram.org"
    telegram_webhook_secret: str = ""

    # GitHub App / OAuth
    github_client_id: str = ""
    github_client_secret: str = ""
    github_app_slug: str = ""
    github_api_url: str = "https://api.github.com"
    github_web_url: str = "https://github.com"
    oauth_redirect_url: str = "http://localhost:3000/oauth/callback"
    oauth_scope: str = "repo,read:org"

    # Webhooks
    webhook_secret: str = ""
    dedup_deliveries: bool = True
    delivery_ttl_seconds: int = 600

    # Storage
    database_path: str = "./data/relay.db"

    # Server
    server_url: str = "http://localhost:3000"
    host: str = "0.0.0.0"
    port: int = 3000

    # Outbound calls
    request_timeout_seconds: float = 10.0
    dispatch_concurrency: int = 8

    # Logging
    log_level: str = "info"
    log_format: Literal["json", "text"] = "json"

    @property
    def install_url(self) -> str:
        """Where users install the GitHub App."""
        return f"{self.github_web_url.rstrip('/')}/apps/{self.github_app_slug}/installations/new"


@lru_cache
def get_settings() -> Settings:
    return Settings()
