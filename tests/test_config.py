"""Tests for settings loading."""

from repo_relay.config import Settings


def test_defaults():
    cfg = Settings(_env_file=None)
    assert cfg.database_path == "./data/relay.db"
    assert cfg.port == 3000
    assert cfg.oauth_scope == "repo,read:org"
    assert cfg.dedup_deliveries is True
    assert cfg.dispatch_concurrency == 8
    assert cfg.log_format == "json"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("RELAY_WEBHOOK_SECRET", "s3cret")
    monkeypatch.setenv("RELAY_PORT", "8080")
    monkeypatch.setenv("RELAY_DEDUP_DELIVERIES", "false")
    cfg = Settings(_env_file=None)
    assert cfg.webhook_secret == "s3cret"
    assert cfg.port == 8080
    assert cfg.dedup_deliveries is False


def test_env_file(tmp_path):
    env = tmp_path / "relay.env"
    env.write_text("RELAY_TELEGRAM_BOT_TOKEN=123:abc\nRELAY_LOG_LEVEL=debug\n")
    cfg = Settings(_env_file=str(env))
    assert cfg.telegram_bot_token == "123:abc"
    assert cfg.log_level == "debug"


def test_install_url():
    cfg = Settings(_env_file=None, github_web_url="https://github.com/", github_app_slug="my-relay")
    assert cfg.install_url == "https://github.com/apps/my-relay/installations/new"
