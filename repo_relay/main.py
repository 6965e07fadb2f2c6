"""
Relay entry point.

Loads settings, configures logging, and serves the HTTP application.
"""

from __future__ import annotations

import argparse

import structlog
import uvicorn

from .app import create_app
from .config import Settings


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog with the specified level and format."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            structlog.get_level_from_name(level)
        ),
    )


def run() -> None:
    """CLI entry point for the relay."""
    parser = argparse.ArgumentParser(description="GitHub → Telegram repository event relay")
    parser.add_argument("--host", help="Bind address (default: RELAY_HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Listen port (default: RELAY_PORT or 3000)")
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to a .env file with RELAY_* settings (default: .env)",
    )
    args = parser.parse_args()

    settings = Settings(_env_file=args.env_file)
    configure_logging(settings.log_level, settings.log_format)
    log = structlog.get_logger()

    host = args.host or settings.host
    port = args.port or settings.port
    log.info("relay.config_loaded", host=host, port=port, env_file=args.env_file)

    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level)


if __name__ == "__main__":
    run()
