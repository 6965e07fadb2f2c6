"""
Telegram update webhook.

Telegram echoes the secret configured with setWebhook in the
X-Telegram-Bot-Api-Secret-Token header; when a secret is configured, updates
without it are rejected.
"""

from __future__ import annotations

import hmac
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from ..relay import RelayService
from .deps import get_relay

log = structlog.get_logger()
router = APIRouter()


@router.post("/webhook")
async def telegram_webhook(request: Request, relay: RelayService = Depends(get_relay)):
    secret = relay.settings.telegram_webhook_secret
    if secret:
        received = request.headers.get("X-Telegram-Bot-Api-Secret-Token", "")
        if not hmac.compare_digest(received.encode(), secret.encode()):
            log.warning("telegram.bad_secret_token")
            raise HTTPException(status_code=401, detail="Invalid secret token")

    try:
        update: Any = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(update, dict):
        raise HTTPException(status_code=400, detail="Update must be a JSON object")

    handled = await relay.commands.handle_update(update)
    return {"ok": True, "handled": handled}
