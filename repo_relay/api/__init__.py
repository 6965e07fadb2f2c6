"""
HTTP routers.

Each router resolves the running RelayService from ``app.state``.
"""

from fastapi import APIRouter

from . import oauth, telegram, webhooks
from .deps import get_relay

__all__ = ["get_relay", "router"]

router = APIRouter()

router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
router.include_router(oauth.router, prefix="/oauth", tags=["OAuth"])
router.include_router(telegram.router, prefix="/telegram", tags=["Telegram"])
