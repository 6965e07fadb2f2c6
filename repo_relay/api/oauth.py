"""
GitHub OAuth callback.

Completes the account-link handshake started by /bind and renders a small
HTML page for the user's browser.
"""

from __future__ import annotations

from html import escape
from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from ..errors import ExchangeFailed, StateFailure
from ..relay import RelayService
from .deps import get_relay

log = structlog.get_logger()
router = APIRouter()

_PAGE = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <title>{title}</title>
    <style>
      body {{
        font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
        display: flex;
        justify-content: center;
        align-items: center;
        height: 100vh;
        margin: 0;
        background: #f6f8fa;
      }}
      .card {{
        background: white;
        padding: 40px;
        border-radius: 12px;
        box-shadow: 0 8px 32px rgba(0, 0, 0, 0.15);
        text-align: center;
      }}
      .icon {{ font-size: 56px; }}
      h1 {{ color: #24292f; margin: 16px 0; }}
      p {{ color: #57606a; }}
    </style>
  </head>
  <body>
    <div class="card">
      <div class="icon">{icon}</div>
      <h1>{title}</h1>
      {body}
    </div>
  </body>
</html>
"""


def _page(title: str, icon: str, *paragraphs: str, status_code: int = 200) -> HTMLResponse:
    body = "\n      ".join(f"<p>{p}</p>" for p in paragraphs)
    return HTMLResponse(_PAGE.format(title=title, icon=icon, body=body), status_code=status_code)


@router.get("/callback", response_class=HTMLResponse)
async def oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    relay: RelayService = Depends(get_relay),
):
    if not code or not state:
        return _page(
            "Linking failed",
            "❌",
            "Required parameters are missing. Please try again.",
            status_code=400,
        )

    try:
        credential = await relay.linker.complete_handshake(state, code)
    except StateFailure as exc:
        log.info("oauth.state_rejected", reason=type(exc).__name__)
        return _page(
            "Linking failed",
            "❌",
            "This authorization link has expired or was already used.",
            "Send /bind to the bot again for a new link.",
            status_code=400,
        )
    except ExchangeFailed as exc:
        log.error("oauth.exchange_failed", error=exc.reason)
        return _page(
            "Linking failed",
            "❌",
            "Something went wrong while talking to GitHub. Please try again later.",
            status_code=500,
        )

    return _page(
        "Account linked",
        "✅",
        f"Your GitHub account <strong>@{escape(credential.provider_username)}</strong> is now linked.",
        "Return to Telegram to keep using the bot.",
    )
