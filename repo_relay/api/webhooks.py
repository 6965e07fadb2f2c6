"""
GitHub webhook endpoint.

Responds 200 to every authenticated delivery, including ones that are
ignored, filtered or deduplicated.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from ..errors import AuthFailure
from ..relay import RelayService
from .deps import get_relay

log = structlog.get_logger()
router = APIRouter()


@router.post("/github", response_class=PlainTextResponse)
async def github_webhook(request: Request, relay: RelayService = Depends(get_relay)):
    body = await request.body()
    try:
        outcome = await relay.ingress.ingest(
            body,
            signature=request.headers.get("X-Hub-Signature-256"),
            event_kind=request.headers.get("X-GitHub-Event"),
            delivery_id=request.headers.get("X-GitHub-Delivery"),
        )
    except AuthFailure as exc:
        return PlainTextResponse(str(exc), status_code=exc.status_code)
    except Exception:
        log.exception("webhook.processing_failed")
        return PlainTextResponse("Error processing webhook", status_code=500)

    log.debug("webhook.handled", status=outcome.status)
    return PlainTextResponse("OK")
