"""Discord HTTP interactions endpoint (slash commands)."""

import json
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from reftrack.api.deps import Services, get_services
from reftrack.api.rate_limit import limiter
from reftrack.discord.commands import verify_interaction
from reftrack.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/discord", tags=["discord"])


@router.post("/interactions")
@limiter.limit("120/minute")
async def interactions(request: Request, services: Services = Depends(get_services)) -> dict[str, Any]:
    """Answer ``/ref`` and ``/refstats``.

    Discord rejects the endpoint unless invalid signatures get a 401.
    """
    raw = await request.body()

    public_key = (services.settings.discord_public_key or "").strip()
    if not public_key:
        logger.error("discord_interactions_disabled", reason="DISCORD_PUBLIC_KEY not set")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="missing_public_key")

    signature = request.headers.get("X-Signature-Ed25519")
    timestamp = request.headers.get("X-Signature-Timestamp")
    if not signature or not timestamp:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_signature")
    if not verify_interaction(public_key, signature, timestamp, raw):
        logger.warning("discord_interaction_bad_signature")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="bad_signature")

    try:
        payload = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_json") from None
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_payload")

    return await run_in_threadpool(services.commands.handle, payload)
