"""Webhook endpoints for the payment provider."""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from reftrack.api.deps import Services, get_services
from reftrack.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.get("/whop", response_class=PlainTextResponse)
async def whop_webhook_alive():
    """Liveness probe for the webhook URL configured at the provider."""
    return "whop webhook endpoint alive"


@router.post("/whop")
async def whop_webhook(request: Request, services: Services = Depends(get_services)):
    """Handle Whop webhook events.

    The body is read untouched so the signature covers exactly what was
    sent. Database-backed dedup makes provider retries harmless.
    """
    payload = await request.body()

    try:
        result = await services.pipeline.handle(payload, request.headers)
    except Exception as e:
        logger.error("webhook_processing_failed", error=str(e), error_type=type(e).__name__)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"ok": False, "error": "server_error"},
        )

    return JSONResponse(status_code=result.status_code, content=result.body)
