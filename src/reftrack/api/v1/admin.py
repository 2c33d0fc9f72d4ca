"""Administrative endpoints for operational testing.

Authenticated by a shared secret in the ``key`` query parameter. Not part of
the webhook pipeline: manual credits never trigger rewards. Handlers are plain
functions so FastAPI runs their blocking store calls in its threadpool.
"""

import hmac
import math
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from reftrack.api.deps import Services, get_services
from reftrack.api.rate_limit import limiter
from reftrack.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# ==================== MODELS ====================


class CreditRequest(BaseModel):
    """Add referrals to a user."""
    model_config = ConfigDict(populate_by_name=True)

    discord_id: Any = Field(default=None, alias="discordId")
    count: Any = 1


class SetRequest(BaseModel):
    """Overwrite a user's referral state."""
    model_config = ConfigDict(populate_by_name=True)

    discord_id: Any = Field(default=None, alias="discordId")
    referrals: Any = 0
    rewarded: Any = 0


# ==================== HELPERS ====================


def _is_authorized(request: Request, expected: str) -> bool:
    expected = (expected or "").strip()
    got = str(request.query_params.get("key") or "").strip()
    if not expected:
        return False
    return hmac.compare_digest(got.encode("utf-8"), expected.encode("utf-8"))


def _unauthorized() -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "Unauthorized"})


def _bad_request(error: str) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": error})


def _server_error() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"ok": False, "error": "server_error"},
    )


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


# ==================== ENDPOINTS ====================


@router.post("/test/credit")
@limiter.limit("30/minute")
def admin_credit(
    request: Request,
    body: CreditRequest | None = None,
    services: Services = Depends(get_services),
):
    """Add ``count`` referrals to a user."""
    if not _is_authorized(request, services.settings.admin_test_key):
        return _unauthorized()

    body = body or CreditRequest()
    if not body.discord_id:
        return _bad_request("missing discordId")

    count = _as_number(1 if body.count is None else body.count)
    if count is None or count <= 0 or not count.is_integer():
        return _bad_request("invalid count")

    user_id = str(body.discord_id)
    try:
        user = services.store.add_referrals(user_id, int(count))
    except Exception as e:
        logger.error("admin_credit_failed", user_id=user_id, error=str(e))
        return _server_error()

    logger.info("admin_credit", user_id=user_id, count=int(count))
    return {"ok": True, "user": user.to_dict()}


@router.post("/test/set")
@limiter.limit("30/minute")
def admin_set(
    request: Request,
    body: SetRequest | None = None,
    services: Services = Depends(get_services),
):
    """Set a user's referral count and reward flag."""
    if not _is_authorized(request, services.settings.admin_test_key):
        return _unauthorized()

    body = body or SetRequest()
    if not body.discord_id:
        return _bad_request("missing discordId")

    referrals = _as_number(0 if body.referrals is None else body.referrals)
    if referrals is None or referrals < 0 or not referrals.is_integer():
        return _bad_request("invalid referrals")

    rewarded = _as_number(0 if body.rewarded is None else body.rewarded)
    if rewarded not in (0, 1):
        return _bad_request("invalid rewarded")

    user_id = str(body.discord_id)
    try:
        user = services.store.set_referrals(user_id, int(referrals), rewarded == 1)
    except Exception as e:
        logger.error("admin_set_failed", user_id=user_id, error=str(e))
        return _server_error()

    return {"ok": True, "user": user.to_dict()}


@router.get("/debug/user")
@limiter.limit("60/minute")
def admin_debug_user(request: Request, services: Services = Depends(get_services)):
    """Read-only lookup of a user's referral state."""
    if not _is_authorized(request, services.settings.admin_test_key):
        return _unauthorized()

    user_id = str(request.query_params.get("discordId") or "")
    if not user_id:
        return _bad_request("missing discordId")

    try:
        user = services.store.get_user(user_id)
    except Exception as e:
        logger.error("admin_debug_failed", user_id=user_id, error=str(e))
        return _server_error()

    if user is None:
        return {"ok": True, "user": {"user_id": user_id, "referral_count": 0, "rewarded": False}}
    return {"ok": True, "user": user.to_dict()}
