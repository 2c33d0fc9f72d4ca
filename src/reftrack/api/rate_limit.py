"""Rate limiting configuration for the reftrack API."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from reftrack.settings import settings

# Single shared limiter instance - disabled in non-production environments
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=settings.is_production,
)
