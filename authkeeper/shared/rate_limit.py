"""Fixed-window request rate limiting."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from authkeeper.config.settings import settings

# Keyed by client IP. Endpoint classes get their own limit via
# @limiter.limit(...); everything else falls under the default API limit.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit_api],
    storage_uri=settings.rate_limit_storage_uri,
    strategy="fixed-window",
    enabled=settings.rate_limit_enabled,
)

AUTH_LIMIT = settings.rate_limit_auth
REGISTRATION_LIMIT = settings.rate_limit_registration
PASSWORD_RESET_LIMIT = settings.rate_limit_password_reset
