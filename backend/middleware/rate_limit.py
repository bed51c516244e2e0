"""Rate limiting for the public (unauthenticated) onboarding endpoints."""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

# Keyed on client IP; onboarding links are shared by URL only
limiter = Limiter(key_func=get_remote_address)

LINK_VALIDATE_LIMIT = "30/minute"
SUBMIT_LIMIT = "10/minute"
AUTH_LIMIT = "10/minute"


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Too many requests. Please try again later.",
            "retry_after": exc.detail,
        }
    )
