from fastapi import Depends, Header, HTTPException, Response, Security
from fastapi.security.api_key import APIKeyHeader

from ..core.config import get_settings
from ..services.rate_limit import RateLimiter, get_rate_limiter

settings = get_settings()
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def verify_api_key(api_key: str | None = Security(api_key_header)) -> None:
    """
    Simple header-based API key authentication.

    - In dev, if API_AUTH_KEY is not set, auth is skipped.
    - Otherwise, require X-API-Key == API_AUTH_KEY.
    """
    expected = settings.API_AUTH_KEY

    if settings.ENV == "dev" and not expected:
        return

    if not expected:
        raise HTTPException(status_code=401, detail="API key not configured")

    if api_key != expected:
        raise HTTPException(status_code=401, detail="Invalid API key")


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """
    Caller identity, as asserted by the authenticating gateway in front of
    the API.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def rate_limited(scope: str, limit_setting: str):
    """
    Dependency factory: per-user sliding-window limit for one endpoint group.
    Sets X-RateLimit-Remaining, or answers 429 with Retry-After.
    """

    def dependency(
        response: Response,
        user_id: str = Depends(get_current_user_id),
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> None:
        limit = getattr(get_settings(), limit_setting)
        result = limiter.check(scope, user_id, limit)
        if not result.allowed:
            raise HTTPException(
                status_code=429,
                detail="Too many requests",
                headers={"Retry-After": str(result.retry_after_seconds())},
            )
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)

    return dependency
