from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from vidnest.config import settings

RATE_LIMIT_DEFAULT = "3000/15minutes"
RATE_LIMIT_AUTH = "100/15minutes"
RATE_LIMIT_UPLOAD = "1000/hour"
RATE_LIMIT_COMMENT = "1000/hour"
RATE_LIMIT_LIKE = "2000/hour"
RATE_LIMIT_SEARCH = "1000/15minutes"


def user_or_ip(request: Request) -> str:
    """Key per signed-in user; falls back to the client address."""
    user = getattr(request.state, "user", None)
    if user:
        return f"user:{user['_id']}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[RATE_LIMIT_DEFAULT],
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limit_enabled,
)
