from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from .config import settings


def get_client_address(request: Request) -> str:
    """The platform usually reaches the broker through a router; key on the original caller."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(key_func=get_client_address)
limit_param = f"{settings.RATE_LIMIT_MIN}/minute"
