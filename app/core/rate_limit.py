"""Shared slowapi limiter.

Counters live in ``settings.rate_limit_storage_uri``. The default in-memory
store is only correct for a single instance; point it at a shared store
(e.g. ``redis://host:6379``) when running several replicas.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.core.config import settings
from app.core.utils import get_client_ip


def user_or_ip_key(request: Request) -> str:
    """Key authenticated requests by user id, anonymous ones by client address."""
    user_id = getattr(request.state, "user_id", None)
    if user_id is not None:
        return f"user:{user_id}"
    return get_client_ip(request) or get_remote_address(request)


limiter = Limiter(
    key_func=user_or_ip_key,
    storage_uri=settings.rate_limit_storage_uri,
    strategy="fixed-window",
    enabled=settings.rate_limit_enabled,
)
