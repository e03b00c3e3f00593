from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

# Shared by main.py and the routers that decorate submission endpoints
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["100/minute"],
    enabled=settings.RATE_LIMIT_ENABLED,
)
