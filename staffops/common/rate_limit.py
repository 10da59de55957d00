"""Rate limiting configuration using slowapi.

Report generation reads whole record sets and renders documents, so the
report routes carry an explicit per-client limit on top of the default.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from staffops.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["60/minute"],
    enabled=settings.RATE_LIMIT_ENABLED,
)
