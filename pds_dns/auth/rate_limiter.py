from slowapi import Limiter
from slowapi.util import get_remote_address
from pds_dns.core.config import settings

# Default limit per client IP; challenge issuance gets a tighter one at the route
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT],
    enabled=not settings.TESTING,
)

CHALLENGE_LIMIT = "10/minute"
