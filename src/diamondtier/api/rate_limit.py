"""Rate limiting and client address resolution for the API."""

from fastapi import Request
from slowapi import Limiter

from diamondtier.settings import settings


def client_ip(request: Request) -> str:
    """Best-known client address.

    Behind the hosting proxy every request arrives from the proxy itself, so
    the forwarded headers are used when TRUST_PROXY_HEADERS is set. They are
    client-controlled otherwise and ignored.
    """
    if settings.trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
        real_ip = forwarded or request.headers.get("x-real-ip")
        if real_ip:
            return real_ip
    return request.client.host if request.client else "unknown"


# Shared limiter for click tracking, intake and login endpoints; off outside production
limiter = Limiter(
    key_func=client_ip,
    default_limits=["200/minute"],
    storage_uri="memory://",
    enabled=settings.env == "production",
)
