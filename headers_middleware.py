"""Response header policy: long-lived caching for images and static assets,
plus the security headers sent on every response."""
from __future__ import annotations

import re

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"

_CACHEABLE_PATH = re.compile(r"\.(svg|jpe?g|png|webp|avif|ico)$", re.IGNORECASE)

SECURITY_HEADERS = {
    "X-DNS-Prefetch-Control": "on",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}


def is_cacheable_asset(path: str, static_prefix: str = "/static/") -> bool:
    return path.startswith(static_prefix) or bool(_CACHEABLE_PATH.search(path))


class CacheControlMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, static_prefix: str = "/static/") -> None:  # type: ignore[override]
        super().__init__(app)
        self.static_prefix = static_prefix

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:  # type: ignore[override]
        response = await call_next(request)
        if response.status_code < 400 and is_cacheable_asset(request.url.path, self.static_prefix):
            response.headers["Cache-Control"] = IMMUTABLE_CACHE_CONTROL
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:  # type: ignore[override]
        response = await call_next(request)
        for key, value in SECURITY_HEADERS.items():
            response.headers.setdefault(key, value)
        return response
