"""Middleware keeping credentials off plain HTTP."""
from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class SecureTransportMiddleware(BaseHTTPMiddleware):
    """Redirect safe HTTP requests to HTTPS and refuse unsafe ones outright.

    A POST carrying a password or session cookie cannot be replayed through a
    redirect without having already crossed the wire in clear text, so those
    are rejected instead.
    """

    def __init__(self, app, https_port: int = 8443):
        super().__init__(app)
        self.https_port = https_port

    async def dispatch(self, request: Request, call_next):
        # X-Forwarded-Proto comes from a TLS-terminating reverse proxy
        scheme = request.headers.get("X-Forwarded-Proto", request.url.scheme)
        if scheme != "http":
            return await call_next(request)

        if request.method.upper() not in SAFE_METHODS:
            return JSONResponse(
                status_code=400,
                content={"success": False, "error": "HTTPS is required", "code": "HTTPS_REQUIRED"},
            )

        host = request.headers.get("X-Forwarded-Host", request.headers.get("Host", "localhost"))
        host = host.split(":")[0]
        https_url = f"https://{host}:{self.https_port}{request.url.path}"
        if request.url.query:
            https_url += f"?{request.url.query}"
        return RedirectResponse(url=https_url, status_code=301)
