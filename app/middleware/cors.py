"""
CORS Middleware - lets the static UBGHub site call the API from the browser.

Only origins listed in CORS_ALLOWED_ORIGINS get CORS headers. Credentials are
allowed so the session cookie travels with cross-origin requests, which is
also why the allowed origin is echoed back instead of "*".

Usage:
    app.add_middleware(
        CORSMiddleware,
        allowed_origins=settings.CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
    )
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_METHODS = ("GET", "POST", "OPTIONS", "HEAD")
DEFAULT_HEADERS = ("Accept", "Content-Type", "Authorization", "X-Request-ID")


class CORSMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        allowed_origins: list[str] | None = None,
        allow_credentials: bool = True,
        allow_methods: list[str] | None = None,
        allow_headers: list[str] | None = None,
        max_age: int = 600,
    ):
        super().__init__(app)
        self.allowed_origins = frozenset(o.rstrip("/") for o in allowed_origins or ())
        self.allow_credentials = allow_credentials
        self.preflight_headers = {
            "Access-Control-Allow-Methods": ", ".join(allow_methods or DEFAULT_METHODS),
            "Access-Control-Allow-Headers": ", ".join(allow_headers or DEFAULT_HEADERS),
            "Access-Control-Max-Age": str(max_age),
        }
        logger.info("CORS configured", allowed_origins=sorted(self.allowed_origins))

    def _origin_headers(self, origin: str) -> dict[str, str]:
        headers = {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
        if self.allow_credentials:
            headers["Access-Control-Allow-Credentials"] = "true"
        return headers

    async def dispatch(self, request, call_next):
        origin = request.headers.get("origin")
        allowed = origin is not None and origin in self.allowed_origins
        is_preflight = request.method == "OPTIONS" and "access-control-request-method" in request.headers

        if is_preflight:
            if not allowed:
                logger.warning("CORS preflight rejected", origin=origin)
                return Response(status_code=403, content="Origin not allowed")
            return Response(
                status_code=204, headers={**self._origin_headers(origin), **self.preflight_headers}
            )

        response = await call_next(request)
        if allowed:
            response.headers.update(self._origin_headers(origin))
        elif origin:
            logger.debug("CORS headers withheld", origin=origin, path=request.url.path)
        return response
