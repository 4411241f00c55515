import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from starlette.responses import Response

from .config import settings
from .routers.classify import router as classify_router
from .routers.health import router as health_router
from .routers.patients import router as patients_router


def scrubbed_path(scope) -> str:
    """Request path with matched path parameters replaced by ``{name}``."""
    path = scope.get("path") or ""
    params = {str(v): k for k, v in (scope.get("path_params") or {}).items()}
    if not params:
        return path
    return "/".join("{" + params[seg] + "}" if seg in params else seg for seg in path.split("/"))


class PHIScrubbedLoggingMiddleware:
    """Log one line per request: method, path, status, duration and request id.

    Patient identifiers travel in paths, so query strings, headers and bodies
    are never logged.
    """

    def __init__(self, app: FastAPI) -> None:
        self.app = app
        logging.basicConfig(
            level=logging.DEBUG if settings.debug else logging.INFO,
            format="%(message)s",
        )
        self.logger = logging.getLogger("labdesk.backend")

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        start = time.perf_counter()
        seen = {"status": None, "rid": None}

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                seen["status"] = message.get("status", 0)
                for k, v in message.get("headers") or []:
                    if k.decode().lower() == "x-request-id":
                        seen["rid"] = v.decode()
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            self.logger.info(
                {
                    "event": "http_request",
                    "method": scope.get("method"),
                    # Full path with MRNs swapped for their parameter names
                    "path": scrubbed_path(scope),
                    "status": seen["status"],
                    "duration_ms": int((time.perf_counter() - start) * 1000),
                    "request_id": seen["rid"],
                }
            )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Cache-Control", "no-store")
        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Echo an incoming X-Request-ID, or mint a UUID4 hex one."""

    async def dispatch(self, request, call_next):
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex
        response = await call_next(request)
        response.headers.setdefault("X-Request-ID", rid)
        return response


def create_app() -> FastAPI:
    app = FastAPI(title="Labdesk API", version=settings.app_version)
    # httpx logs request URLs at INFO, and data queries filter on mrno
    logging.getLogger("httpx").setLevel(logging.WARNING)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        max_age=600,
    )

    # Request ID before logging so logs can capture the ID
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(PHIScrubbedLoggingMiddleware)

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_hosts())
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(health_router, prefix="/api/v1")
    app.include_router(classify_router, prefix="/api/v1")
    app.include_router(patients_router, prefix="/api/v1")

    @app.get("/", include_in_schema=False)
    async def root(_: Request) -> Response:
        return Response(status_code=204)

    return app


app = create_app()
