import asyncio

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from civic_reporter.api.deps import client_id
from civic_reporter.core.config import settings
from civic_reporter.core.errors import error_payload
from civic_reporter.core.headers import SECURITY_HEADERS
from civic_reporter.core.logging import get_logger
from civic_reporter.services import rate_limit

logger = get_logger("civic_reporter.http")


def is_upload_request(request: Request) -> bool:
    return request.method == "POST" and request.url.path.rstrip("/") == f"{settings.API_V1_STR}/reports"


def install_middleware(app: FastAPI) -> None:
    # Registered last-to-first: headers outermost, then rate limit, then timeout.
    @app.middleware("http")
    async def request_timeout(request: Request, call_next):
        timeout = settings.UPLOAD_TIMEOUT_SECONDS if is_upload_request(request) else settings.REQUEST_TIMEOUT_SECONDS
        try:
            return await asyncio.wait_for(call_next(request), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Request timed out: {request.method} {request.url.path}, timeout={timeout}s")
            return JSONResponse(
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                content=error_payload("Request timed out"),
            )

    @app.middleware("http")
    async def general_rate_limit(request: Request, call_next):
        if request.url.path.startswith(f"{settings.API_V1_STR}/"):
            allowed = await rate_limit.allow(
                "api",
                client_id(request),
                limit=settings.RATE_LIMIT_REQUESTS,
                window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
            )
            if not allowed:
                return JSONResponse(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    content=error_payload("Too many requests, please try again later"),
                )
        return await call_next(request)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response
