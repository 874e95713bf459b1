"""
HTTP plumbing around the /environments endpoint: security headers, request
logging and bearer-token authentication.
"""

import hmac
import time
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI, HTTPException, Request
from starlette.responses import Response

from .logging_utils import logger
from .settings import Settings

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
}

LOGGED_PATHS = ("/environments",)


def _mask_token(t: str) -> str:
    if not t or len(t) < 8:
        return "***"
    return t[:4] + "…" + t[-4:]


def extract_bearer_token(header: Optional[str]) -> str:
    prefix = "Bearer "
    if not header or not header.startswith(prefix):
        return ""
    return header[len(prefix):].strip()


def token_matches(token: str, expected: str) -> bool:
    # An unset expected token rejects everything.
    if not expected:
        return False
    return hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))


def bearer_auth(settings: Settings) -> Callable[[Request], None]:
    """Build a FastAPI dependency enforcing the configured bearer token."""

    def require_bearer(request: Request) -> None:
        if not settings.enable_authentication:
            return
        token = extract_bearer_token(request.headers.get("Authorization"))
        client = request.client.host if request.client else ""
        if not token:
            logger.warn("request_missing_bearer_token", method=request.method, path=request.url.path, remote_addr=client)
            raise HTTPException(status_code=401, detail="Unauthorized: Bearer token required")
        if not token_matches(token, settings.bearer_token):
            logger.warn(
                "invalid_bearer_token",
                method=request.method,
                path=request.url.path,
                remote_addr=client,
                token=_mask_token(token),
            )
            raise HTTPException(status_code=401, detail="Unauthorized: Invalid token")

    return require_bearer


def install_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def security_headers(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        return response

    @app.middleware("http")
    async def request_logging(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if request.url.path not in LOGGED_PATHS:
            return await call_next(request)
        start = time.monotonic()
        response = await call_next(request)
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return response
