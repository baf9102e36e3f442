import time
import logging
from typing import Dict, List
from fastapi import Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp
from .config import settings
from .exceptions import CORS_HEADERS, create_error_response

logger = logging.getLogger(__name__)

class RateLimitMiddleware(BaseHTTPMiddleware):
    WINDOW_SECONDS = 60

    def __init__(self, app: ASGIApp, rate_limit: int = None):
        super().__init__(app)
        self.requests: Dict[str, List[float]] = {}
        self.rate_limit = rate_limit or settings.RATE_LIMIT_PER_MINUTE
        self._last_sweep = time.time()

    def _prune(self, client_ip: str, current_time: float) -> List[float]:
        recent = [
            req_time for req_time in self.requests.get(client_ip, [])
            if current_time - req_time < self.WINDOW_SECONDS
        ]
        if recent:
            self.requests[client_ip] = recent
        else:
            self.requests.pop(client_ip, None)
        return recent

    def _sweep(self, current_time: float) -> None:
        """Forget clients with no request inside the window."""
        if current_time - self._last_sweep < self.WINDOW_SECONDS:
            return
        self._last_sweep = current_time
        for client_ip in list(self.requests):
            self._prune(client_ip, current_time)

    async def dispatch(self, request: Request, call_next):
        # Preflight requests are never counted
        if request.method == "OPTIONS":
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"

        current_time = time.time()
        self._sweep(current_time)
        recent = self._prune(client_ip, current_time)

        if len(recent) >= self.rate_limit:
            logger.warning(f"Rate limit exceeded for IP: {client_ip}")
            return JSONResponse(
                status_code=429,
                content=create_error_response("Rate limit exceeded. Please try again later.", "RATE_LIMITED"),
                headers=CORS_HEADERS,
            )

        self.requests.setdefault(client_ip, []).append(current_time)
        return await call_next(request)

class PreflightCORSMiddleware(CORSMiddleware):
    """CORS handling that answers every preflight with ``200 ok``.

    Requested headers are echoed back so clients sending extra headers are
    not refused.
    """

    def preflight_response(self, request_headers: Headers) -> Response:
        headers = dict(CORS_HEADERS)
        headers["Access-Control-Allow-Methods"] = "POST, OPTIONS"
        requested = request_headers.get("access-control-request-headers")
        if requested:
            headers["Access-Control-Allow-Headers"] = requested
        return PlainTextResponse("ok", headers=headers)

class SecurityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Responses carry codes and tokens
        response.headers["Cache-Control"] = "no-store"

        return response

class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        client_host = request.client.host if request.client else "unknown"
        logger.info(f"Request: {request.method} {request.url.path} from {client_host}")

        response = await call_next(request)

        duration = time.time() - start_time
        logger.info(f"Response: {response.status_code} in {duration:.3f}s")

        return response

class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled error: {str(e)}", exc_info=True)
            message = f"Internal server error: {str(e)}" if settings.DEBUG else "Internal server error"
            return JSONResponse(
                status_code=500,
                content=create_error_response(message, "INTERNAL_ERROR"),
                headers=CORS_HEADERS,
            )
