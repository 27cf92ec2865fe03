"""
Request logging middleware with correlation IDs.

Each request gets a short id (or keeps a well-formed X-Request-ID sent by
the client) that is stored in a context variable for the duration of the
request, so every log line of one cleanup pipeline run can be grouped.
"""
import logging
import re
import time
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"
PROCESS_TIME_HEADER = "X-Process-Time"
_CLIENT_REQUEST_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

logger = logging.getLogger(__name__)


def get_request_id() -> str:
    return request_id_var.get()


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "-"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Assigns the request id, logs start/end with timing and echoes the id back"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = incoming if _CLIENT_REQUEST_ID.match(incoming) else uuid.uuid4().hex[:8]
        token = request_id_var.set(request_id)

        path = request.url.path
        start_time = time.perf_counter()
        logger.info(
            f"[{request_id}] → {request.method} {path}",
            extra={"method": request.method, "path": path, "client_ip": _client_ip(request), "phase": "request_start"},
        )

        try:
            try:
                response = await call_next(request)
            except Exception as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.error(
                    f"[{request_id}] ✗ {type(e).__name__}: {str(e)[:100]} ({duration_ms:.0f}ms)",
                    extra={"duration_ms": round(duration_ms), "phase": "request_error"},
                    exc_info=True,
                )
                raise

            duration_ms = (time.perf_counter() - start_time) * 1000
            # 4xx/5xx are answered deliberately by the error handlers; surface them a level up
            level = logging.INFO if response.status_code < 400 else logging.WARNING
            logger.log(
                level,
                f"[{request_id}] ← {response.status_code} {path} ({duration_ms:.0f}ms)",
                extra={"status_code": response.status_code, "duration_ms": round(duration_ms), "phase": "request_end"},
            )
        finally:
            # only after the end line, so it still carries the id
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[PROCESS_TIME_HEADER] = f"{duration_ms / 1000:.3f}"
        return response


class RequestLoggerAdapter(logging.LoggerAdapter):
    """Prefixes messages with the current request id, for services inside the pipeline"""

    def process(self, msg, kwargs):
        request_id = get_request_id()
        return (f"[{request_id}] {msg}" if request_id else msg), kwargs


def get_logger(name: str) -> RequestLoggerAdapter:
    return RequestLoggerAdapter(logging.getLogger(name), {})
