"""
Structured JSON logging for the relay.

Every log line carries a `request_id` while one is bound: the middleware
binds one per HTTP request and the viewer feed binds one per WebSocket
session. Tasks started inside a session (the subscription reader and
consumer) copy the context, so their warnings carry the session's id too.
"""

import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from pythonjsonlogger import jsonlogger

from smsrelay.metrics import record_http_request

# Correlation id for the current HTTP request or viewer session
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

LOG_FORMAT = "%(ts)s %(level)s %(name)s %(message)s"


@contextmanager
def correlation_id(value: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation id (generated if not given) for the enclosed code."""
    value = value or str(uuid.uuid4())
    token = request_id_ctx.set(value)
    try:
        yield value
    finally:
        request_id_ctx.reset(token)


class RelayJsonFormatter(jsonlogger.JsonFormatter):
    """JSON lines with an ISO-8601 UTC `ts`, `level` and the bound `request_id`."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("ts"):
            log_record["ts"] = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        log_record["level"] = record.levelname

        bound = request_id_ctx.get()
        if bound and "request_id" not in log_record:
            log_record["request_id"] = bound


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Send all application and uvicorn logs to stdout as JSON.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(RelayJsonFormatter(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers = [handler]

    for name in ("uvicorn", "uvicorn.error"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = [handler]
        uvicorn_logger.propagate = False

    # One line per request comes from RequestLoggingMiddleware instead
    logging.getLogger("uvicorn.access").disabled = True

    return root


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every HTTP request as one JSON line and record its metrics.

    Keys: ts, level, request_id, method, path, status, latency_ms, plus
    message_id and result for /webhook calls. The id is echoed back in the
    X-Request-ID header. WebSocket connections bypass this middleware;
    the viewer feed binds its own id.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        with correlation_id() as request_id:
            start_time = time.time()
            response = await call_next(request)
            latency_seconds = time.time() - start_time
            response.headers["X-Request-ID"] = request_id

            # Exclude /metrics to avoid self-instrumentation noise
            if request.url.path != "/metrics":
                record_http_request(
                    method=request.method,
                    path=request.url.path,
                    status=response.status_code,
                    latency_seconds=latency_seconds
                )

            log_data = {
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "latency_ms": round(latency_seconds * 1000, 2),
            }
            log_data.update(getattr(request.state, "webhook_log_data", {}))

            if response.status_code >= 500:
                level = logging.ERROR
            elif response.status_code >= 400:
                level = logging.WARNING
            else:
                level = logging.INFO
            logging.getLogger("smsrelay.requests").log(level, "Request completed", extra=log_data)

            return response


def log_webhook_data(request: Request, message_id: Optional[str] = None, result: Optional[str] = None):
    """
    Attach the webhook's message id and outcome to the request log line.
    """
    webhook_data = {}
    if message_id is not None:
        webhook_data["message_id"] = message_id
    if result is not None:
        webhook_data["result"] = result
    request.state.webhook_log_data = webhook_data
