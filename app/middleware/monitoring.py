"""
Request monitoring and structured logging.

Every request gets an id (echoed in X-Request-ID), a duration and the number
and total time of the database queries it ran. Slow requests and slow queries
are logged as warnings with that context attached.
"""

import time
import uuid
import logging
import json
from typing import Callable, Optional
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.config import settings

logger = logging.getLogger(__name__)

# Context variables for request-scoped data
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
db_metrics_ctx: ContextVar[Optional["DatabaseMetrics"]] = ContextVar("db_metrics", default=None)

# Long-lived streams; timing them would flag every one as slow
UNTIMED_PATH_SUFFIXES = ("/events",)


@dataclass
class DatabaseMetrics:
    """Query count and time for a single request."""
    query_count: int = 0
    total_duration_ms: float = 0.0
    slow_queries: list = field(default_factory=list)

    def add_query(self, duration_ms: float, statement: str = ""):
        self.query_count += 1
        self.total_duration_ms += duration_ms

        if duration_ms > settings.SLOW_QUERY_THRESHOLD_MS:
            self.slow_queries.append({
                "duration_ms": round(duration_ms, 2),
                "statement": statement[:500] if statement else "",
            })


def setup_db_event_listeners(engine: AsyncEngine):
    """
    Time every statement run on the engine.

    Call once at startup. The start time is stashed on the connection's info
    dict so concurrent connections never share a timer.
    """

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    @event.listens_for(engine.sync_engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        starts = conn.info.get("query_start_time")
        if not starts:
            return
        duration_ms = (time.perf_counter() - starts.pop()) * 1000

        db_metrics = db_metrics_ctx.get()
        if db_metrics:
            db_metrics.add_query(duration_ms, statement)

        if duration_ms > settings.SLOW_QUERY_THRESHOLD_MS:
            logger.warning(
                "Slow query detected",
                extra={
                    "request_id": request_id_ctx.get() or "no-request",
                    "duration_ms": round(duration_ms, 2),
                    "statement": statement[:500],
                    "event_type": "slow_query"
                }
            )

    logger.info("Database query timing listeners registered")


class MonitoringMiddleware(BaseHTTPMiddleware):
    """
    Logs one line per API request.

    The line carries the request id, the signed-in user (when a route
    resolved one), the status code, duration and database query totals.
    Requests over SLOW_REQUEST_THRESHOLD_MS are logged as warnings along
    with their slow queries.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_id_ctx.set(request_id)
        db_metrics = DatabaseMetrics()
        db_metrics_ctx.set(db_metrics)

        started = time.perf_counter()
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Unhandled error on {request.method} {path}",
                extra={
                    **self._context(request, request_id, started),
                    "error": str(e),
                    "event_type": "request_error",
                }
            )
            raise

        response.headers["X-Request-ID"] = request_id
        if path.endswith(UNTIMED_PATH_SUFFIXES):
            return response

        context = self._context(request, request_id, started)
        context.update({
            "status_code": response.status_code,
            "db_query_count": db_metrics.query_count,
            "db_query_duration_ms": round(db_metrics.total_duration_ms, 2),
            "event_type": "request_complete",
        })
        response.headers["X-Response-Time"] = f"{context['duration_ms']:.2f}ms"

        if context["duration_ms"] > settings.SLOW_REQUEST_THRESHOLD_MS:
            context["slow_queries"] = db_metrics.slow_queries
            context["event_type"] = "slow_request"
            logger.warning(f"Slow request: {request.method} {path}", extra=context)
        elif settings.DEBUG or path.startswith(settings.API_PREFIX):
            logger.info(
                f"{request.method} {path} {response.status_code}",
                extra=context
            )

        return response

    @staticmethod
    def _context(request: Request, request_id: str, started: float) -> dict:
        return {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "user": getattr(request.state, "user_email", None),
            "client_ip": request.client.host if request.client else "unknown",
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
        }


# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class StructuredJsonFormatter(logging.Formatter):
    """One JSON object per log line, including any `extra` fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_ctx.get()
        if request_id:
            log_data["request_id"] = request_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_structured_logging(log_level: str = "INFO", json_format: bool = True):
    """
    Configure application-wide logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, use JSON formatting; otherwise use standard format
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    if json_format:
        console_handler.setFormatter(StructuredJsonFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
                defaults={"request_id": "no-request"}
            )
        )

    root_logger.addHandler(console_handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
