"""Structured logging middleware for FastAPI requests."""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from scribe.utils import AuthenticationError, decode_access_token

logger = logging.getLogger("scribe.middleware.structured")

COLOR_RESET = "\u001b[0m"

_STATUS_COLORS = (
    (500, "\u001b[31m"),
    (400, "\u001b[33m"),
    (200, "\u001b[32m"),
)
_DEFAULT_COLOR = "\u001b[36m"

_CONSOLE_FIELDS = ("method", "path", "status_code", "duration_ms", "user_id", "job_id", "stream")


def _color_for(status_code: int) -> str:
    for floor, color in _STATUS_COLORS:
        if status_code >= floor:
            return color
    return _DEFAULT_COLOR


def _bearer_user_id(request: Request) -> Optional[str]:
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    try:
        return decode_access_token(token).sub
    except AuthenticationError:
        return None


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """One colourised console line per request, plus the JSON record at debug level.

    Event-stream responses are logged when their headers are sent; the line is
    marked ``stream=True`` and its duration covers only the handshake.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        started = time.perf_counter()
        record: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
            "user_id": _bearer_user_id(request),
        }

        try:
            response = await call_next(request)
        except Exception as exc:
            record.update(status_code=500, duration_ms=self._elapsed_ms(started), error=repr(exc))
            logger.exception(self._console_line(record))
            raise

        record.update(
            status_code=response.status_code,
            duration_ms=self._elapsed_ms(started),
            job_id=request.path_params.get("job_id"),
            stream=response.headers.get("content-type", "").startswith("text/event-stream"),
        )
        logger.info(self._console_line(record))
        logger.debug(json.dumps(record, default=str, separators=(",", ":")))
        return response

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 2)

    @staticmethod
    def _console_line(record: dict[str, Any]) -> str:
        message = ", ".join(
            f"{name}={record[name]}" for name in _CONSOLE_FIELDS if record.get(name) not in (None, False)
        )
        return f"{_color_for(record.get('status_code') or 0)}{message}{COLOR_RESET}"
