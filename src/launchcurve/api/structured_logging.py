# src/launchcurve/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from launchcurve.runtime.event_log import log_event

Json = Dict[str, Any]

_OFF = {"0", "false", "no", "n", "off"}
_ON = {"1", "true", "yes", "y", "on"}


def configure_structured_logging(level_name: Optional[str] = None) -> None:
    """Route stdlib logging to stdout as bare JSONL messages.

    Level comes from the argument, else LAUNCHCURVE_LOG_LEVEL (default INFO).
    Calling again only adjusts the level.
    """
    name = (level_name or os.environ.get("LAUNCHCURVE_LOG_LEVEL") or "INFO").strip().upper()
    level = getattr(logging, name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    if getattr(root, "_launchcurve_configured", False):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.handlers = [handler]
    setattr(root, "_launchcurve_configured", True)


@dataclass(frozen=True)
class RequestLogSettings:
    enabled: bool = True
    headers: Tuple[str, ...] = ()
    slow_ms: int = 0

    @classmethod
    def from_env(cls) -> "RequestLogSettings":
        enabled = (os.environ.get("LAUNCHCURVE_LOG_REQUESTS") or "1").strip().lower() not in _OFF
        with_headers = (os.environ.get("LAUNCHCURVE_LOG_REQUEST_HEADERS") or "").strip().lower() in _ON
        try:
            slow_ms = max(0, int((os.environ.get("LAUNCHCURVE_SLOW_REQUEST_MS") or "0").strip()))
        except ValueError:
            slow_ms = 0
        headers = ("user-agent", "content-type", "x-forwarded-for") if with_headers else ()
        return cls(enabled=enabled, headers=headers, slow_ms=slow_ms)


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` line per request.

    5xx responses and requests slower than LAUNCHCURVE_SLOW_REQUEST_MS are
    logged at WARNING. The token path parameter is copied into the line so
    trade traffic can be grepped per token.
    """

    def __init__(self, app, settings: Optional[RequestLogSettings] = None) -> None:
        super().__init__(app)
        self._settings = settings or RequestLogSettings.from_env()
        self._logger = logging.getLogger("launchcurve.http")

    async def dispatch(self, request: Request, call_next):
        if not self._settings.enabled:
            return await call_next(request)

        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        status = 500
        err: Optional[str] = None
        try:
            response = await call_next(request)
            status = int(response.status_code)
            response.headers.setdefault("x-request-id", request_id)
            return response
        except Exception as e:
            err = f"{type(e).__name__}: {e}"
            raise
        finally:
            elapsed = int((time.monotonic() - started) * 1000)
            slow = bool(self._settings.slow_ms) and elapsed >= self._settings.slow_ms
            fields: Json = {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "duration_ms": elapsed,
            }
            token = request.path_params.get("token")
            if token:
                fields["token"] = token
            if self._settings.headers:
                fields["headers"] = {k: request.headers[k] for k in self._settings.headers if k in request.headers}
            if err:
                fields["error"] = err
            if slow:
                fields["slow"] = True
            level = logging.WARNING if status >= 500 or slow else logging.INFO
            log_event(self._logger, "http_request", level=level, **fields)
