from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

ACCESS_LOGGER_NAME = "sds_api.access"
REQUEST_ID_HEADER = "x-request-id"

# request.state attributes copied into the access line when auth set them
STATE_FIELDS = ("user_id", "account_number")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One JSON access line per request, tagged with the signed-in contact."""

    def __init__(self, app, logger: logging.Logger | None = None) -> None:
        super().__init__(app)
        self.logger = logger if logger is not None else logging.getLogger(ACCESS_LOGGER_NAME)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            self._log(self._payload(request, "http_request_error", 500, start), level=logging.ERROR)
            raise

        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        self._log(self._payload(request, "http_request", response.status_code, start), level=level)
        return response

    @staticmethod
    def _payload(request: Request, event: str, status: int, start: float) -> dict[str, object]:
        payload: dict[str, object] = {
            "event": event,
            "request_id": request.state.request_id,
            "method": request.method,
            "path": request.url.path,
            "status": status,
            "duration_ms": int((time.perf_counter() - start) * 1000),
        }
        for field in STATE_FIELDS:
            value = getattr(request.state, field, None)
            if value:
                payload[field] = value
        return payload

    def _log(self, payload: dict[str, object], level: int = logging.INFO) -> None:
        self.logger.log(level, json.dumps(payload, separators=(",", ":")))
