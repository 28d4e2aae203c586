"""ASGI middleware that records a performance sample for every HTTP request.

Framework-agnostic: works with any ASGI server (uvicorn, hypercorn, daphne)
and any ASGI application without requiring a specific web framework.
"""

import fnmatch
import time
import uuid
from collections.abc import Callable, Coroutine
from typing import Any, Protocol

from fleetwatch.core.logs import get_logger, log_exception
from fleetwatch.core.metrics import request
from fleetwatch.core.models import PerformanceSample

logger = get_logger(__name__)

Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]


class PerformanceRecorder(Protocol):
    async def record_performance(self, sample: PerformanceSample) -> None: ...


def _extract_request_id(scope: Scope, header_name: str = "X-Request-ID") -> str:
    """Extract or generate a request ID from ASGI scope headers.

    Searches for the specified header (case-insensitive). If not found,
    generates a new UUID.
    """
    header_bytes = header_name.lower().encode()
    headers: list[tuple[bytes, bytes]] = scope.get("headers", [])
    for name, value in headers:
        if name.lower() == header_bytes:
            return str(value.decode("utf-8", errors="replace"))
    return str(uuid.uuid4())


class RequestMonitoringMiddleware:
    """Times each HTTP request and hands a PerformanceSample to a recorder.

    The recorder is normally a MetricBuffer, so recording is an in-memory
    append and the request path never waits on storage unless the buffer
    reaches capacity. Recording failures are logged and never reach the
    client. The request ID (taken from ``request_id_header`` or generated)
    is echoed back on the response.
    """

    def __init__(
        self,
        app: ASGIApp,
        recorder: PerformanceRecorder,
        service_name: str,
        exclude_paths: list[str] | None = None,
        request_id_header: str = "X-Request-ID",
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application to wrap.
            recorder: Receives one PerformanceSample per request.
            service_name: Service name stamped on every sample.
            exclude_paths: Paths to skip. Supports exact matches and
                          wildcard patterns (e.g., "/internal/*").
            request_id_header: Name of the header to extract request ID from.
        """
        self.app = app
        self.recorder = recorder
        self.service_name = service_name
        self.exclude_paths = exclude_paths or []
        self.request_id_header = request_id_header

    def _path_excluded(self, path: str) -> bool:
        return any(fnmatch.fnmatch(path, pattern) for pattern in self.exclude_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or self._path_excluded(scope["path"]):
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        request_id = _extract_request_id(scope, self.request_id_header)
        captured: dict[str, Any] = {
            "status": None,
            "request_size": 0,
            "response_size": 0,
        }

        async def wrapped_receive() -> dict[str, Any]:
            message = await receive()
            if message["type"] == "http.request":
                captured["request_size"] += len(message.get("body", b""))
            return message

        async def wrapped_send(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                captured["status"] = message["status"]
                headers = list(message.get("headers", []))
                headers.append(
                    (self.request_id_header.lower().encode(), request_id.encode())
                )
                message = {**message, "headers": headers}
            elif message["type"] == "http.response.body":
                captured["response_size"] += len(message.get("body", b""))
            await send(message)

        try:
            await self.app(scope, wrapped_receive, wrapped_send)
        except Exception:
            captured["status"] = 500
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            await self._record(scope, captured, duration_ms)

    async def _record(
        self, scope: Scope, captured: dict[str, Any], duration_ms: float
    ) -> None:
        sample = request(
            self.service_name,
            endpoint=scope["path"],
            method=scope["method"],
            response_time_ms=duration_ms,
            status_code=captured["status"] or 500,
            request_size=captured["request_size"],
            response_size=captured["response_size"],
        )
        try:
            await self.recorder.record_performance(sample)
        except Exception:
            log_exception(
                "Failed to record request performance",
                logger,
                endpoint=sample.endpoint,
                method=sample.method,
            )
