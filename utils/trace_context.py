import time
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode

tracer = trace.get_tracer(__name__)

LATENCY_BUCKETS = (
    (100, "<100ms"),
    (300, "100-300ms"),
    (1000, "300ms-1s"),
    (3000, "1-3s"),
)


class TraceContext:
    """
    Span around one unit of realtime work (typically a tool call), tagged with
    the session and conversation item it belongs to.

    Usage::

        with TraceContext("realtime.tool.lookup", session_id=sid, item_id=item.id) as span:
            ...
    """

    def __init__(
        self,
        name: str,
        session_id: Optional[str] = None,
        item_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.name = name
        self.attributes: Dict[str, Any] = {
            f"realtime.{key}": value
            for key, value in {"session_id": session_id, "item_id": item_id, **(metadata or {})}.items()
            if value is not None
        }
        self._started: Optional[float] = None
        self._span: Optional[Span] = None

    def __enter__(self) -> Span:
        self._started = time.perf_counter()
        self._span = tracer.start_span(name=self.name, attributes=self.attributes)
        return self._span

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        span = self._span
        if span is None:
            return
        elapsed_ms = (time.perf_counter() - self._started) * 1000
        span.set_attribute("realtime.latency_ms", elapsed_ms)
        span.set_attribute("realtime.latency_bucket", latency_bucket(elapsed_ms))
        if exc_val is not None:
            span.record_exception(exc_val)
            span.set_status(Status(StatusCode.ERROR, str(exc_val)))
        span.end()


def latency_bucket(elapsed_ms: float) -> str:
    for upper, label in LATENCY_BUCKETS:
        if elapsed_ms < upper:
            return label
    return ">3s"
