"""Per-request identifiers and span timing."""

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from cuid2 import cuid_wrapper

from app.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()

# Returned by end_span for a span that was never started.
MISSING_SPAN_DURATION = -1.0
DEFAULT_SLOW_SPAN_WARNING_MS = 1000.0


def generate_request_id() -> str:
    """Generate a CUID-based request ID used to correlate log lines."""
    return f"req-{cuid()}"


class RequestTrace:
    """Timing context for a single request.

    Spans are keyed by name and local to this trace, so concurrent requests
    never share timing state.
    """

    def __init__(
        self,
        request_id: str | None = None,
        slow_span_warning_ms: float = DEFAULT_SLOW_SPAN_WARNING_MS,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """Initialize a trace and start its overall clock.

        Args:
            request_id: Identifier to reuse (defaults to a fresh one)
            slow_span_warning_ms: Spans longer than this are logged as warnings
            clock: Monotonic clock returning seconds
        """
        self.request_id = request_id or generate_request_id()
        self.started_at = datetime.now(UTC)
        self.slow_span_warning_ms = slow_span_warning_ms
        self._clock = clock
        self._start = clock()
        self._open_spans: dict[str, float] = {}
        self.spans: dict[str, float] = {}

    def start_span(self, name: str) -> None:
        """Start timing the span ``name``.

        Raises:
            RuntimeError: If the span is already open
        """
        if name in self._open_spans:
            raise RuntimeError(f"Span {name!r} already started for request {self.request_id}")
        self._open_spans[name] = self._clock()

    def end_span(self, name: str) -> float:
        """Finish the span ``name`` and return its duration in milliseconds."""
        started = self._open_spans.pop(name, None)
        if started is None:
            logger.debug(f"end_span called for unknown span {name!r} in request {self.request_id}")
            return MISSING_SPAN_DURATION

        duration_ms = max(0.0, (self._clock() - started) * 1000)
        self.spans[name] = duration_ms

        if duration_ms > self.slow_span_warning_ms:
            logger.warning(f"Slow stage {name} for request {self.request_id}: took {duration_ms:.2f}ms")
        else:
            logger.debug(f"{name} for request {self.request_id} took {duration_ms:.2f}ms")

        return duration_ms

    @contextmanager
    def span(self, name: str) -> Iterator[None]:
        """Time the enclosed block, ending the span on every exit path."""
        self.start_span(name)
        try:
            yield
        finally:
            self.end_span(name)

    def elapsed_ms(self) -> float:
        """Milliseconds since the trace was created."""
        return max(0.0, (self._clock() - self._start) * 1000)

    def as_dict(self) -> dict[str, Any]:
        """Return the trace as a dictionary."""
        return {
            "request_id": self.request_id,
            "started_at": self.started_at.isoformat(),
            "elapsed_ms": round(self.elapsed_ms(), 2),
            "spans": {name: round(duration, 2) for name, duration in self.spans.items()},
        }
