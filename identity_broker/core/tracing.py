"""Request tracing: correlation IDs, timing and start/outcome log events.

Every broker operation runs inside ``RequestTracer.trace``. The tracer only
observes: the wrapped operation's return value and exception pass through
unchanged.

Log format (one start line and exactly one terminal line per operation):
    login started | correlation_id=... | subject=alice | method=login
    login successful | correlation_id=... | subject=alice | status=success | duration_ms=42
    login failed | correlation_id=... | subject=alice | status=error | error_code=AUTH_FAILED | error_message=... | duration_ms=40
"""
from __future__ import annotations
import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Optional

from .errors import BrokerError, error_code_for
from .models import utcnow

logger = logging.getLogger(__name__)

CANCELLED = "CANCELLED"


@dataclass
class Trace:
    """State of one traced operation; lives for a single request."""

    operation: str
    subject: Optional[str] = None
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=utcnow)
    outcome: Optional[str] = None
    error_code: Optional[str] = None
    duration_ms: Optional[int] = None

    def _context(self) -> str:
        return f"correlation_id={self.correlation_id} | subject={self.subject or '-'}"


class RequestTracer:
    """Opens traced operations and emits their log events."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    @asynccontextmanager
    async def trace(self, operation: str, subject: Optional[str] = None) -> AsyncIterator[Trace]:
        """Trace one operation.

        Usage:
            async with tracer.trace("get_user", subject=user_id) as trace:
                user = await admin.get_user(user_id)
            envelope.success(..., correlation_id=trace.correlation_id)
        """
        current = Trace(operation=operation, subject=subject)
        started = time.perf_counter()
        self.log.info(f"{operation} started | {current._context()} | method={operation}")
        try:
            yield current
        except asyncio.CancelledError:
            self._finish_failed(current, started, CANCELLED, "request cancelled")
            raise
        except Exception as exc:
            if isinstance(exc, BrokerError):
                exc.correlation_id = current.correlation_id
            self._finish_failed(current, started, error_code_for(exc), str(exc) or type(exc).__name__)
            raise
        else:
            current.outcome = "success"
            current.duration_ms = _elapsed_ms(started)
            self.log.info(
                f"{operation} successful | {current._context()} | status=success | duration_ms={current.duration_ms}"
            )

    def _finish_failed(self, current: Trace, started: float, code: str, message: str) -> None:
        current.outcome = "error"
        current.error_code = code
        current.duration_ms = _elapsed_ms(started)
        self.log.warning(
            f"{current.operation} failed | {current._context()} | status=error | "
            f"error_code={code} | error_message={message} | duration_ms={current.duration_ms}"
        )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
