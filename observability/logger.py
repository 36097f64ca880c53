"""
Observability — one JSON line per orchestration event.

Events cover the task lifecycle (started, deduplicated, succeeded, failed),
retry attempts, fallbacks, confirmations, parameter prompts and planner
consultations. Every line carries session_id and trace_id so a turn can
be followed end to end. Ordinary diagnostics stay on module loggers.
"""

import json
import logging
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

logger = logging.getLogger("observability")


def _level(name: str) -> int:
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else logging.INFO


class Observability:
    """Event logger bound to a session and a trace."""

    def __init__(self, session_id: str | None = None, trace_id: str | None = None):
        self.session_id = session_id or str(uuid.uuid4())
        self.trace_id = trace_id or str(uuid.uuid4())

    def log_event(self, event_type: str, payload: dict[str, Any], level: str = "INFO") -> None:
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_id": self.session_id,
            "trace_id": self.trace_id,
            "event": event_type,
            "level": level,
        }
        record.update(payload)
        logger.log(_level(level), json.dumps(record, default=str))

    def task_event(self, event_type: str, task: Any, level: str = "INFO", **extra: Any) -> None:
        """Event about a graph task; ``task`` needs task_id, name and status."""
        fields = {
            "task_id": getattr(task, "task_id", None),
            "capability": getattr(task, "name", None),
            "status": getattr(task, "status", None),
        }
        fields.update(extra)
        self.log_event(event_type, fields, level=level)

    @contextmanager
    def measure(self, operation: str, metadata: dict[str, Any] | None = None) -> Iterator[None]:
        """Time the block and emit an ``execution_metric`` event, even on error."""
        outcome: dict[str, Any] = {"success": False, "error": None}
        started = time.perf_counter()
        try:
            yield
            outcome["success"] = True
        except Exception as exc:
            outcome["error"] = str(exc)
            raise
        finally:
            elapsed = round((time.perf_counter() - started) * 1000, 2)
            self.log_event(
                "execution_metric",
                {"operation": operation, "duration_ms": elapsed, **outcome, **(metadata or {})},
            )

    def span(self, trace_id: str | None = None) -> "Observability":
        return Observability(self.session_id, trace_id or self.trace_id)
