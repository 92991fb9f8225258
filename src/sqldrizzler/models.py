from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from collections.abc import Callable


def calculate_percentage(count: int, total: int) -> float:
    if total == 0:
        return 0.0
    return count / total * 100


@dataclass(frozen=True)
class ExecutionOutcome:
    worker_id: int
    duration: float
    succeeded: bool
    query: str
    error: str | None = None


@dataclass
class WorkerStats:
    total_executions: int = 0
    total_duration: float = 0.0
    min_duration: float | None = None
    max_duration: float | None = None
    query_at_min: str = ""
    query_at_max: str = ""

    @property
    def average_duration(self) -> float | None:
        if not self.total_executions:
            return None
        return self.total_duration / self.total_executions


@dataclass
class GlobalStats:
    total_executions: int = 0
    success_count: int = 0
    failure_count: int = 0
    min_duration: float | None = None
    max_duration: float | None = None
    running_average_duration: float = 0.0
    per_worker: dict[int, WorkerStats] = field(default_factory=dict)
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def failure_percentage(self) -> float:
        return calculate_percentage(self.failure_count, self.total_executions)

    @property
    def success_percentage(self) -> float:
        return calculate_percentage(self.success_count, self.total_executions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total_executions,
            "success": self.success_count,
            "errors": self.failure_count,
            "mean": self.running_average_duration if self.total_executions else None,
            "min": self.min_duration,
            "max": self.max_duration,
            "error_rate": self.failure_percentage / 100,
            "start_time": self.start_time.isoformat(),
            "per_worker": {
                worker_id: {
                    "total": ws.total_executions,
                    "mean": ws.average_duration,
                    "min": ws.min_duration,
                    "max": ws.max_duration,
                }
                for worker_id, ws in sorted(self.per_worker.items())
            },
        }


# Timeline: worker_id -> list of (start, end, succeeded)
TimelineType = dict[int, list[tuple[float, float, bool]]]

# Metrics callback: callable accepting stats dict
MetricsCallback = Callable[[dict[str, Any]], None]
