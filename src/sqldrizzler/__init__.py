__all__ = [
    "QueryDrizzler",
    "StatsAggregator",
    "DatabaseConfig",
    "DatabaseHandle",
    "DatabaseUnavailableError",
    "ExecutionOutcome",
    "GlobalStats",
    "WorkerStats",
    "render_report",
    "render_timeline",
]


from .core import QueryDrizzler
from .database import DatabaseConfig, DatabaseHandle, DatabaseUnavailableError
from .metrics import StatsAggregator
from .models import ExecutionOutcome, GlobalStats, WorkerStats
from .rendering import render_report, render_timeline
