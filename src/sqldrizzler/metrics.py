import logging
import threading
from datetime import datetime

from .models import ExecutionOutcome, GlobalStats, MetricsCallback, WorkerStats

logger = logging.getLogger(__name__)


class StatsAggregator:
    """Owns a GlobalStats and applies execution outcomes to it.

    ``record`` is the only way the statistics change and may be called from
    any number of threads at once: the whole update runs under one lock, so
    the counters, extremes, running average and per-worker entry always move
    together.
    """

    def __init__(self, start_time: datetime | None = None) -> None:
        self._lock = threading.Lock()
        self._stats = GlobalStats()
        if start_time is not None:
            self._stats.start_time = start_time

    @property
    def stats(self) -> GlobalStats:
        # Only safe to read once every writer has finished.
        return self._stats

    def record(self, outcome: ExecutionOutcome) -> None:
        duration = outcome.duration
        with self._lock:
            stats = self._stats
            stats.total_executions += 1
            if outcome.succeeded:
                stats.success_count += 1
            else:
                stats.failure_count += 1

            if stats.min_duration is None or duration < stats.min_duration:
                stats.min_duration = duration
            if stats.max_duration is None or duration > stats.max_duration:
                stats.max_duration = duration

            stats.running_average_duration += (
                duration - stats.running_average_duration
            ) / stats.total_executions

            worker = stats.per_worker.get(outcome.worker_id)
            if worker is None:
                worker = stats.per_worker[outcome.worker_id] = WorkerStats()
            worker.total_executions += 1
            worker.total_duration += duration
            # Equal durations break ties on query text so arrival order does not matter.
            if (
                worker.min_duration is None
                or duration < worker.min_duration
                or (duration == worker.min_duration and outcome.query < worker.query_at_min)
            ):
                worker.min_duration = duration
                worker.query_at_min = outcome.query
            if (
                worker.max_duration is None
                or duration > worker.max_duration
                or (duration == worker.max_duration and outcome.query > worker.query_at_max)
            ):
                worker.max_duration = duration
                worker.query_at_max = outcome.query

        logger.debug(
            f"Recorded outcome for worker {outcome.worker_id}: "
            f"duration={duration:.6f}s, succeeded={outcome.succeeded}"
        )


def publish_stats(
    stats: GlobalStats, metrics_callback: MetricsCallback | None = None
) -> dict:
    stats_dict = stats.to_dict()
    if metrics_callback:
        metrics_callback(stats_dict)

    if not stats.total_executions:
        logger.info("No queries recorded. Returning empty stats.")
        return stats_dict

    logger.info(
        f"Stats computed: success={stats.success_count}, errors={stats.failure_count}, "
        f"mean={stats.running_average_duration:.4f}s, "
        f"error_rate={stats.failure_percentage:.1f}%"
    )
    return stats_dict
