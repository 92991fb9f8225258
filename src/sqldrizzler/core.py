import asyncio
import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from .database import DatabaseConfig, DatabaseHandle
from .metrics import StatsAggregator, publish_stats
from .models import ExecutionOutcome, GlobalStats, MetricsCallback, TimelineType
from .utils import now

logger = logging.getLogger(__name__)

# Simulated client-side think time after every execution.
PROCESSING_DELAY_S = 0.01
# Longest a sleeping worker goes without checking for a stop request.
STOP_POLL_S = 0.25

ProgressCallback = Callable[[int, int, int], None]


class QueryDrizzler:
    def __init__(
        self,
        query: str,
        interval_s: float = 600.0,
        concurrency: int = 10,
        iterations: int = 5,
        database: DatabaseConfig | None = None,
        handle_factory: Callable[[], Any] | None = None,
        metrics_callback: MetricsCallback | None = None,
        progress_callback: ProgressCallback | None = None,
        use_progress_bar: bool = True,
    ) -> None:
        if not query or not query.strip():
            raise ValueError("query must not be empty")
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        if iterations < 1:
            raise ValueError(f"iterations must be >= 1, got {iterations}")
        if interval_s < 0:
            raise ValueError(f"interval must be >= 0, got {interval_s}")

        self.query = query
        self.interval_s = interval_s
        self.concurrency = concurrency
        self.iterations = iterations
        self.database = database or DatabaseConfig()
        self.handle_factory = handle_factory or (
            lambda: DatabaseHandle.open(self.database)
        )
        self.metrics_callback = metrics_callback
        self.progress_callback = progress_callback
        self.use_progress_bar = use_progress_bar

        # Runtime state
        self.aggregator: StatsAggregator | None = None
        self.timeline: TimelineType = {}
        self.started_at: datetime | None = None
        self.finished_at: datetime | None = None
        self._completed = 0
        self._t0: float | None = None
        self._stop = threading.Event()

        logger.info(
            f"Initialized QueryDrizzler: concurrency={concurrency}, "
            f"iterations={iterations}, interval={interval_s}s"
        )

    @property
    def total_executions(self) -> int:
        return self.concurrency * self.iterations

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Ask every worker to finish after its current query."""
        if not self._stop.is_set():
            logger.info("Stop requested.")
        self._stop.set()

    # ────────────────────────────────
    # Pacing
    # ────────────────────────────────

    async def _pause(self, seconds: float) -> None:
        deadline = now() + seconds
        while not self._stop.is_set():
            remaining = deadline - now()
            if remaining <= 0:
                break
            await asyncio.sleep(min(remaining, STOP_POLL_S))

    # ────────────────────────────────
    # Query Execution
    # ────────────────────────────────

    def _execute_once(
        self, worker_id: int, handle, aggregator: StatsAggregator
    ) -> ExecutionOutcome:
        """Runs on an executor thread: time one execution and record it."""
        start = now()
        error = None
        try:
            handle.execute(self.query)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.warning(f"[W{worker_id}] Error executing query: {e}")
        duration = now() - start

        outcome = ExecutionOutcome(
            worker_id=worker_id,
            duration=duration,
            succeeded=error is None,
            query=self.query,
            error=error,
        )
        aggregator.record(outcome)

        if self._t0 is not None:
            start_rel = start - self._t0
            self.timeline[worker_id].append(
                (start_rel, start_rel + duration, outcome.succeeded)
            )
        return outcome

    async def _worker(
        self,
        worker_id: int,
        handle,
        executor: ThreadPoolExecutor,
        aggregator: StatsAggregator,
        progress: Progress | None,
        task_id,
    ) -> None:
        loop = asyncio.get_running_loop()
        logger.debug(f"[W{worker_id}] Started")

        for iteration in range(self.iterations):
            if self._stop.is_set():
                logger.info(
                    f"[W{worker_id}] Stop requested. "
                    f"Skipping {self.iterations - iteration} remaining iteration(s)"
                )
                break

            outcome = await loop.run_in_executor(
                executor, self._execute_once, worker_id, handle, aggregator
            )
            self._completed += 1
            logger.debug(
                f"[W{worker_id}] Iteration {iteration + 1}/{self.iterations}: "
                f"{'ok' if outcome.succeeded else 'failed'} in {outcome.duration:.4f}s"
            )
            if progress is not None and task_id is not None:
                progress.advance(task_id)
            if self.progress_callback:
                self.progress_callback(self._completed, self.total_executions, worker_id)

            await self._pause(PROCESSING_DELAY_S)

        await self._pause(self.interval_s)
        logger.debug(f"[W{worker_id}] Done")

    # ────────────────────────────────
    # Main Runner
    # ────────────────────────────────

    async def run(self) -> GlobalStats:
        logger.info("Starting QueryDrizzler run...")
        loop = asyncio.get_running_loop()

        # A failure here aborts the run before any worker exists.
        handle = await loop.run_in_executor(None, self.handle_factory)

        self.started_at = datetime.now(timezone.utc)
        aggregator = StatsAggregator(start_time=self.started_at)
        self.aggregator = aggregator
        self.timeline = {wid: [] for wid in range(1, self.concurrency + 1)}
        self._completed = 0
        self._t0 = now()

        executor = ThreadPoolExecutor(
            max_workers=self.concurrency, thread_name_prefix="sqldrizzler"
        )

        progress = None
        task_id = None
        if self.use_progress_bar:
            progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
            )
            progress.start()
            task_id = progress.add_task("[cyan]Drizzling...", total=self.total_executions)

        logger.info(
            f"Launching {self.concurrency} workers x {self.iterations} iterations "
            f"({self.total_executions} queries)"
        )
        workers = [
            asyncio.create_task(
                self._worker(wid, handle, executor, aggregator, progress, task_id)
            )
            for wid in range(1, self.concurrency + 1)
        ]

        try:
            await asyncio.gather(*workers)
        finally:
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            if progress:
                progress.stop()
            executor.shutdown(wait=True)
            await loop.run_in_executor(None, handle.close)
            self.finished_at = datetime.now(timezone.utc)

        stats = aggregator.stats
        publish_stats(stats, self.metrics_callback)

        logger.info(
            f"Run completed: {stats.success_count} succeeded, "
            f"{stats.failure_count} failed"
            + (" (stopped early)" if self.stopped else "")
        )
        return stats
