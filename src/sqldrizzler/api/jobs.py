import uuid
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime, timedelta

from sqldrizzler.core import QueryDrizzler
from sqldrizzler.database import DatabaseConfig
from sqldrizzler.rendering import render_report

logger = logging.getLogger(__name__)

RUN_TTL = timedelta(hours=24)


class RunStatus(BaseModel):
    id: str
    status: str  # "pending", "running", "completed", "stopped", "failed"
    progress: float = 0.0
    query: str
    concurrency: int
    iterations: int
    interval_s: float
    database: str
    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    stats: Optional[Dict[str, Any]] = None
    report: Optional[str] = None
    error: Optional[str] = None


class JobManager:
    def __init__(self, handle_factory: Optional[Callable[[DatabaseConfig], Any]] = None):
        self.handle_factory = handle_factory
        self.jobs: Dict[str, RunStatus] = {}
        self._drizzlers: Dict[str, QueryDrizzler] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    def create_job(
        self,
        query: str,
        interval_s: float,
        concurrency: int,
        iterations: int,
        database: DatabaseConfig,
    ) -> str:
        run_id = str(uuid.uuid4())

        drizzler = QueryDrizzler(
            query=query,
            interval_s=interval_s,
            concurrency=concurrency,
            iterations=iterations,
            database=database,
            handle_factory=(
                (lambda: self.handle_factory(database)) if self.handle_factory else None
            ),
            use_progress_bar=False,  # Disable rich progress bar in API
        )

        job = RunStatus(
            id=run_id,
            status="pending",
            query=query,
            concurrency=concurrency,
            iterations=iterations,
            interval_s=interval_s,
            database=database.describe(),
        )
        self.jobs[run_id] = job
        self._drizzlers[run_id] = drizzler

        # Start run in background
        self._tasks[run_id] = asyncio.create_task(self._run_job(run_id, drizzler))
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        return run_id

    async def _run_job(self, run_id: str, drizzler: QueryDrizzler):
        job = self.jobs[run_id]
        job.status = "running"

        def progress_callback(completed, total, worker_id):
            job.progress = (completed / total) * 100 if total > 0 else 0

        drizzler.progress_callback = progress_callback

        try:
            stats = await drizzler.run()
            job.stats = stats.to_dict()
            job.report = render_report(stats, drizzler.started_at, drizzler.finished_at)
            job.status = "stopped" if drizzler.stopped else "completed"
            if job.status == "completed":
                job.progress = 100.0
        except Exception as e:
            logger.error(f"Run {run_id} failed: {e}")
            job.status = "failed"
            job.error = str(e)
        finally:
            job.completed_at = datetime.now()
            self._tasks.pop(run_id, None)

    def get_job(self, run_id: str) -> Optional[RunStatus]:
        return self.jobs.get(run_id)

    def list_jobs(self) -> List[RunStatus]:
        return sorted(self.jobs.values(), key=lambda x: x.created_at, reverse=True)

    def stop_job(self, run_id: str):
        drizzler = self._drizzlers.get(run_id)
        if drizzler is not None:
            drizzler.stop()

    def delete_job(self, run_id: str):
        if run_id in self.jobs:
            self.stop_job(run_id)
            del self.jobs[run_id]
            self._drizzlers.pop(run_id, None)

    async def _cleanup_loop(self):
        """Periodically forget old runs."""
        while True:
            await asyncio.sleep(3600)  # Check every hour
            now = datetime.now()
            expired = [
                run_id
                for run_id, job in self.jobs.items()
                if job.completed_at is not None and now - job.created_at > RUN_TTL
            ]
            for run_id in expired:
                logger.info(f"Cleaning up old run: {run_id}")
                self.delete_job(run_id)
