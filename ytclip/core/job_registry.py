"""
In-memory job registry with bounded retention.
Thread-safe: a registry lock guards the id -> Job map only; the terminal
transition of each job is guarded by that job's own lock.
"""

import copy
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from ytclip.core.constants import JobStatus, PROGRESS_FINISHED
from ytclip.core.models import ExtractionRequest, Job

logger = logging.getLogger(__name__)


class JobRegistry:
    """Holds every job until it is evicted after termination."""

    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: dict[str, Job] = {}
        self._timers: dict[str, threading.Timer] = {}
        self._last_id = 0

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def _next_id(self) -> str:
        """Epoch milliseconds, bumped so ids stay unique. Caller holds _lock."""
        candidate = int(time.time() * 1000)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return str(candidate)

    # ── Job CRUD ──────────────────────────────────────────────────────

    def create(self, request: ExtractionRequest) -> Job:
        with self._lock:
            job = Job(
                id=self._next_id(),
                source_url=request.source_url,
                clip=request.clip,
                title=request.title,
                status=JobStatus.PROCESSING,
                created_at=self._now(),
            )
            self._jobs[job.id] = job
        logger.info("Created job %s for %s", job.id, job.source_url)
        return job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def snapshot(self, job_id: str) -> Optional[Job]:
        """A copy of the job taken under its lock, or None if unknown."""
        job = self.get(job_id)
        if job is None:
            return None
        with job._lock:
            return copy.copy(job)

    def list(self) -> list[Job]:
        """All retained jobs, newest first."""
        with self._lock:
            jobs = list(self._jobs.values())
        return sorted(jobs, key=lambda j: int(j.id), reverse=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def update(self, job_id: str, **fields) -> bool:
        """Set non-status fields on a job that is still processing."""
        job = self.get(job_id)
        if job is None:
            return False
        with job._lock:
            if job.is_terminal:
                return False
            for key, value in fields.items():
                setattr(job, key, value)
        return True

    # ── Terminal transitions ──────────────────────────────────────────

    def mark_completed(self, job_id: str, download_url: str, file_size: int,
                       file_name: str | None = None, relayed: bool = False,
                       persisted: bool = False) -> bool:
        job = self.get(job_id)
        if job is None:
            return False
        with job._lock:
            if job.is_terminal:
                logger.warning("Job %s already %s; ignoring completion", job_id, job.status)
                return False
            job.completed_at = self._now()
            job.download_url = download_url
            job.file_size = file_size
            if file_name is not None:
                job.file_name = file_name
            job.relayed = relayed
            job.persisted = persisted
            job.progress = PROGRESS_FINISHED
            # Status last: readers outside the lock see a complete result
            job.status = JobStatus.COMPLETED
        logger.info("Job %s completed", job_id)
        return True

    def mark_failed(self, job_id: str, error: str, code: str | None = None,
                    progress: int | None = None) -> bool:
        job = self.get(job_id)
        if job is None:
            return False
        with job._lock:
            if job.is_terminal:
                logger.warning("Job %s already %s; ignoring failure", job_id, job.status)
                return False
            job.completed_at = self._now()
            job.error = error
            job.error_code = code
            if progress is not None:
                job.progress = progress
            job.status = JobStatus.FAILED
        logger.info("Job %s failed: %s", job_id, error)
        return True

    # ── Retention ─────────────────────────────────────────────────────

    def schedule_eviction(self, job_id: str, delay: float,
                          on_evict: Callable[[str], None] | None = None):
        """Remove the job after `delay` seconds; on_evict runs afterwards."""
        def _fire():
            self.evict(job_id)
            if on_evict is not None:
                try:
                    on_evict(job_id)
                except Exception as e:
                    logger.warning("Eviction hook failed for %s: %s", job_id, e)

        timer = threading.Timer(delay, _fire)
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(job_id, None)
            self._timers[job_id] = timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def evict(self, job_id: str) -> bool:
        with self._lock:
            self._timers.pop(job_id, None)
            removed = self._jobs.pop(job_id, None)
        if removed is not None:
            logger.debug("Evicted job %s", job_id)
        return removed is not None

    def close(self):
        """Cancel pending eviction timers."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
