"""
jobs.py - Job lifecycle registry and cooperative cancellation tokens.
"""

import copy
import threading
import uuid
from typing import Callable, Optional

from errors import JobNotFoundError
from models import JOB_CANCELLED, JOB_RUNNING, Job, SearchCriteria, SiteRun, utc_now
from monitoring import get_logger

logger = get_logger("jobs")


class CancellationToken:
    """
    Shared flag checked by site runners between passes and before each fetch.
    cancel() and run_unless_cancelled() share a lock, so once cancel() has
    returned no guarded action can start.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()

    def cancel(self) -> bool:
        """Trip the token. Returns False if it was already tripped."""
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            return True

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; wake early on cancel. Returns True if cancelled."""
        return self._event.wait(max(0.0, seconds))

    def run_unless_cancelled(self, fn: Callable[[], None]) -> bool:
        """Run fn unless the token is tripped. Returns True if fn ran."""
        with self._lock:
            if self._event.is_set():
                return False
            fn()
            return True


class JobRegistry:
    """In-memory map of jobs. One lock guards every job record."""

    def __init__(self):
        self._jobs: dict[str, Job] = {}
        self._tokens: dict[str, CancellationToken] = {}
        self._lock = threading.Lock()

    def register(self, criteria: SearchCriteria, owner_id: Optional[str] = None) -> Job:
        job = Job(id=uuid.uuid4().hex, criteria=criteria, owner_id=owner_id)
        with self._lock:
            self._jobs[job.id] = job
            self._tokens[job.id] = CancellationToken()
        logger.info(f"Registered job {job.id} for {criteria.brand} {criteria.model or ''}".rstrip())
        return job

    def get(self, job_id: str) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def snapshot(self, job_id: str) -> Job:
        """Independent copy of a job, safe to read while sources are running."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return copy.deepcopy(job)

    def token(self, job_id: str) -> CancellationToken:
        with self._lock:
            token = self._tokens.get(job_id)
        if token is None:
            raise JobNotFoundError(job_id)
        return token

    def cancel(self, job_id: str) -> bool:
        """
        running -> cancelled, and trip the job's token.
        Returns False (no-op) when the job is already terminal.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.terminal:
                return False
            job.status = JOB_CANCELLED
            job.finished_at = utc_now()
            token = self._tokens[job_id]
        token.cancel()
        logger.info(f"Job {job_id} cancelled")
        return True

    def halt(self, job_id: str):
        """Trip the token without touching the status (deadline expiry)."""
        self.token(job_id).cancel()

    def is_cancelled(self, job_id: str) -> bool:
        return self.token(job_id).is_cancelled()

    def set_status(self, job_id: str, status: str) -> bool:
        """Move a running job to a terminal status. False if it already left running."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.status != JOB_RUNNING:
                return False
            job.status = status
            job.finished_at = utc_now()
            return True

    def set_sites_total(self, job_id: str, total: int):
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            job.sites_total = total

    def record_site_run(self, job_id: str, site_run: SiteRun, listing_count: int = 0):
        """Store a snapshot of a finished SiteRun as job progress."""
        snapshot = site_run.snapshot()
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            job.site_runs[snapshot.source] = snapshot
            job.total_listings += listing_count

    def __len__(self):
        with self._lock:
            return len(self._jobs)
