"""
coordinator.py - Runs one search job across every selected source.

Validates the request, registers the job, fans sources out on a bounded
thread pool, streams each finished SiteRun, enforces the job deadline and
aggregates deduplicated listings into the final SearchResponse.
"""

import queue
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Iterator, Optional, Union

from cache import ResultCache
from config import JOB_TIMEOUT_SECONDS, MAX_CONCURRENCY
from criteria import from_request
from deduplication import dedupe
from errors import JobAccessDenied
from fetching import StrategyProvider
from jobs import JobRegistry
from models import (
    JOB_DONE, JOB_FAILED, SITE_CANCELLED, SITE_ERROR, SITE_OK, SITE_TERMINAL,
    Job, NormalizedListing, SearchCriteria, SearchResponse, SearchStats, SiteEvent, SiteRun,
)
from monitoring import get_logger, log_pipeline_step, log_search_summary
from passes import PassPlanner
from site_runner import SiteRunner
from sources import SourceConfig, load_sources, select_sources

logger = get_logger("coordinator")

POLL_SECONDS = 0.25  # how often the driver re-checks cancel and deadline
DEADLINE_MESSAGE = "job deadline exceeded"
CANCELLED_MESSAGE = "job cancelled"

_END = object()


class ResultStream:
    """
    Per-job stream of SiteEvents, in completion order. Iteration ends when
    the job finishes; result() returns the final SearchResponse.
    """

    def __init__(self, job_id: str):
        self.job_id = job_id
        self._queue: queue.Queue = queue.Queue()
        self._done = threading.Event()
        self._response: Optional[SearchResponse] = None
        self._error: Optional[BaseException] = None

    def __iter__(self) -> Iterator[SiteEvent]:
        while True:
            item = self._queue.get()
            if item is _END:
                # leave the marker for any other consumer
                self._queue.put(_END)
                return
            yield item

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def result(self, timeout: Optional[float] = None) -> SearchResponse:
        """Block until the job finishes. Re-raises a coordinator crash."""
        if not self._done.wait(timeout):
            raise TimeoutError(f"Job {self.job_id} still running after {timeout}s")
        if self._error is not None:
            raise self._error
        return self._response

    def push(self, event: SiteEvent):
        self._queue.put(event)

    def finish(self, response: SearchResponse = None, error: BaseException = None):
        self._response = response
        self._error = error
        self._queue.put(_END)
        self._done.set()


class SearchCoordinator:
    def __init__(
        self,
        sources: list[SourceConfig] = None,
        fetcher: StrategyProvider = None,
        cache: ResultCache = None,
        registry: JobRegistry = None,
        planner: PassPlanner = None,
        runner: SiteRunner = None,
        max_concurrency: int = None,
        job_timeout_seconds: float = None,
    ):
        self.sources = load_sources() if sources is None else sources
        self.registry = registry or JobRegistry()
        self.cache = cache or ResultCache()
        self.fetcher = fetcher or StrategyProvider()
        self.runner = runner or SiteRunner(self.fetcher, self.cache, self.registry, planner)
        self.max_concurrency = max(1, int(max_concurrency or MAX_CONCURRENCY))
        self.job_timeout_seconds = float(job_timeout_seconds if job_timeout_seconds is not None else JOB_TIMEOUT_SECONDS)
        self.cache.start_sweeper()

    # --- public operations ---

    def start(self, criteria: Union[dict, SearchCriteria], owner_id: Optional[str] = None) -> tuple[Job, ResultStream]:
        """
        Validate, register and launch a search. Returns immediately.
        Raises ValidationError before any source is contacted.
        """
        criteria = from_request(criteria)
        job = self.registry.register(criteria, owner_id)
        selected = select_sources(self.sources, criteria.sites, criteria.excluded_sites)
        self.registry.set_sites_total(job.id, len(selected))
        stream = ResultStream(job.id)

        thread = threading.Thread(
            target=self._drive,
            args=(job, selected, stream),
            name=f"search-{job.id[:8]}",
            daemon=True,
        )
        thread.start()
        return job, stream

    def search(
        self,
        criteria: Union[dict, SearchCriteria],
        owner_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> SearchResponse:
        """Start a search and wait for its response."""
        _, stream = self.start(criteria, owner_id)
        return stream.result(timeout)

    def job_status(self, job_id: str) -> dict:
        job = self.registry.snapshot(job_id)
        runs = list(job.site_runs.values())
        return {
            "job": {"id": job.id, "status": job.status},
            "progress": {
                "siteRuns": [run.to_dict() for run in runs],
                "totalListings": job.total_listings,
                "sitesCompleted": sum(1 for run in runs if run.state in SITE_TERMINAL),
                "sitesTotal": job.sites_total,
            },
        }

    def cancel(self, job_id: str, owner_id: Optional[str] = None) -> dict:
        """Cancel a running job on behalf of its owner."""
        job = self.registry.get(job_id)
        if job.owner_id != owner_id:
            raise JobAccessDenied(job_id)

        cancelled = self.registry.cancel(job_id)
        status = self.registry.get(job_id).status
        return {
            "jobId": job_id,
            "status": status,
            "cancelled": cancelled,
            "message": "Search cancelled" if cancelled else f"Search already {status}",
        }

    def close(self):
        self.cache.stop_sweeper()
        self.fetcher.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    # --- driver ---

    def _drive(self, job: Job, selected: list[SourceConfig], stream: ResultStream):
        try:
            response = self._coordinate(job, selected, stream)
        except Exception as e:
            logger.exception(f"Search {job.id} crashed: {e}")
            self.registry.set_status(job.id, JOB_FAILED)
            stream.finish(error=e)
            return
        stream.finish(response=response)

    def _coordinate(self, job: Job, selected: list[SourceConfig], stream: ResultStream) -> SearchResponse:
        started = time.monotonic()
        deadline = started + self.job_timeout_seconds
        token = self.registry.token(job.id)
        site_runs = {source.key: SiteRun(source=source.key) for source in selected}
        results: dict[str, tuple[SiteRun, list[NormalizedListing]]] = {}

        logger.info(f"Search {job.id}: {len(selected)} sources, concurrency {self.max_concurrency}")

        # disabled sources never take a worker slot
        for source in selected:
            if not source.enabled:
                results[source.key] = self.runner.run(source, job.criteria, job.id, site_runs[source.key])
                self._report(job, stream, *results[source.key])

        enabled = [source for source in selected if source.enabled]
        executor = ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix=f"site-{job.id[:8]}")
        futures: dict[Future, SourceConfig] = {
            executor.submit(self.runner.run, source, job.criteria, job.id, site_runs[source.key]): source
            for source in enabled
        }
        pending = set(futures)
        timed_out = False

        try:
            while pending:
                if token.is_cancelled():
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    timed_out = True
                    break
                done, pending = wait(pending, timeout=min(remaining, POLL_SECONDS), return_when=FIRST_COMPLETED)
                for future in done:
                    source = futures[future]
                    results[source.key] = self._collect(future, site_runs[source.key])
                    self._report(job, stream, *results[source.key])
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if pending:
            message = DEADLINE_MESSAGE if timed_out else CANCELLED_MESSAGE
            # snapshot before halting so runners cannot overwrite the message
            leftovers = []
            for future in pending:
                source = futures[future]
                if future.done() and not future.cancelled():
                    results[source.key] = self._collect(future, site_runs[source.key])
                else:
                    # queued runners were cancelled by shutdown and never started
                    results[source.key] = (self._abandon(site_runs[source.key], started, message), [])
                leftovers.append(source.key)
            if timed_out:
                logger.warning(f"Search {job.id}: deadline of {self.job_timeout_seconds:.0f}s reached, "
                               f"{len(pending)} source(s) unfinished")
                self.registry.halt(job.id)
            for key in leftovers:
                self._report(job, stream, *results[key])

        return self._aggregate(job, selected, results, started)

    def _collect(self, future: Future, site_run: SiteRun) -> tuple[SiteRun, list[NormalizedListing]]:
        """Result of a finished runner. Unexpected errors stay inside the source."""
        try:
            return future.result()
        except Exception as e:
            logger.exception(f"[{site_run.source}] unexpected error: {e}")
            if not site_run.terminal:
                site_run.transition(SITE_ERROR, error=f"unexpected error: {e}")
            return site_run, []

    @staticmethod
    def _abandon(site_run: SiteRun, started: float, message: str) -> SiteRun:
        """Cancelled copy of a SiteRun whose runner is still working."""
        snapshot = site_run.snapshot()
        if not snapshot.terminal:
            snapshot.duration_ms = int((time.monotonic() - started) * 1000)
            snapshot.transition(SITE_CANCELLED, error=message)
        return snapshot

    def _report(self, job: Job, stream: ResultStream, site_run: SiteRun, listings: list[NormalizedListing]):
        self.registry.record_site_run(job.id, site_run, len(listings))
        stream.push(SiteEvent(site_run=site_run.snapshot(), listings=list(listings)))

    def _aggregate(
        self,
        job: Job,
        selected: list[SourceConfig],
        results: dict[str, tuple[SiteRun, list[NormalizedListing]]],
        started: float,
    ) -> SearchResponse:
        site_results = []
        gathered: list[NormalizedListing] = []
        for source in selected:
            site_run, listings = results[source.key]
            site_results.append(site_run.snapshot())
            if site_run.state == SITE_OK:
                gathered.extend(listings)

        items = dedupe(gathered, source_priority=[source.key for source in selected])
        log_pipeline_step(logger, "Cross-source dedup", len(gathered), len(items))

        self.registry.set_status(job.id, JOB_DONE)
        total_ms = int((time.monotonic() - started) * 1000)
        status = self.registry.get(job.id).status

        log_search_summary(
            logger, job.id, status, len(items),
            {run.source: run.state for run in site_results}, total_ms,
        )

        return SearchResponse(
            job_id=job.id,
            criteria=job.criteria,
            items=items,
            site_results=site_results,
            stats=SearchStats(
                total_items=len(items),
                sites_scraped=sum(1 for run in site_results if run.state == SITE_OK),
                total_ms=total_ms,
            ),
        )
