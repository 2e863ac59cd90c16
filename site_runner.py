"""
site_runner.py - Runs one source for one job: passes, paging, cache, states.

State machine: pending -> connecting -> fetching <-> parsing -> ok | error | cancelled.
Disabled sources go straight to skipped.
"""

import time
from typing import Callable, Optional

from cache import ResultCache
from config import FETCH, SEARCH
from deduplication import dedupe_within_source
from errors import FATAL, FetchCancelled, FetchError
from fetching import StrategyProvider
from jobs import CancellationToken, JobRegistry
from models import (
    CACHE_HIT, SITE_CANCELLED, SITE_CONNECTING, SITE_ERROR, SITE_FETCHING, SITE_OK,
    SITE_PARSING, SITE_SKIPPED, NormalizedListing, PassAttempt, PassSpec, RawListing, SearchCriteria, SiteRun,
)
from monitoring import get_logger, log_pass, log_site_failure, log_site_success
from normalization import normalize
from passes import PassPlanner
from sources import SourceConfig

logger = get_logger("site_runner")

DRIFT_NOTE = "parser returned 0 on large markup, possible parser drift"


class PassAborted(Exception):
    """A fatal fetch failure that ends the whole source."""

    def __init__(self, attempt: PassAttempt, error: FetchError):
        super().__init__(str(error))
        self.attempt = attempt
        self.error = error


class SiteRunner:
    def __init__(
        self,
        fetcher: StrategyProvider,
        cache: ResultCache,
        registry: JobRegistry,
        planner: PassPlanner = None,
        source_budget_seconds: float = None,
        pass_timeout_seconds: float = None,
        max_pages_per_pass: int = None,
        drift_min_markup_chars: int = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.fetcher = fetcher
        self.cache = cache
        self.registry = registry
        self.planner = planner or PassPlanner()
        self.source_budget_seconds = float(_pick(source_budget_seconds, SEARCH.get("source_budget_seconds", 60)))
        self.pass_timeout_seconds = float(_pick(pass_timeout_seconds, SEARCH.get("pass_timeout_seconds", 20)))
        self.max_pages_per_pass = int(_pick(max_pages_per_pass, SEARCH.get("max_pages_per_pass", 3)))
        self.drift_min_markup_chars = int(_pick(drift_min_markup_chars, FETCH.get("drift_min_markup_chars", 50000)))
        self._clock = clock

    def run(
        self,
        source: SourceConfig,
        criteria: SearchCriteria,
        job_id: str,
        site_run: Optional[SiteRun] = None,
    ) -> tuple[SiteRun, list[NormalizedListing]]:
        """Execute every planned pass for one source. Never raises for source failures."""
        site_run = site_run or SiteRun(source=source.key)
        started = self._clock()

        if not source.enabled:
            site_run.transition(SITE_SKIPPED, error=source.reason or "source disabled")
            return site_run, []

        token = self.registry.token(job_id)
        site_run.transition(SITE_CONNECTING)

        collected: list[NormalizedListing] = []
        succeeded = False
        last_error: Optional[str] = None

        try:
            for spec in self.planner.passes(criteria):
                if token.is_cancelled():
                    raise FetchCancelled(f"{source.key}: cancelled before {spec.name} pass")
                if not self.planner.should_run(spec, len(collected)):
                    continue
                if self._clock() - started >= self.source_budget_seconds:
                    logger.info(f"[{source.key}] source budget spent, skipping {spec.name} pass")
                    break

                try:
                    attempt, listings = self._run_pass(source, spec, criteria, token, site_run)
                except PassAborted as e:
                    site_run.record(e.attempt)
                    return self._finish_error(site_run, started, str(e.error))

                site_run.record(attempt)
                log_pass(logger, source.key, spec.name, attempt.strategy, attempt.item_count, attempt.duration_ms)

                if attempt.outcome == "error":
                    last_error = attempt.note
                else:
                    succeeded = True
                    collected = dedupe_within_source(collected + listings)

                if attempt.outcome != "error" and not self.planner.should_continue(source, attempt.item_count):
                    logger.info(f"[{source.key}] {spec.name} pass returned nothing, stopping source")
                    break
        except FetchCancelled as e:
            logger.info(f"{e}")
            return self._finish_cancelled(site_run, started)

        if not succeeded:
            return self._finish_error(site_run, started, last_error or "no pass succeeded")

        def mark_ok():
            site_run.item_count = len(collected)
            site_run.duration_ms = self._elapsed_ms(started)
            site_run.transition(SITE_OK)

        if not token.run_unless_cancelled(mark_ok):
            return self._finish_cancelled(site_run, started)

        log_site_success(logger, source.key, site_run.item_count, site_run.duration_ms)
        return site_run, collected

    def _run_pass(
        self,
        source: SourceConfig,
        spec: PassSpec,
        criteria: SearchCriteria,
        token: CancellationToken,
        site_run: SiteRun,
    ) -> tuple[PassAttempt, list[NormalizedListing]]:
        """
        One pass: cache lookup, else page through results.
        The cache holds parser output; normalization always uses this job's criteria.
        """
        pass_started = self._clock()
        key = self.cache.make_key(source.key, spec.name, spec.criteria)

        cached = self.cache.get(key)
        if cached is not None:
            items = self._normalize(cached, source, criteria)[:source.max_items_per_pass]
            attempt = PassAttempt(
                pass_name=spec.name,
                strategy=CACHE_HIT,
                outcome="cache",
                item_count=len(items),
                duration_ms=self._elapsed_ms(pass_started),
            )
            return attempt, items

        raw_items: list[RawListing] = []
        items: list[NormalizedListing] = []
        strategy: Optional[str] = None
        largest_markup = 0
        error: Optional[FetchError] = None
        note: Optional[str] = None
        ceiling = source.max_items_per_pass

        for page in range(1, self.max_pages_per_pass + 1):
            if token.is_cancelled():
                raise FetchCancelled(f"{source.key}: cancelled during {spec.name} pass")
            if page > 1 and self._clock() - pass_started >= self.pass_timeout_seconds:
                note = f"pass budget spent after {page - 1} page(s)"
                break

            site_run.transition(SITE_FETCHING)
            url = source.parser.search_url(spec.criteria, page)
            try:
                result = self.fetcher.fetch(url, source, token)
            except FetchError as e:
                error = e
                break

            strategy = result.strategy
            site_run.strategy = result.strategy
            largest_markup = max(largest_markup, len(result.markup))

            site_run.transition(SITE_PARSING)
            raw = source.parser.parse(result.markup, spec.criteria)
            raw_items.extend(raw)
            merged = dedupe_within_source(items + self._normalize(raw, source, criteria))
            if len(merged) == len(items):
                break
            items = merged

            if len(items) >= ceiling:
                items = items[:ceiling]
                break

        duration_ms = self._elapsed_ms(pass_started)

        if error is not None:
            if error.kind == FATAL:
                attempt = PassAttempt(spec.name, error.strategy or strategy, "error", 0, duration_ms, str(error))
                raise PassAborted(attempt, error)
            if not items:
                return PassAttempt(spec.name, error.strategy or strategy, "error", 0, duration_ms, str(error)), []
            # a later page failed; keep what the earlier pages returned, uncached
            note = f"stopped early: {error}"
            return PassAttempt(spec.name, strategy, "ok", len(items), duration_ms, note), items

        if not items:
            if largest_markup >= self.drift_min_markup_chars:
                note = DRIFT_NOTE
                logger.warning(f"[{source.key}] {spec.name}: {DRIFT_NOTE} ({largest_markup} chars)")
            self.cache.put(key, [])
            return PassAttempt(spec.name, strategy, "empty", 0, duration_ms, note), []

        self.cache.put(key, raw_items)
        return PassAttempt(spec.name, strategy, "ok", len(items), duration_ms, note), items

    @staticmethod
    def _normalize(raw: list[RawListing], source: SourceConfig, criteria: SearchCriteria) -> list[NormalizedListing]:
        return dedupe_within_source([normalize(r, source.key, criteria, source.parser.base_url) for r in raw])

    def _finish_error(self, site_run: SiteRun, started: float, error: str) -> tuple[SiteRun, list]:
        site_run.duration_ms = self._elapsed_ms(started)
        site_run.transition(SITE_ERROR, error=error)
        log_site_failure(logger, site_run.source, error, site_run.duration_ms)
        return site_run, []

    def _finish_cancelled(self, site_run: SiteRun, started: float) -> tuple[SiteRun, list]:
        site_run.duration_ms = self._elapsed_ms(started)
        site_run.transition(SITE_CANCELLED, error="job cancelled")
        logger.info(f"[{site_run.source}] cancelled after {site_run.duration_ms}ms")
        return site_run, []

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)


def _pick(value, default):
    return default if value is None else value
