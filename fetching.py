"""
fetching.py - Fetch strategies with retry, fallback and failure classification.

Strategies run in the order a source declares them:
- direct-http: plain httpx GET with a rotating desktop user agent
- managed-render: ZenRows-style rendering API (optional race of a raw and a
  rendered request, first usable response wins)
- headless-browser: Playwright Chromium, last resort
"""

import json
import random
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from config import FETCH, MANAGED_RENDER, PLAYWRIGHT_HEADLESS, ZENROWS_API_KEY
from errors import BLOCKED, FATAL, TRANSIENT, FetchCancelled, FetchError, StrategyUnavailable
from jobs import CancellationToken
from models import DIRECT_HTTP, HEADLESS_BROWSER, MANAGED_RENDER as MANAGED_RENDER_STRATEGY
from monitoring import get_logger

logger = get_logger("fetching")

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36 Edg/120.0.0.0",
]

TRANSIENT_STATUSES = {429, 500, 502, 503, 504}
BLOCKED_STATUSES = {401, 403, 422}

# Anti-bot interstitials. Only checked on small pages; real result pages
# often embed the same vendor scripts.
BLOCK_MARKERS = [
    "just a moment",
    "captcha-delivery.com",
    "geo.captcha-delivery",
    "datadome",
    "cf-challenge",
    "please enable js and disable any ad blocker",
    "access denied",
]

# Managed-render vendor error codes
VENDOR_CODES = {
    "REQS001": TRANSIENT,  # concurrency limit / busy
    "RESP001": BLOCKED,    # could not render the page
    "REQS002": FATAL,      # malformed request
}


@dataclass
class FetchResult:
    markup: str
    strategy: str
    duration_ms: int
    attempts: int = 1


def classify_response(status_code: int, body: str, strategy: str, min_markup_chars: int, marker_window: int) -> str:
    """Return the body if usable; raise a classified FetchError otherwise."""
    if status_code >= 400:
        vendor_code = _vendor_code(body)
        if vendor_code:
            kind = VENDOR_CODES.get(vendor_code)
            if kind is None and vendor_code.startswith("AUTH"):
                kind = FATAL
            if kind is not None:
                raise FetchError(f"vendor error {vendor_code} (HTTP {status_code})", kind, strategy, status_code)
        if status_code in TRANSIENT_STATUSES or status_code >= 500:
            raise FetchError(f"HTTP {status_code}", TRANSIENT, strategy, status_code)
        if status_code in BLOCKED_STATUSES:
            raise FetchError(f"HTTP {status_code}", BLOCKED, strategy, status_code)
        raise FetchError(f"HTTP {status_code}", FATAL, strategy, status_code)

    return classify_markup(body, strategy, min_markup_chars, marker_window)


def classify_markup(body: str, strategy: str, min_markup_chars: int, marker_window: int) -> str:
    text = body or ""
    if len(text.strip()) < min_markup_chars:
        raise FetchError(f"undersized body ({len(text.strip())} chars)", BLOCKED, strategy)
    if len(text) < marker_window:
        lowered = text.lower()
        for marker in BLOCK_MARKERS:
            if marker in lowered:
                raise FetchError(f"anti-bot page detected ({marker})", BLOCKED, strategy)
    return text


def _vendor_code(body: str) -> Optional[str]:
    try:
        payload = json.loads(body or "")
    except ValueError:
        return None
    if isinstance(payload, dict) and payload.get("code"):
        return str(payload["code"]).upper()
    return None


class StrategyProvider:
    def __init__(
        self,
        client: httpx.Client = None,
        api_key: str = None,
        max_attempts: int = None,
        backoff_seconds: float = None,
        browser_fetcher: Callable[[str, float], str] = None,
        managed_base_url: str = None,
        managed_defaults: dict = None,
    ):
        self.client = client or httpx.Client(follow_redirects=True)
        self.api_key = ZENROWS_API_KEY if api_key is None else api_key
        self.max_attempts = int(max_attempts if max_attempts is not None else FETCH.get("max_attempts", 3))
        self.backoff_seconds = float(backoff_seconds if backoff_seconds is not None else FETCH.get("backoff_seconds", 1.0))
        self.min_markup_chars = int(FETCH.get("min_markup_chars", 100))
        self.race_min_markup_chars = int(FETCH.get("race_min_markup_chars", 10000))
        self.browser_fetcher = browser_fetcher or self._fetch_with_browser
        self.managed_base_url = managed_base_url or MANAGED_RENDER.get("base_url", "https://api.zenrows.com/v1/")
        self.managed_defaults = dict(MANAGED_RENDER.get("defaults", {}) if managed_defaults is None else managed_defaults)

    def fetch(self, url: str, source, token: Optional[CancellationToken] = None) -> FetchResult:
        """
        Walk the source's strategies. Transient failures retry the same
        strategy with backoff; blocked ones move on; fatal ones abort.
        Raises the last FetchError when every strategy is exhausted.
        """
        if not source.strategies:
            raise FetchError(f"{source.key} declares no fetch strategy", FATAL)

        last_error: Optional[FetchError] = None
        for strategy in source.strategies:
            try:
                return self._fetch_with_retries(strategy, url, source, token)
            except FetchError as e:
                if e.kind == FATAL:
                    logger.error(f"[{source.key}] {e}, aborting source")
                    raise
                logger.warning(f"[{source.key}] {e}, falling back")
                last_error = e

        raise last_error

    def _fetch_with_retries(self, strategy: str, url: str, source, token) -> FetchResult:
        for attempt in range(1, self.max_attempts + 1):
            if token is not None and token.is_cancelled():
                raise FetchCancelled(f"{source.key}: cancelled before {strategy} attempt {attempt}")

            started = time.monotonic()
            try:
                markup = self._fetch_once(strategy, url, source)
            except FetchError as e:
                if not e.retryable or attempt == self.max_attempts:
                    raise
                delay = self.backoff_seconds * 2 ** (attempt - 1)
                logger.info(f"[{source.key}] {e}, retry {attempt}/{self.max_attempts - 1} in {delay:.1f}s")
                if token is not None:
                    if token.wait(delay):
                        raise FetchCancelled(f"{source.key}: cancelled during backoff") from e
                else:
                    time.sleep(delay)
                continue

            duration_ms = int((time.monotonic() - started) * 1000)
            logger.debug(f"[{source.key}] {strategy} fetched {len(markup)} chars in {duration_ms}ms")
            return FetchResult(markup=markup, strategy=strategy, duration_ms=duration_ms, attempts=attempt)

        raise FetchError("no attempt made", TRANSIENT, strategy)

    def _fetch_once(self, strategy: str, url: str, source) -> str:
        if strategy == DIRECT_HTTP:
            return self._direct(url, source)
        if strategy == MANAGED_RENDER_STRATEGY:
            return self._managed(url, source)
        if strategy == HEADLESS_BROWSER:
            return self._headless(url, source)
        raise StrategyUnavailable(f"unknown strategy '{strategy}'", strategy)

    # --- direct-http ---

    def _direct(self, url: str, source) -> str:
        headers = {
            "User-Agent": random.choice(USER_AGENTS),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "fr-FR,fr;q=0.9,en;q=0.8",
        }
        response = self._get(url, DIRECT_HTTP, source.timeout_seconds, headers=headers)
        return classify_response(
            response.status_code, response.text, DIRECT_HTTP,
            self.min_markup_chars, self.race_min_markup_chars,
        )

    # --- managed-render ---

    def _managed(self, url: str, source) -> str:
        if not self.api_key:
            raise StrategyUnavailable("ZENROWS_API_KEY not set", MANAGED_RENDER_STRATEGY)

        params = {**self.managed_defaults, **source.managed_render, "apikey": self.api_key, "url": url}
        if source.race:
            return self._race(params, source)
        return self._managed_get(params, source.timeout_seconds)

    def _managed_get(self, params: dict, timeout: float) -> str:
        response = self._get(self.managed_base_url, MANAGED_RENDER_STRATEGY, timeout, params=params)
        return classify_response(
            response.status_code, response.text, MANAGED_RENDER_STRATEGY,
            self.min_markup_chars, self.race_min_markup_chars,
        )

    def _race(self, params: dict, source) -> str:
        """
        Send a raw and a rendered request at once. The first response with at
        least race_min_markup_chars wins; otherwise the largest usable one.
        """
        variants = [dict(params, js_render="false"), dict(params, js_render="true")]
        pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix=f"race-{source.key}")
        futures = {pool.submit(self._managed_get, p, source.timeout_seconds): p["js_render"] for p in variants}

        best: Optional[str] = None
        last_error: Optional[FetchError] = None
        try:
            for future in as_completed(futures):
                try:
                    markup = future.result()
                except FetchError as e:
                    last_error = e
                    continue
                if len(markup) >= self.race_min_markup_chars:
                    logger.debug(f"[{source.key}] race won by js_render={futures[future]} ({len(markup)} chars)")
                    return markup
                if best is None or len(markup) > len(best):
                    best = markup
        finally:
            # the losing request finishes in the background and is ignored
            pool.shutdown(wait=False, cancel_futures=True)

        if best is not None:
            return best
        raise last_error

    # --- headless-browser ---

    def _headless(self, url: str, source) -> str:
        markup = self.browser_fetcher(url, source.timeout_seconds)
        return classify_markup(markup, HEADLESS_BROWSER, self.min_markup_chars, self.race_min_markup_chars)

    def _fetch_with_browser(self, url: str, timeout: float) -> str:
        """Fetch a page using Playwright headless Chromium. Returns page HTML."""
        from playwright.sync_api import Error as PlaywrightError, sync_playwright

        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(headless=PLAYWRIGHT_HEADLESS)
                context = browser.new_context(
                    user_agent=random.choice(USER_AGENTS),
                    viewport={"width": 1920, "height": 1080},
                    locale="fr-FR",
                )
                page = context.new_page()
                try:
                    page.goto(url, timeout=int(timeout * 1000), wait_until="domcontentloaded")
                    return page.content()
                finally:
                    browser.close()
        except PlaywrightError as e:
            raise FetchError(f"navigation failed: {e}", BLOCKED, HEADLESS_BROWSER) from e

    # --- shared ---

    def _get(self, url: str, strategy: str, timeout: float, **kwargs) -> httpx.Response:
        try:
            return self.client.get(url, timeout=timeout, **kwargs)
        except httpx.TimeoutException as e:
            raise FetchError(f"timed out after {timeout:.0f}s", TRANSIENT, strategy) from e
        except httpx.TransportError as e:
            raise FetchError(f"connection error: {e}", TRANSIENT, strategy) from e

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
