"""
monitoring.py - Logging setup and reporting helpers for the search engine.
"""

import logging
import sys

from config import LOG_DIR, LOG_FILE, LOG_LEVEL


def setup_logging(level: int = None) -> logging.Logger:
    """
    Set up structured logging to both file and stdout.
    Returns the root logger for the application.
    """
    if level is None:
        level = getattr(logging, LOG_LEVEL, logging.INFO)

    LOG_DIR.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("car_finder")
    logger.setLevel(level)

    # Prevent duplicate handlers on re-init
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    file_handler = logging.FileHandler(str(LOG_FILE), mode="a", encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger for a specific module."""
    return logging.getLogger(f"car_finder.{name}")


def log_site_success(logger: logging.Logger, source: str, count: int, duration_ms: int):
    """Log a source that finished ok."""
    logger.info(f"[{source}] {count} listings in {duration_ms}ms")


def log_site_failure(logger: logging.Logger, source: str, error: str, duration_ms: int):
    """Log a source that ended in error."""
    logger.error(f"[{source}] Source failed after {duration_ms}ms: {error}")


def log_pass(logger: logging.Logger, source: str, pass_name: str, strategy: str, count: int, duration_ms: int):
    """Log one pass of one source."""
    logger.info(f"[{source}] pass={pass_name} strategy={strategy} items={count} ({duration_ms}ms)")


def log_pipeline_step(logger: logging.Logger, step: str, input_count: int, output_count: int):
    """Log a pipeline step with input/output counts."""
    filtered = input_count - output_count
    logger.info(f"[{step}] {input_count} in -> {output_count} out ({filtered} filtered)")


def log_search_summary(
    logger: logging.Logger,
    job_id: str,
    status: str,
    total_items: int,
    site_states: dict,
    duration_ms: int,
):
    """Log a complete search summary."""
    ok = sum(1 for s in site_states.values() if s == "ok")
    failed = {name: s for name, s in site_states.items() if s in ("error", "cancelled")}

    logger.info("=" * 60)
    logger.info(f"SEARCH SUMMARY ({job_id})")
    logger.info(f"  Status:            {status}")
    logger.info(f"  Listings:          {total_items}")
    logger.info(f"  Sources ok:        {ok}/{len(site_states)}")
    logger.info(f"  Duration:          {duration_ms / 1000:.1f}s")

    if failed:
        logger.warning("DEGRADED SOURCES:")
        for name, state in failed.items():
            logger.warning(f"  - {name}: {state}")

    logger.info("=" * 60)
