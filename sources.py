"""
sources.py - Source registry: settings.yaml entries joined with parser classes.
Adding a marketplace = one YAML entry + one module in scrapers/.
"""

from dataclasses import dataclass, field
from typing import Optional

from config import SEARCH, SOURCES
from scrapers import PARSERS
from scrapers.base import SourceParser
from monitoring import get_logger

logger = get_logger("sources")


@dataclass
class SourceConfig:
    key: str
    name: str
    parser: SourceParser
    enabled: bool = True
    priority: int = 100
    timeout_seconds: float = 20.0
    strategies: list[str] = field(default_factory=list)
    race: bool = False
    skip_if_no_results: bool = False
    max_items_per_pass: int = 50
    managed_render: dict = field(default_factory=dict)
    reason: Optional[str] = None


def build_source(key: str, settings: dict, parser: SourceParser = None) -> SourceConfig:
    """Build one SourceConfig from its settings block."""
    if parser is None:
        parser_cls = PARSERS.get(key)
        if parser_cls is None:
            raise KeyError(f"No parser registered for source '{key}'")
        parser = parser_cls()

    return SourceConfig(
        key=key,
        name=settings.get("name", key),
        parser=parser,
        enabled=bool(settings.get("enabled", True)),
        priority=int(settings.get("priority", 100)),
        timeout_seconds=float(settings.get("timeout_seconds", 20)),
        strategies=list(settings.get("strategies", [])),
        race=bool(settings.get("race", False)),
        skip_if_no_results=bool(settings.get("skip_if_no_results", False)),
        max_items_per_pass=int(settings.get("max_items_per_pass", SEARCH.get("max_items_per_pass", 50))),
        managed_render=dict(settings.get("managed_render") or {}),
        reason=settings.get("reason"),
    )


def load_sources(settings: dict = None) -> list[SourceConfig]:
    """Every configured source with a registered parser, in priority order."""
    settings = SOURCES if settings is None else settings
    sources = []
    for key, block in settings.items():
        if key not in PARSERS:
            logger.warning(f"Source '{key}' has no parser module, ignoring it")
            continue
        sources.append(build_source(key, block or {}))
    return sorted(sources, key=lambda s: (s.priority, s.key))


def select_sources(
    sources: list[SourceConfig],
    sites: tuple = (),
    excluded_sites: tuple = (),
) -> list[SourceConfig]:
    """Filter by the request's site list (empty = all) and exclusions. Keeps priority order."""
    wanted = {s.lower() for s in sites}
    excluded = {s.lower() for s in excluded_sites}
    selected = []
    for source in sources:
        names = {source.key.lower(), source.name.lower()}
        if wanted and not names & wanted:
            continue
        if names & excluded:
            continue
        selected.append(source)
    return selected
