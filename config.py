"""
config.py - Loads settings.yaml and environment variables.
Provides typed access to all configuration.
"""

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Project root directory
PROJECT_ROOT = Path(__file__).parent

# Load settings.yaml (override with CAR_FINDER_SETTINGS)
SETTINGS_PATH = Path(os.getenv("CAR_FINDER_SETTINGS", PROJECT_ROOT / "settings.yaml"))
with open(SETTINGS_PATH, "r", encoding="utf-8") as f:
    _settings = yaml.safe_load(f)


# --- Search ---
SEARCH = _settings["search"]
MAX_CONCURRENCY = int(SEARCH["max_concurrency"])
JOB_TIMEOUT_SECONDS = float(SEARCH["job_timeout_seconds"])

# --- Pass relaxation ---
RELAXATION = _settings["relaxation"]

# --- Result cache ---
CACHE = _settings["cache"]

# --- Fetching ---
FETCH = _settings["fetch"]
MANAGED_RENDER = _settings["managed_render"]

# --- Sources ---
SOURCES = _settings["sources"]

# --- API Keys & Secrets (from .env) ---
ZENROWS_API_KEY = os.getenv("ZENROWS_API_KEY", "")
PLAYWRIGHT_HEADLESS = os.getenv("PLAYWRIGHT_HEADLESS", "1") == "1"

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = Path(os.getenv("CAR_FINDER_LOG_DIR", PROJECT_ROOT / "logs"))
LOG_FILE = LOG_DIR / "car_finder.log"


def validate_config():
    """Check that critical configuration is present."""
    warnings = []

    if not ZENROWS_API_KEY:
        warnings.append("ZENROWS_API_KEY is not set - managed-render strategy is unavailable")

    enabled = [key for key, src in SOURCES.items() if src.get("enabled", True)]
    if not enabled:
        warnings.append("No source is enabled in settings.yaml - searches will return nothing")

    for key, src in SOURCES.items():
        if not src.get("strategies"):
            warnings.append(f"Source '{key}' declares no fetch strategy")
        if not src.get("enabled", True) and not src.get("reason"):
            warnings.append(f"Source '{key}' is disabled without a recorded reason")

    if MAX_CONCURRENCY < 1:
        warnings.append("search.max_concurrency must be >= 1")

    return warnings
