"""Runtime settings for the profile email finder.

Values come from the process environment (optionally seeded from a ``.env``
file) and are read once at import time.
"""

from __future__ import annotations

import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return float(default)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return int(default)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# ───────────────────── HTTP fetching ─────────────────────
HTTP_TIMEOUT   = _env_float("HTTP_TIMEOUT", 10.0)
MAX_REDIRECTS  = _env_int("MAX_REDIRECTS", 5)
HTTP_RETRIES   = _env_int("HTTP_RETRIES", 2)
HTTP_BACKOFF   = _env_float("HTTP_BACKOFF", 0.6)

USER_AGENT_POOL: List[str] = [
    (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/125.0.0.0 Safari/537.36"
    ),
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/125.0.0.0 Safari/537.36"
    ),
    (
        "Mozilla/5.0 (X11; Linux x86_64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/124.0.0.0 Safari/537.36"
    ),
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:126.0) "
        "Gecko/20100101 Firefox/126.0"
    ),
]

ACCEPT_LANGUAGE_POOL: List[str] = [
    "en-US,en;q=0.9",
    "en-US,en;q=0.8,es;q=0.5",
    "en-CA,en;q=0.8",
    "en-GB,en;q=0.9",
]

# ───────────────────── headless browser ─────────────────────
HEADLESS_FALLBACK         = _env_bool("HEADLESS_FALLBACK", True)
RENDER_TIMEOUT_MS         = _env_int("RENDER_TIMEOUT_MS", 15000)
SEARCH_TIMEOUT_MS         = _env_int("SEARCH_TIMEOUT_MS", 20000)
SEARCH_SETTLE_MS          = _env_int("SEARCH_SETTLE_MS", 2000)
HEADLESS_BROWSER_CACHE    = os.getenv(
    "HEADLESS_BROWSER_CACHE",
    os.path.join(os.path.expanduser("~"), ".cache", "ms-playwright"),
)
HEADLESS_BROWSER_DOWNLOAD = _env_bool("HEADLESS_BROWSER_DOWNLOAD", False)

# ───────────────────── discovery ─────────────────────
QUERY_DELAY           = _env_float("QUERY_DELAY", 2.0)
MAX_QUERIES           = _env_int("MAX_QUERIES", 6)
RESULTS_PER_QUERY     = _env_int("RESULTS_PER_QUERY", 5)
FETCH_CONCURRENCY     = _env_int("FETCH_CONCURRENCY", 4)
MAX_LIMIT             = _env_int("MAX_LIMIT", 50)
DEMO_MODE             = _env_bool("DEMO_MODE", False)
DEFAULT_SEARCH_ENGINE = os.getenv("DEFAULT_SEARCH_ENGINE", "Google")

# ───────────────────── AI name inference ─────────────────────
OPENAI_API_KEY          = os.getenv("OPENAI_API_KEY", "").strip()
OPENAI_NAME_MODEL       = os.getenv("OPENAI_NAME_MODEL", "gpt-4o-mini")
AI_TIMEOUT              = _env_float("AI_TIMEOUT", 20.0)
AI_CONFIDENCE_THRESHOLD = _env_float("AI_CONFIDENCE_THRESHOLD", 0.80)
AI_BATCH_SIZE           = _env_int("AI_BATCH_SIZE", 5)
AI_BATCH_PAUSE          = _env_float("AI_BATCH_PAUSE", 0.5)

# ───────────────────── storage & API ─────────────────────
RESULTS_DB_PATH = os.getenv("RESULTS_DB_PATH", "email_results.db")
CACHE_TTL_HOURS = _env_float("CACHE_TTL_HOURS", 24.0)
LOGLEVEL        = os.getenv("LOGLEVEL", "INFO")
API_HOST        = os.getenv("API_HOST", "0.0.0.0")
API_PORT        = _env_int("PORT", 8000)
