"""Runtime configuration.

Limits are module constants; credentials and endpoints come from the
environment through Settings.from_env().
"""

from __future__ import annotations

import os
from dataclasses import dataclass

GITHUB_API_BASE = "https://api.github.com"
GITHUB_WEB_BASE = "https://github.com"

# Accepted names for the GitHub token, first non-empty wins
GITHUB_TOKEN_VARS = ("GITHUB_TOKEN", "GH_TOKEN")
LLM_API_KEY_VAR = "OPENAI_API_KEY"
LLM_BASE_URL_VAR = "REPOLENS_LLM_BASE_URL"
LLM_MODEL_VAR = "REPOLENS_LLM_MODEL"

DEFAULT_LLM_BASE_URL = "https://api.openai.com/v1"
DEFAULT_LLM_MODEL = "gpt-4o-mini"

# HTTP client
MIN_REQUEST_INTERVAL = 1.0  # seconds between upstream calls
RATE_LIMIT_LOW_WATER = 10
MAX_ATTEMPTS = 3
REQUEST_TIMEOUT = 30

# Fetcher bounds
PER_PAGE = 100
PRIMARY_BRANCH_PAGES = 3
BRANCH_PAGES = 2
MAX_BRANCHES = 20
STALE_AFTER_DAYS = 90
RECENT_CHANGE_LIMIT = 10
DIFF_EXCERPT_CHARS = 2000

CACHE_TTL = 300  # 5 minutes

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8420


def github_token_from_env(environ: dict[str, str] | None = None) -> str | None:
    """Return the first configured GitHub token alias, or None."""
    environ = os.environ if environ is None else environ
    for name in GITHUB_TOKEN_VARS:
        value = environ.get(name, "").strip()
        if value:
            return value
    return None


@dataclass
class Settings:
    """Process configuration resolved once at startup."""

    github_token: str | None = None
    llm_api_key: str | None = None
    llm_base_url: str = DEFAULT_LLM_BASE_URL
    llm_model: str = DEFAULT_LLM_MODEL

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        environ = os.environ if environ is None else environ
        return cls(
            github_token=github_token_from_env(environ),
            llm_api_key=environ.get(LLM_API_KEY_VAR, "").strip() or None,
            llm_base_url=environ.get(LLM_BASE_URL_VAR, "").strip() or DEFAULT_LLM_BASE_URL,
            llm_model=environ.get(LLM_MODEL_VAR, "").strip() or DEFAULT_LLM_MODEL,
        )
