"""Process configuration: credentials, CORS allow-list and analysis tuning, read once at startup."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import Mapping

from errors import ConfigurationError
from gh_client import DEFAULT_API_URL, DEFAULT_RUN_LIMIT
from insights import DEFAULT_MODEL
from report import AnalysisOptions

DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:4200",
    "https://github-griller.web.app",
)


@dataclass(frozen=True)
class Settings:
    """Configuration constructed once at startup and passed down explicitly."""

    github_token: str
    anthropic_api_key: str | None = None
    insight_provider: str = "anthropic"  # "anthropic" | "template"
    insight_model: str = DEFAULT_MODEL
    github_api_url: str = DEFAULT_API_URL
    allowed_origins: tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    max_concurrency: int = 4
    run_limit: int = DEFAULT_RUN_LIMIT
    request_timeout: float = 120.0
    insight_timeout: float = 20.0
    log_level: str = "INFO"

    def analysis_options(self) -> AnalysisOptions:
        return AnalysisOptions(
            max_concurrency=self.max_concurrency,
            run_limit=self.run_limit,
            request_timeout=self.request_timeout,
            insight_timeout=self.insight_timeout,
        )


def _number(env: Mapping[str, str], name: str, default: float, cast=float):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return cast(default)
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables.

    Priority: explicit `env` mapping > process environment. Missing credentials
    are fatal here rather than on the first request.
    """
    env = os.environ if env is None else env

    github_token = (env.get("GITHUB_TOKEN") or "").strip()
    if not github_token:
        raise ConfigurationError("GITHUB_TOKEN is not set")

    provider = (env.get("INSIGHT_PROVIDER") or "anthropic").strip().lower()
    anthropic_api_key = (env.get("ANTHROPIC_API_KEY") or "").strip() or None
    if provider == "anthropic" and not anthropic_api_key:
        raise ConfigurationError("ANTHROPIC_API_KEY is not set (or set INSIGHT_PROVIDER=template)")
    if provider not in ("anthropic", "template"):
        raise ConfigurationError(f"Unknown INSIGHT_PROVIDER: {provider!r}")

    origins_raw = env.get("WORKFLOW_HEALTH_ALLOWED_ORIGINS")
    if origins_raw:
        allowed_origins = tuple(o.strip() for o in origins_raw.split(",") if o.strip())
    else:
        allowed_origins = DEFAULT_ALLOWED_ORIGINS

    return Settings(
        github_token=github_token,
        anthropic_api_key=anthropic_api_key,
        insight_provider=provider,
        insight_model=env.get("INSIGHT_MODEL") or DEFAULT_MODEL,
        github_api_url=env.get("GITHUB_API_URL") or DEFAULT_API_URL,
        allowed_origins=allowed_origins,
        max_concurrency=_number(env, "WORKFLOW_HEALTH_MAX_CONCURRENCY", 4, int),
        run_limit=_number(env, "WORKFLOW_HEALTH_RUN_LIMIT", DEFAULT_RUN_LIMIT, int),
        request_timeout=_number(env, "WORKFLOW_HEALTH_REQUEST_TIMEOUT", 120.0),
        insight_timeout=_number(env, "WORKFLOW_HEALTH_INSIGHT_TIMEOUT", 20.0),
        log_level=(env.get("WORKFLOW_HEALTH_LOG_LEVEL") or "INFO").upper(),
    )


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once; later calls only adjust the level."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Prevent duplicate handlers on repeated calls
    if root_logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root_logger.addHandler(handler)

    # Suppress noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
