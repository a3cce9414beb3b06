"""Narrative generation for workflow health, behind a swappable interface."""

from __future__ import annotations

import logging
from typing import Protocol

from anthropic import APIError, AsyncAnthropic

from errors import ConfigurationError, InsightUnavailableError
from models import HealthStatus, RunStatistics, Trend

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-3-5-haiku-latest"


class InsightGenerator(Protocol):
    """Produces a short narrative for a workflow's already-computed statistics."""

    async def summarize(self, workflow_name: str, stats: RunStatistics) -> str:
        """Return 2-3 lines of prose, or raise InsightUnavailableError."""
        ...


def build_prompt(workflow_name: str, stats: RunStatistics) -> str:
    """Prompt that hands the model the final numbers; it writes prose only."""
    recent = ", ".join(stats.recent_conclusions) or "none"
    weighted = f"{stats.weighted_success_rate}%" if stats.weighted_success_rate is not None else "n/a"
    return f"""You are a DevOps reliability analyst. Write a 2-3 line summary of the health of the
GitHub Actions workflow "{workflow_name}" for an engineer skimming a dashboard.

The classification below is final. Do not recompute or contradict it.

Status: {stats.status.value} ({stats.status_percentage}%)
Total runs: {stats.total_runs}
Successful runs: {stats.successful_runs}
Failed runs: {stats.failed_runs}
Success rate: {stats.success_rate}%
Recency-weighted success rate: {weighted}
Trend: {stats.trend.value}
Current consecutive failures: {stats.failure_streak}
Failure clustering detected: {"yes" if stats.clustered else "no"}
Most recent conclusions (newest first): {recent}

Mention the recent trend, any key issue such as a failure streak, and a recommendation if one is needed.
Return ONLY the summary text."""


class AnthropicInsightGenerator:
    """Narratives from the Anthropic Messages API."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, max_tokens: int = 300) -> None:
        self.client = AsyncAnthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens

    async def summarize(self, workflow_name: str, stats: RunStatistics) -> str:
        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0.3,
                messages=[{"role": "user", "content": build_prompt(workflow_name, stats)}],
            )
        except APIError as e:
            logger.warning("Insight generation failed for %s: %s", workflow_name, e)
            raise InsightUnavailableError(f"Narrative unavailable for {workflow_name}: {e}") from e

        text = "".join(block.text for block in message.content if block.type == "text").strip()
        if not text:
            raise InsightUnavailableError(f"Empty narrative for {workflow_name}")
        return text


class TemplateInsightGenerator:
    """Deterministic narratives assembled from the statistics alone."""

    async def summarize(self, workflow_name: str, stats: RunStatistics) -> str:
        if stats.successful_runs + stats.failed_runs == 0:
            return (
                f"{workflow_name} has no completed runs yet ({stats.total_runs} total), "
                "so its health cannot be judged. Re-check once a few runs have finished."
            )

        lines = [
            f"{workflow_name} succeeded in {stats.successful_runs} of "
            f"{stats.successful_runs + stats.failed_runs} completed runs ({stats.success_rate}%)"
            f" and is trending {_TREND_WORDS[stats.trend]}."
        ]
        if stats.clustered:
            lines.append(
                f"Failures are clustering ({stats.failure_streak} in a row most recently); "
                "investigate the latest failing runs before merging further changes."
            )
        elif stats.status is HealthStatus.HEALTHY:
            lines.append("No action needed.")
        else:
            lines.append("Review intermittent failures to stabilize this workflow.")
        return " ".join(lines)


_TREND_WORDS = {
    Trend.IMPROVING: "upward",
    Trend.DEGRADING: "downward",
    Trend.STABLE: "steady",
}


def build_insight_generator(provider: str, api_key: str | None, model: str = DEFAULT_MODEL) -> InsightGenerator:
    """Pick the narrative implementation named by `provider`."""
    if provider == "template":
        return TemplateInsightGenerator()
    if provider == "anthropic":
        if not api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is required when INSIGHT_PROVIDER=anthropic")
        return AnthropicInsightGenerator(api_key=api_key, model=model)
    raise ConfigurationError(f"Unknown INSIGHT_PROVIDER: {provider!r} (expected 'anthropic' or 'template')")
