"""Health scoring: recency-weighted success rate, failure clustering and trend per workflow."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from models import HealthAssessment, HealthStatus, RunStatistics, Trend, Workflow, WorkflowRun

SUCCESS = "success"
FAILURE = "failure"

HEALTHY_THRESHOLD = 80
NEEDS_IMPROVEMENT_THRESHOLD = 50

# Percentage reported while a workflow has no completed runs to judge
NO_DATA_PERCENTAGE = 50


@dataclass(frozen=True)
class ScoringParams:
    """Tunable knobs for the scoring engine."""

    decay: float = 0.9  # weight multiplier per step back in time, in (0, 1)
    cluster_window: int = 10  # trailing completed runs inspected for failure streaks
    cluster_threshold: int = 3  # consecutive failures that mark a workflow unstable
    trend_tolerance: float = 0.10  # weighted-rate delta treated as noise
    min_trend_runs: int = 4
    recent_conclusions: int = 10  # conclusions passed along for narratives

    def __post_init__(self) -> None:
        if not 0 < self.decay < 1:
            raise ValueError(f"decay must be in (0, 1), got {self.decay}")
        if self.cluster_threshold < 1 or self.cluster_window < self.cluster_threshold:
            raise ValueError("cluster_window must be at least cluster_threshold, which must be positive")


DEFAULT_PARAMS = ScoringParams()


def classify(percentage: int) -> HealthStatus:
    """Map a 0-100 health percentage to its bucket (lower edges inclusive)."""
    if percentage >= HEALTHY_THRESHOLD:
        return HealthStatus.HEALTHY
    if percentage >= NEEDS_IMPROVEMENT_THRESHOLD:
        return HealthStatus.NEEDS_IMPROVEMENT
    return HealthStatus.AT_RISK


def weighted_success_rate(outcomes: Sequence[bool], decay: float) -> float | None:
    """Success rate where the newest outcome weighs 1 and each older one `decay` times less.

    Args:
        outcomes: True for success, ordered oldest to newest.
        decay: Per-rank weight multiplier in (0, 1).

    Returns:
        Rate in [0, 1], or None for an empty sequence.
    """
    if not outcomes:
        return None
    total_weight = 0.0
    success_weight = 0.0
    for rank, succeeded in enumerate(reversed(outcomes)):
        weight = decay**rank
        total_weight += weight
        if succeeded:
            success_weight += weight
    return success_weight / total_weight


def longest_failure_streak(outcomes: Sequence[bool]) -> int:
    """Longest run of consecutive failures in `outcomes`."""
    longest = current = 0
    for succeeded in outcomes:
        current = 0 if succeeded else current + 1
        longest = max(longest, current)
    return longest


def current_failure_streak(outcomes: Sequence[bool]) -> int:
    """Consecutive failures at the newest end of `outcomes`."""
    streak = 0
    for succeeded in reversed(outcomes):
        if succeeded:
            break
        streak += 1
    return streak


def detect_trend(outcomes: Sequence[bool], params: ScoringParams = DEFAULT_PARAMS) -> Trend:
    """Compare the weighted rate of the newer half of outcomes against the older half."""
    if len(outcomes) < max(params.min_trend_runs, 2):
        return Trend.STABLE
    split = len(outcomes) // 2
    older = weighted_success_rate(outcomes[:split], params.decay)
    newer = weighted_success_rate(outcomes[split:], params.decay)
    delta = newer - older
    if delta > params.trend_tolerance:
        return Trend.IMPROVING
    if delta < -params.trend_tolerance:
        return Trend.DEGRADING
    return Trend.STABLE


def score_runs(
    name: str,
    runs: Sequence[WorkflowRun],
    params: ScoringParams = DEFAULT_PARAMS,
) -> RunStatistics:
    """Score a workflow's run history.

    Args:
        name: Workflow name, carried into the statistics.
        runs: Run history ordered oldest to newest.
        params: Scoring knobs.

    Only runs concluding in success or failure feed the rates; every run counts
    towards total_runs. A workflow with no such runs gets NO_DATA_PERCENTAGE.
    """
    outcomes = [run.conclusion == SUCCESS for run in runs if run.conclusion in (SUCCESS, FAILURE)]
    successful = sum(outcomes)
    failed = len(outcomes) - successful

    weighted = weighted_success_rate(outcomes, params.decay)
    window = outcomes[-params.cluster_window :]
    clustered = longest_failure_streak(window) >= params.cluster_threshold

    if weighted is None:
        percentage = NO_DATA_PERCENTAGE
    else:
        percentage = round(weighted * 100)
        if clustered:
            percentage = min(percentage, HEALTHY_THRESHOLD - 1)

    recent = [
        run.conclusion
        for run in reversed(runs)
        if run.conclusion in (SUCCESS, FAILURE)
    ][: params.recent_conclusions]

    return RunStatistics(
        name=name,
        total_runs=len(runs),
        successful_runs=successful,
        failed_runs=failed,
        success_rate=round(successful / len(outcomes) * 100, 1) if outcomes else 0.0,
        weighted_success_rate=round(weighted * 100, 1) if weighted is not None else None,
        trend=detect_trend(outcomes, params),
        failure_streak=current_failure_streak(outcomes),
        clustered=clustered,
        status=classify(percentage),
        status_percentage=percentage,
        recent_conclusions=recent,
    )


def assess_workflow(
    workflow: Workflow,
    runs: Sequence[WorkflowRun],
    params: ScoringParams = DEFAULT_PARAMS,
) -> HealthAssessment:
    """Build the HealthAssessment for one workflow from its run history."""
    stats = score_runs(workflow.name, runs, params)
    return assessment_from_stats(workflow, stats)


def assessment_from_stats(workflow: Workflow, stats: RunStatistics, **overrides) -> HealthAssessment:
    """Combine workflow metadata with computed statistics."""
    fields = dict(
        workflow_id=workflow.id,
        name=workflow.name,
        status=stats.status,
        status_percentage=stats.status_percentage,
        file_path=workflow.path,
        last_updated=workflow.updated_at,
        total_runs=stats.total_runs,
        successful_runs=stats.successful_runs,
        failed_runs=stats.failed_runs,
        success_rate=stats.success_rate,
        trend=stats.trend,
        failure_streak=stats.failure_streak,
    )
    fields.update(overrides)
    return HealthAssessment(**fields)


def degraded_assessment(workflow: Workflow, reason: str) -> HealthAssessment:
    """Placeholder assessment for a workflow whose runs could not be retrieved."""
    stats = score_runs(workflow.name, [])
    return assessment_from_stats(workflow, stats, degraded=True, error=reason)
