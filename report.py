"""Report assembly: drives fetch -> score -> narrate per workflow and streams results in order."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Protocol, TypeVar

from errors import (
    AnalysisTimeoutError,
    InsightUnavailableError,
    InvalidInputError,
    SchemaError,
    UpstreamError,
    WorkflowHealthError,
)
from gh_client import DEFAULT_RUN_LIMIT, is_valid_name, parse_repo_slug
from insights import InsightGenerator
from models import HealthAssessment, Report, ReportEvent, RunStatistics, Workflow, WorkflowRun
from scoring import DEFAULT_PARAMS, ScoringParams, assessment_from_stats, degraded_assessment, score_runs

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkflowSource(Protocol):
    """The subset of GitHubClient the orchestrator depends on."""

    async def fetch_workflows(self, owner: str, repo: str) -> list[Workflow]: ...

    async def fetch_workflow_runs(
        self, owner: str, repo: str, workflow_id: int, limit: int = DEFAULT_RUN_LIMIT
    ) -> list[WorkflowRun]: ...


@dataclass(frozen=True)
class AnalysisOptions:
    """Per-request limits and retry policy."""

    max_concurrency: int = 4  # concurrent run-history fetches
    insight_concurrency: int = 4  # concurrent narrative requests
    run_limit: int = DEFAULT_RUN_LIMIT
    request_timeout: float | None = 120.0
    insight_timeout: float | None = 20.0
    fetch_retries: int = 2
    retry_backoff: float = 0.5
    max_retry_wait: float = 30.0
    scoring: ScoringParams = field(default_factory=lambda: DEFAULT_PARAMS)


DEFAULT_OPTIONS = AnalysisOptions()


def resolve_repository(owner: str, repo: str | None = None) -> tuple[str, str]:
    """Validate and normalize the requested repository.

    With `repo` omitted, `owner` may hold an "owner/repo" slug or a GitHub URL.

    Raises:
        InvalidInputError: if the identifier is not a non-empty owner/repo pair.
    """
    if repo is None:
        parsed = parse_repo_slug(owner or "")
        if parsed is None:
            raise InvalidInputError(
                f"Invalid repository {owner!r}: enter it in the format owner/repo"
            )
        return parsed

    owner, repo = (owner or "").strip(), repo.strip()
    if not is_valid_name(owner) or not is_valid_name(repo):
        raise InvalidInputError(
            f"Invalid repository {owner!r}/{repo!r}: owner and repo must be non-empty GitHub names"
        )
    return owner, repo


async def _with_retries(call: Callable[[], Awaitable[T]], options: AnalysisOptions, what: str) -> T:
    """Run `call`, retrying retryable UpstreamErrors with exponential backoff."""
    attempt = 0
    while True:
        try:
            return await call()
        except UpstreamError as e:
            if attempt >= options.fetch_retries or not e.retryable:
                raise
            delay = e.retry_after if e.retry_after is not None else options.retry_backoff * 2**attempt
            if delay > options.max_retry_wait:
                raise
            attempt += 1
            logger.info("Retrying %s in %.1fs (attempt %d): %s", what, delay, attempt, e)
            await asyncio.sleep(delay)


async def _before_deadline(awaitable: Awaitable[T], deadline: float | None, repository: str) -> T:
    """Await `awaitable`, raising AnalysisTimeoutError once the request deadline passes."""
    if deadline is None:
        return await awaitable
    remaining = deadline - asyncio.get_running_loop().time()
    try:
        return await asyncio.wait_for(awaitable, timeout=max(remaining, 0))
    except asyncio.TimeoutError:
        raise AnalysisTimeoutError(f"Analysis of {repository} timed out") from None


async def _assess(
    client: WorkflowSource,
    owner: str,
    repo: str,
    workflow: Workflow,
    limit: asyncio.Semaphore,
    options: AnalysisOptions,
) -> tuple[HealthAssessment, RunStatistics | None]:
    """Fetch and score one workflow; fetch failures degrade only this workflow."""
    async with limit:
        try:
            runs = await _with_retries(
                lambda: client.fetch_workflow_runs(owner, repo, workflow.id, limit=options.run_limit),
                options,
                f"runs of workflow {workflow.id}",
            )
        except (UpstreamError, SchemaError) as e:
            logger.warning("Workflow %r (%d) degraded: %s", workflow.name, workflow.id, e)
            return degraded_assessment(workflow, f"Run history unavailable: {e}"), None

    stats = score_runs(workflow.name, runs, options.scoring)
    return assessment_from_stats(workflow, stats), stats


async def _narrate(
    assessed: Awaitable[tuple[HealthAssessment, RunStatistics | None]],
    insights: InsightGenerator,
    limit: asyncio.Semaphore,
    options: AnalysisOptions,
) -> str | None:
    """Request a narrative once the workflow is scored; failures leave it empty."""
    assessment, stats = await assessed
    if stats is None:
        return None
    async with limit:
        try:
            summary = insights.summarize(assessment.name, stats)
            if options.insight_timeout:
                return await asyncio.wait_for(summary, timeout=options.insight_timeout)
            return await summary
        except InsightUnavailableError as e:
            logger.warning("No narrative for %r: %s", assessment.name, e)
        except asyncio.TimeoutError:
            logger.warning("Narrative for %r timed out after %ss", assessment.name, options.insight_timeout)
        except Exception as e:
            logger.warning("Narrative for %r failed: %s: %s", assessment.name, type(e).__name__, e)
    return None


async def stream_report(
    owner: str,
    repo: str | None,
    client: WorkflowSource,
    insights: InsightGenerator | None = None,
    options: AnalysisOptions = DEFAULT_OPTIONS,
) -> AsyncIterator[ReportEvent]:
    """Analyze a repository's workflows, yielding events as results become available.

    Events, in order:
      - started: repository and workflow count, once the listing arrives
      - assessment: one per workflow, in listing order, without narrative
      - summary: one per workflow that received a narrative, in listing order
      - report: the complete Report

    Raises:
        InvalidInputError: before any network call, for a malformed repository.
        UpstreamError, SchemaError: if the workflow listing cannot be retrieved.
        AnalysisTimeoutError: if the request deadline passes before all assessments are in.
    """
    owner, repo = resolve_repository(owner, repo)
    repository = f"{owner}/{repo}"
    deadline = None
    if options.request_timeout:
        deadline = asyncio.get_running_loop().time() + options.request_timeout

    workflows = await _before_deadline(
        _with_retries(lambda: client.fetch_workflows(owner, repo), options, f"workflows of {repository}"),
        deadline,
        repository,
    )
    yield ReportEvent(event="started", data={"repository": repository, "workflowCount": len(workflows)})

    fetch_limit = asyncio.Semaphore(options.max_concurrency)
    insight_limit = asyncio.Semaphore(options.insight_concurrency)
    assess_tasks = [
        asyncio.create_task(_assess(client, owner, repo, workflow, fetch_limit, options))
        for workflow in workflows
    ]
    narrate_tasks = []
    if insights is not None:
        narrate_tasks = [
            asyncio.create_task(_narrate(task, insights, insight_limit, options)) for task in assess_tasks
        ]

    try:
        assessments: list[HealthAssessment] = []
        # Tasks may finish in any order; emit strictly in listing order
        for index, task in enumerate(assess_tasks):
            assessment, _ = await _before_deadline(asyncio.shield(task), deadline, repository)
            assessments.append(assessment)
            yield ReportEvent(
                event="assessment",
                data={"index": index, "assessment": assessment.model_dump(mode="json", by_alias=True)},
            )

        for index, task in enumerate(narrate_tasks):
            try:
                summary = await _before_deadline(asyncio.shield(task), deadline, repository)
            except AnalysisTimeoutError:
                logger.warning("Deadline reached for %s; finishing without remaining narratives", repository)
                break
            if summary is None:
                continue
            assessments[index] = assessments[index].model_copy(update={"summary": summary})
            yield ReportEvent(
                event="summary",
                data={"index": index, "name": assessments[index].name, "summary": summary},
            )

        report = Report(repository=repository, workflows=assessments)
        degraded = sum(1 for a in assessments if a.degraded)
        logger.info("Report for %s: %d workflows, %d degraded", repository, len(assessments), degraded)
        yield ReportEvent(event="report", data={"report": report.model_dump(mode="json", by_alias=True)})
    finally:
        # Abandon in-flight work when the caller stops consuming or the deadline passes
        for task in [*assess_tasks, *narrate_tasks]:
            if not task.done():
                task.cancel()


async def build_report(
    owner: str,
    repo: str | None,
    client: WorkflowSource,
    insights: InsightGenerator | None = None,
    options: AnalysisOptions = DEFAULT_OPTIONS,
) -> Report:
    """Run the full analysis and return only the final Report."""
    report: Report | None = None
    events = stream_report(owner, repo, client, insights, options)
    try:
        async for event in events:
            if event.event == "report":
                report = Report.model_validate(event.data["report"])
    finally:
        await events.aclose()
    if report is None:
        raise WorkflowHealthError(f"Analysis of {owner} ended without a report")
    return report
