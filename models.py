"""Pydantic models for workflow-health data, assessments and report payloads."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr
from pydantic.alias_generators import to_camel


# --- GitHub payloads ---


class Workflow(BaseModel):
    """A GitHub Actions workflow definition."""

    model_config = ConfigDict(frozen=True)

    id: StrictInt
    name: StrictStr
    path: StrictStr
    state: StrictStr  # "active" | "disabled_manually" | "disabled_inactivity" | "deleted" | ...
    created_at: datetime
    updated_at: datetime
    url: StrictStr
    html_url: StrictStr
    badge_url: StrictStr

    @property
    def is_active(self) -> bool:
        return self.state == "active"


class WorkflowRun(BaseModel):
    """One execution of a workflow."""

    model_config = ConfigDict(frozen=True)

    id: StrictInt
    name: StrictStr | None = None
    status: StrictStr  # "queued" | "in_progress" | "completed" | ...
    conclusion: StrictStr | None = None  # "success" | "failure" | "cancelled" | ... | None
    workflow_id: StrictInt
    created_at: datetime
    updated_at: datetime
    run_started_at: datetime | None = None
    html_url: StrictStr


class WorkflowsPage(BaseModel):
    """Body of GET /repos/{owner}/{repo}/actions/workflows."""

    total_count: StrictInt
    workflows: list[Workflow]


class WorkflowRunsPage(BaseModel):
    """Body of GET /repos/{owner}/{repo}/actions/workflows/{id}/runs."""

    total_count: StrictInt
    workflow_runs: list[WorkflowRun]


# --- Derived data ---


class HealthStatus(str, Enum):
    HEALTHY = "Healthy"
    NEEDS_IMPROVEMENT = "Needs Improvement"
    AT_RISK = "At Risk"


class Trend(str, Enum):
    IMPROVING = "improving"
    DEGRADING = "degrading"
    STABLE = "stable"


class _WireModel(BaseModel):
    """Serialized with camelCase keys for the front end."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RunStatistics(_WireModel):
    """Scoring output for one workflow; also the input to narrative generation."""

    name: str
    total_runs: int
    successful_runs: int
    failed_runs: int
    success_rate: float
    weighted_success_rate: float | None = None
    trend: Trend
    failure_streak: int
    clustered: bool
    status: HealthStatus
    status_percentage: int
    recent_conclusions: list[str] = []  # newest first


class HealthAssessment(_WireModel):
    """Health verdict for a single workflow."""

    workflow_id: int
    name: str
    status: HealthStatus
    status_percentage: int
    file_path: str
    last_updated: datetime
    total_runs: int
    successful_runs: int
    failed_runs: int
    success_rate: float
    summary: str | None = None
    trend: Trend = Trend.STABLE
    failure_streak: int = 0
    degraded: bool = False
    error: str | None = None


class Report(_WireModel):
    """Complete analysis for one repository."""

    repository: str
    workflows: list[HealthAssessment] = []

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class ReportEvent(BaseModel):
    """A streamed chunk of an in-progress report."""

    event: Literal["started", "assessment", "summary", "report", "error"]
    data: dict[str, Any]


# --- Requests ---


class AnalyzeRequest(BaseModel):
    """Inbound analysis request."""

    owner: str
    repo: str | None = None
