"""Shared fixtures for building workflows and run histories."""

import pytest

from models import Workflow, WorkflowRun
from payloads import run_payload, workflow_payload


@pytest.fixture
def make_workflow():
    def _make(workflow_id: int = 1, name: str = "CI", path: str = ".github/workflows/ci.yml") -> Workflow:
        return Workflow.model_validate(workflow_payload(workflow_id, name, path))

    return _make


@pytest.fixture
def make_runs():
    """Build a chronological run history from conclusions, oldest first.

    "queued" and "in_progress" entries become non-terminal runs.
    """

    def _make(conclusions: list, workflow_id: int = 1) -> list[WorkflowRun]:
        runs = []
        for i, conclusion in enumerate(conclusions, start=1):
            if conclusion in ("queued", "in_progress"):
                payload = run_payload(i, None, workflow_id, status=conclusion)
            else:
                payload = run_payload(i, conclusion, workflow_id)
            runs.append(WorkflowRun.model_validate(payload))
        return runs

    return _make
