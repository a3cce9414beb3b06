"""Unit tests for payload validation."""

import pytest

from errors import SchemaError
from models import WorkflowRunsPage, WorkflowsPage
from payloads import run_payload, workflow_payload
from validator import decode_json, validate_payload


def test_valid_runs_page_is_normalized() -> None:
    page = validate_payload(
        {"total_count": 2, "workflow_runs": [run_payload(1), run_payload(2, None, status="in_progress")]},
        WorkflowRunsPage,
    )
    assert [run.id for run in page.workflow_runs] == [1, 2]
    assert page.workflow_runs[1].conclusion is None
    assert page.workflow_runs[0].created_at.tzinfo is not None


def test_missing_run_id_rejects_whole_payload() -> None:
    broken = run_payload(2)
    del broken["id"]
    with pytest.raises(SchemaError, match=r"workflow_runs\.1\.id: Field required"):
        validate_payload({"total_count": 2, "workflow_runs": [run_payload(1), broken]}, WorkflowRunsPage)


def test_wrong_primitive_type_is_rejected() -> None:
    broken = workflow_payload()
    broken["id"] = "1"
    with pytest.raises(SchemaError, match=r"workflows\.0\.id"):
        validate_payload({"total_count": 1, "workflows": [broken]}, WorkflowsPage)


def test_null_in_non_nullable_field_is_rejected() -> None:
    broken = workflow_payload()
    broken["name"] = None
    with pytest.raises(SchemaError, match=r"workflows\.0\.name"):
        validate_payload({"total_count": 1, "workflows": [broken]}, WorkflowsPage)


def test_error_names_source() -> None:
    with pytest.raises(SchemaError, match="/repos/octo/app/actions/workflows"):
        validate_payload({"workflows": []}, WorkflowsPage, source="/repos/octo/app/actions/workflows")


def test_decode_json_rejects_non_json() -> None:
    with pytest.raises(SchemaError, match="Invalid JSON"):
        decode_json("<html></html>")
