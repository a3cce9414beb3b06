"""Unit tests for the GitHub client and repository-name helpers."""

import httpx
import pytest

from payloads import run_payload, workflow_payload
from errors import SchemaError, UpstreamError
from gh_client import GitHubClient, USER_AGENT, parse_github_url, parse_repo_slug


def test_parse_github_url_https() -> None:
    assert parse_github_url("https://github.com/octo/workflow-health") == ("octo", "workflow-health")


def test_parse_github_url_https_with_git_suffix() -> None:
    assert parse_github_url("https://github.com/octo/workflow-health.git") == ("octo", "workflow-health")


def test_parse_github_url_ssh() -> None:
    assert parse_github_url("git@github.com:octo/workflow-health.git") == ("octo", "workflow-health")


def test_parse_github_url_non_github_returns_none() -> None:
    assert parse_github_url("https://gitlab.com/octo/workflow-health") is None


def test_parse_github_url_keeps_dots_in_repo_name() -> None:
    assert parse_github_url("https://github.com/vercel/next.js") == ("vercel", "next.js")
    assert parse_github_url("https://github.com/vercel/next.js.git") == ("vercel", "next.js")
    assert parse_github_url("git@github.com:vercel/next.js.git") == ("vercel", "next.js")


@pytest.mark.parametrize(
    "url",
    [
        "https://github.com/../admin",
        "https://github.com/octo/..",
        "https://github.com/octo/app/tree/main",
        "git@github.com:octo/a b.git",
    ],
)
def test_parse_github_url_rejects_invalid_segments(url) -> None:
    assert parse_github_url(url) is None


@pytest.mark.parametrize(
    "text, expected",
    [
        ("octo/app", ("octo", "app")),
        (" octo / my.app ", ("octo", "my.app")),
        ("https://github.com/octo/app", ("octo", "app")),
        ("not-a-repo", None),
        ("octo/", None),
        ("/app", None),
        ("octo/app/extra", None),
        ("octo/a b", None),
    ],
)
def test_parse_repo_slug(text, expected) -> None:
    assert parse_repo_slug(text) == expected


def _client(handler) -> GitHubClient:
    return GitHubClient("ghp_test", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_workflows_follows_pagination_and_sends_headers() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.params.get("page") == "2":
            return httpx.Response(200, json={"total_count": 2, "workflows": [workflow_payload(2, "Deploy")]})
        return httpx.Response(
            200,
            json={"total_count": 2, "workflows": [workflow_payload(1, "CI")]},
            headers={
                "Link": '<https://api.github.com/repos/octo/app/actions/workflows?per_page=100&page=2>; rel="next", '
                '<https://api.github.com/repos/octo/app/actions/workflows?per_page=100&page=2>; rel="last"'
            },
        )

    async with _client(handler) as client:
        workflows = await client.fetch_workflows("octo", "app")

    assert [w.name for w in workflows] == ["CI", "Deploy"]
    assert len(seen) == 2
    assert seen[0].url.path == "/repos/octo/app/actions/workflows"
    assert seen[0].headers["Authorization"] == "Bearer ghp_test"
    assert seen[0].headers["User-Agent"] == USER_AGENT
    assert seen[1].headers["Authorization"] == "Bearer ghp_test"


@pytest.mark.asyncio
async def test_fetch_workflow_runs_returns_chronological_order() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        runs = [run_payload(3), run_payload(1, "failure"), run_payload(2)]
        return httpx.Response(200, json={"total_count": 3, "workflow_runs": runs})

    async with _client(handler) as client:
        runs = await client.fetch_workflow_runs("octo", "app", 1)

    assert [r.id for r in runs] == [1, 2, 3]
    assert requests[0].url.path == "/repos/octo/app/actions/workflows/1/runs"
    assert requests[0].url.params["per_page"] == "100"


@pytest.mark.asyncio
async def test_fetch_workflow_runs_caps_at_limit() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        runs = [run_payload(i) for i in range(10, 0, -1)]
        return httpx.Response(200, json={"total_count": 10, "workflow_runs": runs})

    async with _client(handler) as client:
        runs = await client.fetch_workflow_runs("octo", "app", 1, limit=4)

    assert [r.id for r in runs] == [7, 8, 9, 10]


@pytest.mark.asyncio
async def test_fetch_workflow_runs_closes_pagination_once_limit_is_reached() -> None:
    closed = []

    async def pages(path, params=None):
        try:
            while True:
                yield {"total_count": 500, "workflow_runs": [run_payload(i) for i in range(3, 0, -1)]}
        finally:
            closed.append(path)

    client = _client(lambda request: httpx.Response(500))
    client._paginate = pages
    async with client:
        runs = await client.fetch_workflow_runs("octo", "app", 1, limit=3)

    assert [r.id for r in runs] == [1, 2, 3]
    assert closed == ["/repos/octo/app/actions/workflows/1/runs"]


@pytest.mark.asyncio
async def test_non_2xx_raises_upstream_error_with_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not Found"})

    async with _client(handler) as client:
        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch_workflows("octo", "missing")

    assert exc_info.value.status == 404
    assert exc_info.value.message == "Not Found"
    assert not exc_info.value.rate_limited
    assert not exc_info.value.retryable


@pytest.mark.asyncio
async def test_rate_limit_is_flagged_with_retry_after() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            403,
            json={"message": "API rate limit exceeded for user."},
            headers={"X-RateLimit-Remaining": "0", "Retry-After": "12"},
        )

    async with _client(handler) as client:
        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch_workflows("octo", "app")

    assert exc_info.value.rate_limited
    assert exc_info.value.retry_after == 12.0
    assert exc_info.value.retryable


@pytest.mark.asyncio
async def test_transport_failure_raises_retryable_upstream_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch_workflows("octo", "app")

    assert exc_info.value.status is None
    assert exc_info.value.retryable


@pytest.mark.asyncio
async def test_malformed_run_payload_raises_schema_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        broken = run_payload(1)
        del broken["id"]
        return httpx.Response(200, json={"total_count": 1, "workflow_runs": [broken]})

    async with _client(handler) as client:
        with pytest.raises(SchemaError, match="workflow_runs.0.id"):
            await client.fetch_workflow_runs("octo", "app", 1)


@pytest.mark.asyncio
async def test_non_json_body_raises_schema_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    async with _client(handler) as client:
        with pytest.raises(SchemaError):
            await client.fetch_workflows("octo", "app")
