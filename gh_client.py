"""GitHub Actions fetcher: paginated REST retrieval of workflows and their run history."""

from __future__ import annotations

import logging
import re
import time
from contextlib import aclosing
from typing import Any

import httpx

from errors import UpstreamError
from models import Workflow, WorkflowRun, WorkflowRunsPage, WorkflowsPage
from validator import decode_json, validate_payload

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "GitHub-Workflow-Health-Checker"
API_VERSION = "2022-11-28"
MAX_PER_PAGE = 100
DEFAULT_RUN_LIMIT = 100

# GitHub owner and repository names: letters, digits, '-', '_' and '.'
_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")
_HTTPS_URL_RE = re.compile(r"^https://github\.com/([^/]+)/([^/]+?)(?:\.git)?/?$")
_SSH_URL_RE = re.compile(r"^git@github\.com:([^/]+)/([^/]+?)(?:\.git)?/?$")


class GitHubClient:
    """Async client for the GitHub Actions REST endpoints used by the health report.

    The client performs no retries; callers decide whether an UpstreamError is
    worth another attempt.
    """

    def __init__(
        self,
        token: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._http = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": USER_AGENT,
            },
        )

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def fetch_workflows(self, owner: str, repo: str) -> list[Workflow]:
        """Fetch every workflow defined in a repository, following pagination."""
        path = f"/repos/{owner}/{repo}/actions/workflows"
        workflows: list[Workflow] = []
        async for body in self._paginate(path, {"per_page": MAX_PER_PAGE}):
            page = validate_payload(body, WorkflowsPage, source=path)
            workflows.extend(page.workflows)
        logger.info("Fetched %d workflows for %s/%s", len(workflows), owner, repo)
        return workflows

    async def fetch_workflow_runs(
        self,
        owner: str,
        repo: str,
        workflow_id: int,
        limit: int = DEFAULT_RUN_LIMIT,
    ) -> list[WorkflowRun]:
        """Fetch up to `limit` most recent runs of a workflow.

        Returns:
            Runs sorted oldest to newest by creation time (ties broken by id).
        """
        path = f"/repos/{owner}/{repo}/actions/workflows/{workflow_id}/runs"
        per_page = max(1, min(limit, MAX_PER_PAGE))
        runs: list[WorkflowRun] = []
        async with aclosing(self._paginate(path, {"per_page": per_page})) as pages:
            async for body in pages:
                page = validate_payload(body, WorkflowRunsPage, source=path)
                runs.extend(page.workflow_runs)
                if len(runs) >= limit:
                    break

        # The API lists newest first; keep the newest `limit` after de-duplicating
        # runs that shifted across page boundaries.
        unique = {run.id: run for run in runs}
        newest = sorted(unique.values(), key=lambda r: (r.created_at, r.id), reverse=True)[:limit]
        logger.debug("Fetched %d runs for workflow %s in %s/%s", len(newest), workflow_id, owner, repo)
        return list(reversed(newest))

    async def _paginate(self, path: str, params: dict[str, Any] | None = None):
        """Yield decoded JSON bodies, following `Link: rel="next"` headers."""
        url: str | None = path
        query = params
        while url:
            response = await self._get(url, query)
            yield decode_json(response.text, source=path)
            url = _next_link(response.headers.get("Link"))
            # The next link already carries the query string
            query = None

    async def _get(self, url: str, params: dict[str, Any] | None) -> httpx.Response:
        try:
            response = await self._http.get(url, params=params)
        except httpx.TimeoutException as e:
            raise UpstreamError(f"GitHub API request timed out: {url}") from e
        except httpx.RequestError as e:
            raise UpstreamError(f"GitHub API unreachable: {type(e).__name__}: {e}") from e

        if response.is_success:
            return response
        raise _upstream_error(response)


def _next_link(link_header: str | None) -> str | None:
    """Extract the rel="next" URL from a GitHub Link header."""
    if not link_header:
        return None
    for part in link_header.split(","):
        segment = part.strip()
        if segment.endswith('rel="next"'):
            return segment[segment.find("<") + 1 : segment.find(">")]
    return None


def _upstream_error(response: httpx.Response) -> UpstreamError:
    """Build an UpstreamError from a non-2xx response, detecting rate limits."""
    message = response.reason_phrase or "request failed"
    try:
        body = response.json()
        if isinstance(body, dict) and isinstance(body.get("message"), str):
            message = body["message"]
    except ValueError:
        pass

    rate_limited = response.status_code == 429 or (
        response.status_code == 403
        and (response.headers.get("X-RateLimit-Remaining") == "0" or "rate limit" in message.lower())
    )
    retry_after = _retry_after(response.headers) if rate_limited else None

    logger.warning(
        "GitHub API %s %s -> %d (%s)",
        response.request.method,
        response.request.url.path,
        response.status_code,
        message,
    )
    return UpstreamError(
        message,
        status=response.status_code,
        rate_limited=rate_limited,
        retry_after=retry_after,
    )


def _retry_after(headers: httpx.Headers) -> float | None:
    """Seconds to wait before retrying, from Retry-After or X-RateLimit-Reset."""
    retry_after = headers.get("Retry-After")
    if retry_after:
        try:
            return float(retry_after)
        except ValueError:
            pass
    reset = headers.get("X-RateLimit-Reset")
    if reset:
        try:
            return max(float(reset) - time.time(), 1.0)
        except ValueError:
            pass
    return None


def parse_github_url(url: str) -> tuple[str, str] | None:
    """Extract (owner, repo) from a GitHub URL.

    Handles:
      - https://github.com/owner/repo
      - https://github.com/owner/repo.git
      - git@github.com:owner/repo.git

    Dots inside the repository name are kept (owner/next.js); only a trailing
    ".git" is dropped. Segments that are not valid GitHub names yield None.
    """
    match = _HTTPS_URL_RE.match(url) or _SSH_URL_RE.match(url)
    if not match:
        return None
    owner, repo = match.group(1), match.group(2)
    if not is_valid_name(owner) or not is_valid_name(repo):
        return None
    return owner, repo


def parse_repo_slug(text: str) -> tuple[str, str] | None:
    """Extract (owner, repo) from "owner/repo" or a GitHub URL; None if neither."""
    text = text.strip()
    if text.startswith(("https://", "git@")):
        return parse_github_url(text)

    parts = [p.strip() for p in text.split("/")]
    if len(parts) != 2:
        return None
    owner, repo = parts
    if not is_valid_name(owner) or not is_valid_name(repo):
        return None
    return owner, repo


def is_valid_name(name: str) -> bool:
    """True if `name` is a plausible GitHub owner or repository name."""
    return bool(name) and name not in (".", "..") and bool(_NAME_RE.match(name))
