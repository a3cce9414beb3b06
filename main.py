"""FastAPI app for workflow-health: GitHub Actions reliability reports, whole or streamed.

Run with: uvicorn main:create_app --factory
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sse_starlette.sse import EventSourceResponse

from config import Settings, load_settings, setup_logging
from errors import (
    AnalysisTimeoutError,
    InvalidInputError,
    SchemaError,
    UpstreamError,
    WorkflowHealthError,
)
from gh_client import GitHubClient
from insights import InsightGenerator, build_insight_generator
from models import AnalyzeRequest
from report import WorkflowSource, build_report, resolve_repository, stream_report

logger = logging.getLogger(__name__)

router = APIRouter()


def _status_for(error: WorkflowHealthError) -> int:
    """HTTP status for a request-fatal pipeline error."""
    if isinstance(error, InvalidInputError):
        return 400
    if isinstance(error, UpstreamError):
        if error.rate_limited:
            return 429
        if error.status == 404:
            return 404
        return 502
    if isinstance(error, SchemaError):
        return 502
    if isinstance(error, AnalysisTimeoutError):
        return 504
    return 500


def _detail_for(error: WorkflowHealthError) -> str:
    """Human-readable, actionable message for a request-fatal error."""
    if isinstance(error, UpstreamError):
        if error.rate_limited:
            return "GitHub API rate limit reached. Please wait a few minutes and try again."
        if error.status == 404:
            return "Repository not found, or it has no GitHub Actions access. Check the owner/repo name."
        return f"GitHub request failed: {error}"
    if isinstance(error, SchemaError):
        return f"GitHub returned unexpected data: {error}"
    return str(error)


async def _pipeline_error_handler(request: Request, exc: WorkflowHealthError) -> JSONResponse:
    status = _status_for(exc)
    if status >= 500:
        logger.error("Analysis failed: %s", exc)
    return JSONResponse(status_code=status, content={"detail": _detail_for(exc)})


# --- API Endpoints ---


@router.post("/api/workflow-health")
async def workflow_health(body: AnalyzeRequest, request: Request):
    """Analyze a repository and return the complete report."""
    state = request.app.state
    report = await build_report(body.owner, body.repo, state.github, state.insights, state.options)
    return Response(content=report.to_json(), media_type="application/json")


@router.post("/api/workflow-health/stream")
async def stream_workflow_health(body: AnalyzeRequest, request: Request):
    """Analyze a repository, streaming results as Server-Sent Events."""
    state = request.app.state
    owner, repo = resolve_repository(body.owner, body.repo)
    events = stream_report(owner, repo, state.github, state.insights, state.options)

    # Listing failures surface as a regular HTTP error before the stream opens
    first = await events.__anext__()

    async def event_generator():
        try:
            yield {"event": first.event, "data": json.dumps(first.data)}
            async for event in events:
                yield {"event": event.event, "data": json.dumps(event.data)}
        except WorkflowHealthError as e:
            logger.error("Streaming analysis of %s/%s failed: %s", owner, repo, e)
            yield {"event": "error", "data": json.dumps({"detail": _detail_for(e), "status": _status_for(e)})}
        finally:
            await events.aclose()

    return EventSourceResponse(event_generator())


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


def create_app(
    settings: Settings | None = None,
    github_client: WorkflowSource | None = None,
    insights: InsightGenerator | None = None,
) -> FastAPI:
    """Build the app. Configuration errors surface here, at process start."""
    settings = settings or load_settings()
    setup_logging(settings.log_level)
    if insights is None:
        insights = build_insight_generator(
            settings.insight_provider, settings.anthropic_api_key, settings.insight_model
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup: open the GitHub connection pool. Shutdown: close it."""
        client = github_client or GitHubClient(settings.github_token, api_url=settings.github_api_url)
        app.state.github = client
        logger.info("Workflow health service ready (origins: %s)", ", ".join(settings.allowed_origins))
        yield
        if github_client is None:
            await client.aclose()

    app = FastAPI(
        title="Workflow Health",
        description="GitHub Actions workflow health reports",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.insights = insights
    app.state.options = settings.analysis_options()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_exception_handler(WorkflowHealthError, _pipeline_error_handler)
    app.include_router(router)
    return app
