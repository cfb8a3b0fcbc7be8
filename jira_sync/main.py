"""
Webhook server for jira-sync.

Receives GitHub webhooks and moves the referenced Jira issues through
their workflow. Run with `uvicorn jira_sync.main:app` or `python -m jira_sync.main`.
"""

import logging
from functools import lru_cache

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from jira_sync import __version__
from jira_sync.errors import ConfigurationError, SyncError, ValidationError
from jira_sync.triggers import (
    PullRequestEvent,
    PushEvent,
    SyncContext,
    detect_environment,
    handle_pull_request_event,
    handle_push_event,
)
from jira_sync.workflows.paths import MAX_PATH_LENGTH, all_paths, shortest_path

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

load_dotenv()

app = FastAPI(
    title="jira-sync",
    description="Sync Jira issue statuses with GitHub pull requests and deployments",
    version=__version__,
)


@lru_cache
def get_sync() -> SyncContext:
    """One context per process, so the workflow graph cache is shared across requests."""
    return SyncContext.from_env()


def _status_code(error: SyncError) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, ConfigurationError):
        return 500
    return 502


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "jira-sync", "environment": detect_environment()}


@app.post("/webhooks/github")
async def github_webhook(request: Request, sync: SyncContext = Depends(get_sync)):
    """Handle GitHub webhook events (pull_request and push)."""
    event_name = request.headers.get("X-GitHub-Event", "")
    payload = await request.json()
    logger.info(f"GitHub webhook: {event_name}")

    try:
        if event_name in ("pull_request", "pull_request_target"):
            result = await handle_pull_request_event(PullRequestEvent.from_payload(payload), sync)
        elif event_name == "push":
            result = await handle_push_event(PushEvent.from_payload(payload).branch, sync)
        else:
            return JSONResponse(content={"status": "ignored"}, status_code=200)
    except SyncError as e:
        logger.error(f"GitHub webhook error: {e}", exc_info=True)
        return JSONResponse(content={"error": str(e)}, status_code=_status_code(e))

    if result is None:
        return JSONResponse(content={"status": "ignored"}, status_code=200)
    return JSONResponse(content={"status": "ok", "result": result.model_dump()})


@app.get("/workflows/{project_key}/paths")
async def workflow_paths(
    project_key: str,
    from_status: str,
    to_status: str,
    max_depth: int = MAX_PATH_LENGTH,
    sync: SyncContext = Depends(get_sync),
):
    """List the shortest and all simple transition paths between two statuses of a project's workflow."""
    graphs = sync.executor.graphs
    try:
        workflow_name = await graphs.get_workflow_name_for_project(project_key)
        graph = await graphs.get_workflow_graph(workflow_name)
        shortest = shortest_path(graph, from_status, to_status, sync.settings.excluded_states)
        paths = all_paths(graph, from_status, to_status, max_depth=max_depth)
    except SyncError as e:
        raise HTTPException(status_code=_status_code(e), detail=str(e))

    return {
        "workflow": workflow_name,
        "excluded_states": list(sync.settings.excluded_states),
        "shortest": shortest.describe() if shortest is not None else None,
        "paths": [path.describe() for path in paths],
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3000)
