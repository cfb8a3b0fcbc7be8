"""
GitHub Actions entry point: `python -m jira_sync.action`.

Reads the event from GITHUB_EVENT_NAME / GITHUB_EVENT_PATH / GITHUB_REF.
Jira credentials may be given as plain environment variables or as action
inputs (INPUT_JIRA_BASE_URL and friends).
"""

import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv

from jira_sync.config import BRANCH_STATUS_CONFIG
from jira_sync.errors import SyncError
from jira_sync.triggers import (
    PullRequestEvent,
    SyncContext,
    detect_environment,
    handle_pull_request_event,
    handle_push_event,
)

logger = logging.getLogger(__name__)

ACTION_INPUTS = ("JIRA_BASE_URL", "JIRA_EMAIL", "JIRA_API_TOKEN", "JIRA_PROJECT_KEY")


def _load_action_inputs() -> None:
    for name in ACTION_INPUTS:
        value = os.getenv(f"INPUT_{name}")
        if value and not os.getenv(name):
            os.environ[name] = value


async def run(sync: SyncContext | None = None) -> int:
    """Process the current GitHub event. Returns a process exit code."""
    event_name = os.getenv("GITHUB_EVENT_NAME", "")
    ref = os.getenv("GITHUB_REF", "")
    logger.info(f"Running in {detect_environment()} environment: event={event_name} ref={ref}")

    try:
        sync = sync or SyncContext.from_env()

        if event_name in ("pull_request", "pull_request_target"):
            event_path = os.getenv("GITHUB_EVENT_PATH")
            if not event_path:
                logger.error("GITHUB_EVENT_PATH is not set")
                return 1
            with open(event_path) as f:
                payload = json.load(f)
            await handle_pull_request_event(PullRequestEvent.from_payload(payload), sync)
            return 0

        branch = ref.removeprefix("refs/heads/")
        if ref.startswith("refs/heads/") and branch in BRANCH_STATUS_CONFIG:
            await handle_push_event(branch, sync)
        else:
            logger.info(f"Nothing to do for ref {ref!r}")
        return 0
    except SyncError as e:
        logger.error(f"jira-sync failed: {e}")
        return 1


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    load_dotenv()
    _load_action_inputs()
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
