"""Issue key extraction and validation helpers."""

import re
from typing import Any, Iterable

from jira_sync.errors import ConfigurationError, ValidationError

# Project key: uppercase letter first, then letters/digits; never lowercase, never a leading digit
ISSUE_KEY_PATTERN = re.compile(r"(?<![A-Za-z0-9])[A-Z][A-Z0-9]*-[0-9]+(?![0-9])")
_ISSUE_KEY_FULL = re.compile(r"[A-Z][A-Z0-9]*-[0-9]+")
_PR_NUMBER_PATTERN = re.compile(r"#([0-9]+)")


def is_valid_issue_key(value: Any) -> bool:
    """True if value is a string shaped like PROJECT-123."""
    return isinstance(value, str) and _ISSUE_KEY_FULL.fullmatch(value) is not None


def validate_issue_key(value: Any) -> str:
    """Return the key unchanged or raise ValidationError."""
    if not is_valid_issue_key(value):
        raise ValidationError(f"Invalid issue key: {value!r}")
    return value


def extract_issue_keys(text: str | None) -> list[str]:
    """Unique issue keys in order of first appearance."""
    if not text:
        return []
    return list(dict.fromkeys(ISSUE_KEY_PATTERN.findall(text)))


def extract_issue_keys_from_pull_request(pull_request: Any) -> list[str]:
    """Issue keys mentioned in a PR's title or body (dict payload or model)."""
    if isinstance(pull_request, dict):
        title, body = pull_request.get("title"), pull_request.get("body")
    else:
        title, body = getattr(pull_request, "title", None), getattr(pull_request, "body", None)
    return deduplicate_issue_keys(extract_issue_keys(title), extract_issue_keys(body))


def extract_issue_keys_from_commit_messages(messages: Iterable[str]) -> list[str]:
    return deduplicate_issue_keys(*(extract_issue_keys(message) for message in messages))


def deduplicate_issue_keys(*key_lists: Any) -> list[str]:
    """
    Merge several key lists into one, keeping first-seen order.

    Exact (case-sensitive) matching; invalid keys and non-list arguments are dropped.
    """
    seen: dict[str, None] = {}
    for keys in key_lists:
        if not isinstance(keys, (list, tuple, set, frozenset)):
            continue
        for key in keys:
            if is_valid_issue_key(key):
                seen.setdefault(key, None)
    return list(seen)


def extract_pr_number(commit_message: str | None) -> str | None:
    """First '#123' reference in a commit message."""
    if not commit_message:
        return None
    match = _PR_NUMBER_PATTERN.search(commit_message)
    return match.group(1) if match else None


def construct_pr_url(repo: str, pr_number: int | str) -> str:
    """The PR reference issues are searched for, e.g. 'api/pull/42'.

    Repository name only, so it also matches full 'acme/api/pull/42' links.
    """
    return f"{repo}/pull/{pr_number}"


def parse_repository(repository: str | None) -> tuple[str, str]:
    """Split 'owner/repo' (extra path segments are ignored)."""
    if not repository or not isinstance(repository, str):
        raise ConfigurationError("Repository must be given as 'owner/repo'", missing=["GITHUB_REPOSITORY"])
    parts = repository.split("/")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise ConfigurationError(
            f"Invalid repository format: {repository!r}, expected 'owner/repo'",
            missing=["GITHUB_REPOSITORY"],
        )
    return parts[0], parts[1]
