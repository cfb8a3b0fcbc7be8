"""Data models for GitHub events that drive issue updates."""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class PullRequestEvent(BaseModel):
    """The parts of a pull_request webhook payload the sync cares about."""
    action: str
    number: Optional[int] = None
    title: str = ""
    body: Optional[str] = None
    draft: bool = False
    merged: bool = False
    base_ref: Optional[str] = None  # branch the PR targets
    html_url: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PullRequestEvent":
        pr = payload.get("pull_request") or {}
        return cls(
            action=payload.get("action", ""),
            number=pr.get("number"),
            title=pr.get("title") or "",
            body=pr.get("body"),
            draft=bool(pr.get("draft", False)),
            merged=bool(pr.get("merged", False)),
            base_ref=(pr.get("base") or {}).get("ref"),
            html_url=pr.get("html_url"),
        )


class PushEvent(BaseModel):
    """A push to a branch."""
    ref: str
    head_commit_message: Optional[str] = None

    @property
    def branch(self) -> str:
        return self.ref.removeprefix("refs/heads/")

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PushEvent":
        head = payload.get("head_commit") or {}
        return cls(ref=payload.get("ref", ""), head_commit_message=head.get("message"))
