"""Domain models shared by the config store, the engine and the formatters."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

DEFAULT_REMOTE = "origin"
DEFAULT_BRANCH = "main"


# =============================================================================
# Descriptors
# =============================================================================


@dataclass(frozen=True)
class RepositoryDescriptor:
    """One declared working tree."""

    name: str
    path: str
    remote: str | None = None
    branch: str | None = None
    groups: tuple[str, ...] | None = None

    @property
    def expanded_path(self) -> Path:
        """Path with ``~`` expanded."""
        return Path(os.path.expanduser(self.path))

    @property
    def effective_remote(self) -> str:
        return self.remote or DEFAULT_REMOTE

    @property
    def effective_branch(self) -> str:
        return self.branch or DEFAULT_BRANCH

    def to_dict(self) -> dict:
        """Serialize, omitting optional fields that are not set."""
        data: dict = {"name": self.name, "path": self.path}
        if self.remote is not None:
            data["remote"] = self.remote
        if self.branch is not None:
            data["branch"] = self.branch
        if self.groups is not None:
            data["groups"] = list(self.groups)
        return data


@dataclass(frozen=True)
class GroupDescriptor:
    """A named, ordered list of repository names."""

    name: str
    repositories: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {"name": self.name, "repositories": list(self.repositories)}


# =============================================================================
# Status
# =============================================================================


class ChangeCategory(StrEnum):
    """Category of a single porcelain status line."""

    MODIFIED = "modified"
    ADDED = "added"
    DELETED = "deleted"
    RENAMED = "renamed"
    COPIED = "copied"
    UNMERGED = "unmerged"
    UNTRACKED = "untracked"
    CHANGED = "changed"


class WorkingTreeStatus(StrEnum):
    """Working tree status."""

    CLEAN = "clean"
    DIRTY = "dirty"


class UpstreamState(StrEnum):
    """Relation of the current branch to its upstream."""

    IN_SYNC = "in_sync"
    AHEAD = "ahead"
    BEHIND = "behind"
    DIVERGED = "diverged"
    NO_UPSTREAM = "no_upstream"
    NO_REMOTE = "no_remote"
    UNKNOWN = "unknown"


@dataclass
class ChangeEntry:
    """One line of ``git status --porcelain``."""

    code: str
    category: ChangeCategory
    path: str

    def to_dict(self) -> dict:
        return {"code": self.code, "category": self.category.value, "path": self.path}


@dataclass
class StatusReport:
    """Read-only snapshot of a repository's state."""

    branch: str = ""
    changes: list[ChangeEntry] = field(default_factory=list)
    upstream: UpstreamState = UpstreamState.UNKNOWN
    ahead_count: int = 0
    behind_count: int = 0

    @property
    def working_tree_status(self) -> WorkingTreeStatus:
        if self.changes:
            return WorkingTreeStatus.DIRTY
        return WorkingTreeStatus.CLEAN

    def to_dict(self) -> dict:
        return {
            "branch": self.branch,
            "working_tree_status": self.working_tree_status.value,
            "changes": [c.to_dict() for c in self.changes],
            "upstream": self.upstream.value,
            "ahead_count": self.ahead_count,
            "behind_count": self.behind_count,
        }


# =============================================================================
# Outcomes
# =============================================================================


class FailureKind(StrEnum):
    """Why a repository operation failed."""

    PATH_MISSING = "path_missing"
    STATUS_QUERY = "status_query"
    STEP_FAILED = "step_failed"
    EXIT_CODE = "exit_code"
    SPAWN_ERROR = "spawn_error"
    EXCEPTION = "exception"


@dataclass
class StepResult:
    """Result of one mutating git step (stage, commit, pull, push)."""

    step: str
    success: bool
    output: str = ""

    def to_dict(self) -> dict:
        return {"step": self.step, "success": self.success, "output": self.output}


@dataclass
class CommandResult:
    """Captured result of a shell command."""

    command: str
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""

    def to_dict(self) -> dict:
        return {
            "command": self.command,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }


@dataclass
class RepositoryOutcome:
    """Result of one batch operation on one repository."""

    name: str
    path: str
    operation: str
    success: bool = True
    failure: FailureKind | None = None
    error: str = ""
    status: StatusReport | None = None
    steps: list[StepResult] = field(default_factory=list)
    command: CommandResult | None = None
    notes: list[str] = field(default_factory=list)

    def fail(self, kind: FailureKind, error: str) -> RepositoryOutcome:
        """Mark this outcome as failed and return it."""
        self.success = False
        self.failure = kind
        self.error = error
        return self

    def step(self, name: str) -> StepResult | None:
        """Return the recorded step with this name, if any."""
        for result in self.steps:
            if result.step == name:
                return result
        return None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": self.path,
            "operation": self.operation,
            "success": self.success,
            "failure": self.failure.value if self.failure else None,
            "error": self.error,
            "status": self.status.to_dict() if self.status else None,
            "steps": [s.to_dict() for s in self.steps],
            "command": self.command.to_dict() if self.command else None,
            "notes": list(self.notes),
        }


@dataclass
class BatchSummary:
    """Aggregated result of one batch."""

    operation: str
    outcomes: list[RepositoryOutcome] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    notice: str = ""
    command: str | None = None

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "summary": {
                "attempted": self.attempted,
                "succeeded": self.succeeded,
                "failed": self.failed,
            },
            "warnings": list(self.warnings),
            "notice": self.notice,
        }
