"""Data models for comparing a source repository with its migrated target.

These models represent the normalized data exchanged between the metric
providers, the retrieval orchestrator, the comparison engine and the
renderers. They are intentionally simple and system-agnostic: a Bitbucket
project/repository and a GitHub owner/repository both become a
RepositoryIdentity, and every provider fills the same RepositorySnapshot.
"""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .exceptions import ConfigurationError

# Additional issue some migration tools create on the target to record the migration log
MIGRATION_LOG_ISSUE_OFFSET = 1

MetricValue = int | str


@dataclass(frozen=True)
class RepositoryIdentity:
    """Owner and name of a repository.

    For Bitbucket Server the owner is the project key (``~user`` for personal
    repositories) and the name is the repository slug.
    """

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, repo_path: str) -> RepositoryIdentity:
        """Parse an ``owner/name`` path."""
        parts = repo_path.strip().split("/")
        if len(parts) != 2:  # noqa: PLR2004
            msg = f"Invalid repository path '{repo_path}'. Expected format: 'owner/repository'"
            raise ConfigurationError(msg)
        owner, name = parts
        if not owner or not name:
            msg = f"Invalid repository path '{repo_path}'. Both owner and repository name must be non-empty"
            raise ConfigurationError(msg)
        return cls(owner, name)

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class PullRequestCounts:
    """Pull request counts by state.

    ``closed`` holds closed-unmerged pull requests (GitHub ``CLOSED``,
    Bitbucket ``DECLINED``). The total is always derived from the three
    states and can never drift from them.
    """

    open: int = 0
    merged: int = 0
    closed: int = 0

    @property
    def total(self) -> int:
        return self.open + self.merged + self.closed

    def to_dict(self) -> dict[str, int]:
        return {"open": self.open, "merged": self.merged, "closed": self.closed, "total": self.total}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PullRequestCounts:
        if not data:
            return cls()
        return cls(
            open=int(data.get("open", 0)),
            merged=int(data.get("merged", 0)),
            closed=int(data.get("closed", 0)),
        )


@dataclass(frozen=True)
class MigrationArchiveMetrics:
    """Entity counts found in an exported migration archive."""

    issues: int = 0
    pull_requests: int = 0
    protected_branches: int = 0
    releases: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "issues": self.issues,
            "pull_requests": self.pull_requests,
            "protected_branches": self.protected_branches,
            "releases": self.releases,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MigrationArchiveMetrics:
        return cls(
            issues=int(data.get("issues", 0)),
            pull_requests=int(data.get("pull_requests", 0)),
            protected_branches=int(data.get("protected_branches", 0)),
            releases=int(data.get("releases", 0)),
        )


@dataclass
class RepositorySnapshot:
    """All metrics of one repository at one point in time.

    Created empty by the retrieval orchestrator and filled one metric at a
    time. A metric whose query failed keeps its default value, so partial
    population is valid. The snapshot must not be modified once comparison
    has started.
    """

    identity: RepositoryIdentity
    issues: int = 0
    pull_requests: PullRequestCounts = field(default_factory=PullRequestCounts)
    tags: int = 0
    releases: int = 0
    commits: int = 0
    latest_commit_sha: str = ""
    branch_protection_rules: int = 0
    webhooks: int = 0
    lfs_objects: int = 0
    migration_archive: MigrationArchiveMetrics | None = None

    @property
    def owner(self) -> str:
        return self.identity.owner

    @property
    def name(self) -> str:
        return self.identity.name

    def copy(self) -> RepositorySnapshot:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "owner": self.identity.owner,
            "name": self.identity.name,
            "issues": self.issues,
            "pull_requests": self.pull_requests.to_dict(),
            "tags": self.tags,
            "releases": self.releases,
            "commit_count": self.commits,
            "latest_commit_sha": self.latest_commit_sha,
            "branch_protection_rules": self.branch_protection_rules,
            "webhooks": self.webhooks,
            "lfs_objects": self.lfs_objects,
        }
        if self.migration_archive is not None:
            data["migration_archive"] = self.migration_archive.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepositorySnapshot:
        archive = data.get("migration_archive")
        return cls(
            identity=RepositoryIdentity(str(data.get("owner", "")), str(data.get("name", ""))),
            issues=int(data.get("issues", 0)),
            pull_requests=PullRequestCounts.from_dict(data.get("pull_requests")),
            tags=int(data.get("tags", 0)),
            releases=int(data.get("releases", 0)),
            commits=int(data.get("commit_count", 0)),
            latest_commit_sha=str(data.get("latest_commit_sha") or ""),
            branch_protection_rules=int(data.get("branch_protection_rules", 0)),
            webhooks=int(data.get("webhooks", 0)),
            lfs_objects=int(data.get("lfs_objects", 0)),
            migration_archive=MigrationArchiveMetrics.from_dict(archive) if archive else None,
        )


@dataclass(frozen=True)
class ComparisonOptions:
    """Switches for the comparison engine.

    The default instance enables every comparison, applies the migration log
    offset to issues and treats branch protection as a hard comparison. This
    is what a GitHub to GitHub validation uses.
    """

    skip_issues: bool = False  # source system has no issue concept
    skip_releases: bool = False
    skip_lfs: bool = False
    skip_migration_log_offset: bool = False
    branch_permissions_advisory: bool = False  # mismatches become INFO instead of FAIL
    source_label: str = ""


class ValidationStatus(enum.Enum):
    """Outcome of a single comparison."""

    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"
    INFO = "info"

    @property
    def message(self) -> str:
        return _STATUS_MESSAGES[self]


_STATUS_MESSAGES: dict[ValidationStatus, str] = {
    ValidationStatus.PASS: "✅ PASS",
    ValidationStatus.FAIL: "❌ FAIL",
    ValidationStatus.WARN: "⚠️ WARN",
    ValidationStatus.INFO: "ℹ️ INFO",
}


class ResultGroup(enum.Enum):
    """Section of the report a comparison belongs to."""

    STANDARD = "standard"
    ARCHIVE_VS_SOURCE = "archive_vs_source"
    ARCHIVE_VS_TARGET = "archive_vs_target"


@dataclass(frozen=True)
class ComparisonResult:
    """One row of a validation report.

    ``difference`` is positive when the target is missing items, negative
    when the target has extra items and zero on an exact match. It is always
    zero for the commit SHA comparison.
    """

    metric: str
    source_value: MetricValue
    target_value: MetricValue
    status: ValidationStatus
    difference: int = 0
    group: ResultGroup = ResultGroup.STANDARD

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "source_value": self.source_value,
            "target_value": self.target_value,
            "status": self.status.value,
            "difference": self.difference,
            "group": self.group.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ComparisonResult:
        return cls(
            metric=data["metric"],
            source_value=data["source_value"],
            target_value=data["target_value"],
            status=ValidationStatus(data["status"]),
            difference=int(data.get("difference", 0)),
            group=ResultGroup(data.get("group", ResultGroup.STANDARD.value)),
        )


@dataclass(frozen=True)
class RateLimitStatus:
    """Remaining API budget of a provider."""

    remaining: int
    reset_at: datetime
