"""
End-to-end validation flows.

MigrationValidator ties the providers, the retrieval orchestrator and the
comparison engine together for the three ways a validation can start:

- GitHub to GitHub: both sides are retrieved live, in parallel
- From a snapshot: the source comes from an export file or from a Bitbucket
  retrieval, only the target is retrieved live
- Batch: a list of repository pairs validated one after another
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .comparison import compare, count_statuses, determine_repository_status
from .config import Settings
from .exceptions import MigrationValidatorError, ValidationError
from .models import ComparisonOptions, ComparisonResult, RepositoryIdentity, ValidationStatus
from .retrieval import (
    check_rate_limits,
    log_api_errors,
    retrieve_lfs_count,
    retrieve_pair,
    retrieve_snapshot,
)

if TYPE_CHECKING:
    from .models import RepositorySnapshot
    from .protocols import MetricProvider

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepositoryPair:
    source: str
    target: str


@dataclass
class RepositoryValidationResult:
    """Outcome of one repository in a batch."""

    source: RepositoryIdentity
    target: RepositoryIdentity
    status: ValidationStatus
    results: list[ComparisonResult] = field(default_factory=list)
    failure_reason: str = ""
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_owner": self.source.owner,
            "source_repo": self.source.name,
            "target_owner": self.target.owner,
            "target_repo": self.target.name,
            "status": self.status.value,
            "failure_reason": self.failure_reason,
            "error": self.error,
            "results": [result.to_dict() for result in self.results],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepositoryValidationResult:
        return cls(
            source=RepositoryIdentity(data["source_owner"], data["source_repo"]),
            target=RepositoryIdentity(data["target_owner"], data["target_repo"]),
            status=ValidationStatus(data["status"]),
            results=[ComparisonResult.from_dict(result) for result in data.get("results", [])],
            failure_reason=data.get("failure_reason", ""),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class BatchSummary:
    """Repository counts of a batch. ``errors`` counts repositories that could not be validated
    at all; they are included in ``failed``."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    warnings: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "warnings": self.warnings,
            "errors": self.errors,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BatchSummary:
        return cls(**{key: int(data.get(key, 0)) for key in ("total", "passed", "failed", "warnings", "errors")})


@dataclass
class BatchResult:
    timestamp: datetime
    source_organization: str
    target_organization: str
    repositories: list[RepositoryValidationResult] = field(default_factory=list)
    summary: BatchSummary = field(default_factory=BatchSummary)

    @property
    def has_problems(self) -> bool:
        return self.summary.failed > 0 or self.summary.warnings > 0

    def find(self, repository_name: str) -> RepositoryValidationResult | None:
        """Find a repository by source or target name."""
        for repository in self.repositories:
            if repository_name in (repository.source.name, repository.target.name):
                return repository
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "source_organization": self.source_organization,
            "target_organization": self.target_organization,
            "summary": self.summary.to_dict(),
            "repositories": [repository.to_dict() for repository in self.repositories],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BatchResult:
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            source_organization=data.get("source_organization", ""),
            target_organization=data.get("target_organization", ""),
            repositories=[RepositoryValidationResult.from_dict(repo) for repo in data.get("repositories", [])],
            summary=BatchSummary.from_dict(data.get("summary", {})),
        )


def summarize_batch(repositories: list[RepositoryValidationResult]) -> BatchSummary:
    statuses = [repository.status for repository in repositories]
    return BatchSummary(
        total=len(repositories),
        passed=statuses.count(ValidationStatus.PASS),
        failed=statuses.count(ValidationStatus.FAIL),
        warnings=statuses.count(ValidationStatus.WARN),
        errors=sum(1 for repository in repositories if repository.error is not None),
    )


def failure_reason(results: list[ComparisonResult]) -> str:
    """Human-readable reason for a non-passing repository."""
    missing = [result.metric for result in results if result.status is ValidationStatus.FAIL]
    if missing:
        return f"Missing data: {', '.join(missing)}"
    extra = [result.metric for result in results if result.status is ValidationStatus.WARN]
    if extra:
        return f"Extra data in target: {', '.join(extra)}"
    return ""


def parse_repository_list(path: Path) -> list[RepositoryPair]:
    """Read ``source,target`` repository pairs from a CSV file.

    The ``source,target`` header is optional, blank lines and ``#`` comments
    are skipped and a single column means the same name on both sides.
    """
    try:
        with path.open(encoding="utf-8", newline="") as f:
            rows = list(csv.reader(f))
    except OSError as e:
        msg = f"failed to read repository list {path}: {e}"
        raise ValidationError(msg) from e

    pairs: list[RepositoryPair] = []
    for number, row in enumerate(rows, start=1):
        cells = [cell.strip() for cell in row]
        if not any(cells) or cells[0].startswith("#"):
            continue
        if not pairs and [cell.lower() for cell in cells[:2]] == ["source", "target"]:
            continue

        source = cells[0]
        target = cells[1] if len(cells) > 1 and cells[1] else source
        if not source:
            msg = f"line {number} of {path}: source repository name is empty"
            raise ValidationError(msg)
        pairs.append(RepositoryPair(source=source, target=target))

    if not pairs:
        msg = f"no repository pairs found in {path}"
        raise ValidationError(msg)
    return pairs


class MigrationValidator:
    """Runs validations and keeps the last source and target snapshots for rendering."""

    def __init__(
        self,
        source_provider: MetricProvider | None,
        target_provider: MetricProvider | None,
        settings: Settings | None = None,
    ) -> None:
        self.source_provider = source_provider
        self.target_provider = target_provider
        self.settings = settings or Settings()

        self.source: RepositorySnapshot | None = None
        self.target: RepositorySnapshot | None = None
        self.results: list[ComparisonResult] = []

    def default_options(self) -> ComparisonOptions:
        return ComparisonOptions(skip_lfs=self.settings.no_lfs)

    def _require_source_provider(self) -> MetricProvider:
        if self.source_provider is None:
            msg = "no source provider configured"
            raise ValidationError(msg)
        return self.source_provider

    def _require_target_provider(self) -> MetricProvider:
        if self.target_provider is None:
            msg = "no target provider configured"
            raise ValidationError(msg)
        return self.target_provider

    def validate_migration(
        self,
        source_identity: RepositoryIdentity,
        target_identity: RepositoryIdentity,
        options: ComparisonOptions | None = None,
    ) -> list[ComparisonResult]:
        """Validate a live source repository against a live target repository."""
        options = options or self.default_options()
        source_provider = self._require_source_provider()
        target_provider = self._require_target_provider()

        logger.info(f"Validating {source_identity} -> {target_identity}")
        source_provider.validate_access(source_identity)
        target_provider.validate_access(target_identity)

        check_rate_limits(
            {f"Source {source_provider.name}": source_provider, f"Target {target_provider.name}": target_provider},
            self.settings.rate_limit_threshold,
        )

        source_result, target_result = retrieve_pair(
            source_provider, source_identity, target_provider, target_identity
        )
        if not options.skip_lfs:
            retrieve_lfs_count(source_provider, source_result.snapshot)
            retrieve_lfs_count(target_provider, target_result.snapshot)

        self.source = source_result.snapshot
        self.target = target_result.snapshot
        self.results = compare(self.source, self.target, options)
        return self.results

    def retrieve_source(self, identity: RepositoryIdentity, *, include_lfs: bool | None = None) -> RepositorySnapshot:
        """Retrieve only the source side, for exports and snapshot-based flows."""
        source_provider = self._require_source_provider()
        source_provider.validate_access(identity)
        check_rate_limits({f"Source {source_provider.name}": source_provider}, self.settings.rate_limit_threshold)

        result = retrieve_snapshot(source_provider, identity)
        log_api_errors(result)
        result.raise_for_fatal("source")

        if include_lfs is None:
            include_lfs = not self.settings.no_lfs
        if include_lfs:
            retrieve_lfs_count(source_provider, result.snapshot)

        self.source = result.snapshot
        return result.snapshot

    def validate_from_snapshot(
        self,
        source_snapshot: RepositorySnapshot,
        target_identity: RepositoryIdentity,
        options: ComparisonOptions | None = None,
    ) -> list[ComparisonResult]:
        """Validate a previously captured source snapshot against a live target repository."""
        options = options or self.default_options()
        if not source_snapshot.owner or not source_snapshot.name:
            msg = "source data not properly loaded"
            raise ValidationError(msg)

        target_provider = self._require_target_provider()

        # Never alias the caller's snapshot
        self.source = source_snapshot.copy()

        logger.info(f"Validating {self.source.identity} -> {target_identity}")
        target_provider.validate_access(target_identity)
        check_rate_limits({f"Target {target_provider.name}": target_provider}, self.settings.rate_limit_threshold)

        target_result = retrieve_snapshot(target_provider, target_identity)
        log_api_errors(target_result)
        target_result.raise_for_fatal("target")
        if not options.skip_lfs:
            retrieve_lfs_count(target_provider, target_result.snapshot)

        self.target = target_result.snapshot
        self.results = compare(self.source, self.target, options)
        return self.results

    def validate_batch(
        self,
        source_organization: str,
        target_organization: str,
        pairs: list[RepositoryPair],
        options: ComparisonOptions | None = None,
    ) -> BatchResult:
        """Validate every pair in turn; a repository that errors does not stop the batch."""
        repositories: list[RepositoryValidationResult] = []

        for index, pair in enumerate(pairs, start=1):
            source_identity = RepositoryIdentity(source_organization, pair.source)
            target_identity = RepositoryIdentity(target_organization, pair.target)
            logger.info(f"[{index}/{len(pairs)}] {source_identity} -> {target_identity}")

            try:
                results = self.validate_migration(source_identity, target_identity, options)
            except MigrationValidatorError as e:
                logger.error(f"Validation of {source_identity} failed: {e}")
                repositories.append(
                    RepositoryValidationResult(
                        source=source_identity,
                        target=target_identity,
                        status=ValidationStatus.FAIL,
                        failure_reason=f"Validation error: {e}",
                        error=str(e),
                    )
                )
                continue

            status = determine_repository_status(results)
            counts = count_statuses(results)
            logger.info(
                f"{source_identity}: {status.message} "
                f"({counts.passed} passed, {counts.failed} failed, {counts.warnings} warnings)"
            )
            repositories.append(
                RepositoryValidationResult(
                    source=source_identity,
                    target=target_identity,
                    status=status,
                    results=results,
                    failure_reason=failure_reason(results),
                )
            )

        return BatchResult(
            timestamp=datetime.now().astimezone(),
            source_organization=source_organization,
            target_organization=target_organization,
            repositories=repositories,
            summary=summarize_batch(repositories),
        )
