"""Comparison engine: diffs a source snapshot against a target snapshot.

Every count-based metric is classified from ``difference = expected - target``:

- difference > 0: target is missing items (FAIL)
- difference < 0: target has extra items (WARN)
- difference = 0: exact match (PASS)

A single parameterized compare() serves all flows. A GitHub to GitHub
validation uses the default ComparisonOptions; the Bitbucket and export
flows pass options that skip metrics the source cannot provide.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .models import (
    MIGRATION_LOG_ISSUE_OFFSET,
    ComparisonOptions,
    ComparisonResult,
    ValidationStatus,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .models import RepositorySnapshot

LATEST_COMMIT_SHA_METRIC = "Latest Commit SHA"


def classify(difference: int) -> ValidationStatus:
    """Classify a signed difference (expected minus target)."""
    if difference > 0:
        return ValidationStatus.FAIL
    if difference < 0:
        return ValidationStatus.WARN
    return ValidationStatus.PASS


def count_result(metric: str, source_value: int, target_value: int, *, expected: int | None = None) -> ComparisonResult:
    """Build a count comparison; ``expected`` overrides the source value as the baseline."""
    baseline = source_value if expected is None else expected
    difference = baseline - target_value
    return ComparisonResult(
        metric=metric,
        source_value=source_value,
        target_value=target_value,
        status=classify(difference),
        difference=difference,
    )


def compare(
    source: RepositorySnapshot,
    target: RepositorySnapshot,
    options: ComparisonOptions | None = None,
) -> list[ComparisonResult]:
    """Compare two snapshots and return the ordered list of results.

    Standard metrics come first, followed by the migration archive
    cross-checks when the source snapshot carries archive metrics. The
    function is pure: the same inputs always produce the same results.
    """
    options = options or ComparisonOptions()
    results: list[ComparisonResult] = []

    if not options.skip_issues:
        if options.skip_migration_log_offset:
            results.append(count_result("Issues", source.issues, target.issues))
        else:
            results.append(
                count_result(
                    "Issues (expected +1 for migration log)",
                    source.issues,
                    target.issues,
                    expected=source.issues + MIGRATION_LOG_ISSUE_OFFSET,
                )
            )

    source_prs = source.pull_requests
    target_prs = target.pull_requests
    results.append(count_result("Pull Requests (Total)", source_prs.total, target_prs.total))
    results.append(count_result("Pull Requests (Open)", source_prs.open, target_prs.open))
    results.append(count_result("Pull Requests (Merged)", source_prs.merged, target_prs.merged))

    results.append(count_result("Tags", source.tags, target.tags))

    if not options.skip_releases:
        results.append(count_result("Releases", source.releases, target.releases))

    results.append(count_result("Commits", source.commits, target.commits))

    branch_protection = count_result(
        "Branch Protection Rules", source.branch_protection_rules, target.branch_protection_rules
    )
    if options.branch_permissions_advisory:
        # Bitbucket branch restrictions and GitHub protection rules are not equivalent models
        branch_protection = ComparisonResult(
            metric="Branch Protection Rules (advisory)",
            source_value=branch_protection.source_value,
            target_value=branch_protection.target_value,
            status=ValidationStatus.INFO,
            difference=branch_protection.difference,
        )
    results.append(branch_protection)

    results.append(count_result("Webhooks", source.webhooks, target.webhooks))

    if not options.skip_lfs:
        results.append(count_result("LFS Objects", source.lfs_objects, target.lfs_objects))

    results.append(
        ComparisonResult(
            metric=LATEST_COMMIT_SHA_METRIC,
            source_value=source.latest_commit_sha,
            target_value=target.latest_commit_sha,
            status=(
                ValidationStatus.PASS
                if source.latest_commit_sha == target.latest_commit_sha
                else ValidationStatus.FAIL
            ),
            difference=0,
        )
    )

    if source.migration_archive is not None:
        from .archive_check import compare_archive  # noqa: PLC0415

        results.extend(compare_archive(source, target, options))

    return results


def has_failures(results: Iterable[ComparisonResult]) -> bool:
    """Return True if any result FAILed. WARN and INFO never count."""
    return any(result.status is ValidationStatus.FAIL for result in results)


@dataclass(frozen=True)
class StatusCounts:
    passed: int = 0
    failed: int = 0
    warnings: int = 0
    info: int = 0


def count_statuses(results: Iterable[ComparisonResult]) -> StatusCounts:
    statuses = [result.status for result in results]
    return StatusCounts(
        passed=statuses.count(ValidationStatus.PASS),
        failed=statuses.count(ValidationStatus.FAIL),
        warnings=statuses.count(ValidationStatus.WARN),
        info=statuses.count(ValidationStatus.INFO),
    )


def determine_repository_status(results: Iterable[ComparisonResult]) -> ValidationStatus:
    """Overall status of one repository: FAIL beats WARN beats PASS; INFO is ignored."""
    counts = count_statuses(results)
    if counts.failed:
        return ValidationStatus.FAIL
    if counts.warnings:
        return ValidationStatus.WARN
    return ValidationStatus.PASS
