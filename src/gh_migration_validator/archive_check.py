"""Migration archive cross-checks.

Source vs target alone conflates two questions: did the migration succeed,
and has the source changed since the migration? The exported archive is a
point-in-time record that separates them:

- Archive vs Source: did the export capture everything the live source API
  shows now?
- Archive vs Target: did the target receive everything the export contained?
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from .comparison import classify, count_result
from .models import MIGRATION_LOG_ISSUE_OFFSET, ComparisonResult, ResultGroup

if TYPE_CHECKING:
    from .models import ComparisonOptions, RepositorySnapshot


def compare_archive(
    source: RepositorySnapshot,
    target: RepositorySnapshot,
    options: ComparisonOptions,
) -> list[ComparisonResult]:
    """Return archive-vs-source rows followed by archive-vs-target rows.

    Returns an empty list when the source snapshot has no archive metrics.
    """
    archive = source.migration_archive
    if archive is None:
        return []

    results: list[ComparisonResult] = []

    # source_value is the live API value, target_value the archive value;
    # a positive difference means the archive holds more than the API reports
    for metric, api_value, archive_value in (
        ("Issues", source.issues, archive.issues),
        ("Pull Requests", source.pull_requests.total, archive.pull_requests),
        ("Protected Branches", source.branch_protection_rules, archive.protected_branches),
        ("Releases", source.releases, archive.releases),
    ):
        difference = archive_value - api_value
        results.append(
            ComparisonResult(
                metric=f"Archive vs Source {metric}",
                source_value=api_value,
                target_value=archive_value,
                status=classify(difference),
                difference=difference,
                group=ResultGroup.ARCHIVE_VS_SOURCE,
            )
        )

    if options.skip_migration_log_offset:
        issues_row = count_result("Archive vs Target Issues", archive.issues, target.issues)
    else:
        issues_row = count_result(
            "Archive vs Target Issues (expected +1 for migration log)",
            archive.issues,
            target.issues,
            expected=archive.issues + MIGRATION_LOG_ISSUE_OFFSET,
        )
    results.append(replace(issues_row, group=ResultGroup.ARCHIVE_VS_TARGET))

    for metric, archive_value, target_value in (
        ("Pull Requests", archive.pull_requests, target.pull_requests.total),
        ("Protected Branches", archive.protected_branches, target.branch_protection_rules),
        ("Releases", archive.releases, target.releases),
    ):
        row = count_result(f"Archive vs Target {metric}", archive_value, target_value)
        results.append(replace(row, group=ResultGroup.ARCHIVE_VS_TARGET))

    return results
