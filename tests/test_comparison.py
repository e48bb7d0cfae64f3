"""
Tests for the comparison engine.
"""

import pytest

from gh_migration_validator.comparison import (
    LATEST_COMMIT_SHA_METRIC,
    StatusCounts,
    classify,
    compare,
    count_statuses,
    determine_repository_status,
    has_failures,
)
from gh_migration_validator.models import (
    ComparisonOptions,
    ComparisonResult,
    MigrationArchiveMetrics,
    PullRequestCounts,
    RepositoryIdentity,
    RepositorySnapshot,
    ResultGroup,
    ValidationStatus,
)

BITBUCKET_OPTIONS = ComparisonOptions(
    skip_issues=True,
    skip_releases=True,
    skip_lfs=True,
    skip_migration_log_offset=True,
    branch_permissions_advisory=True,
    source_label="Bitbucket",
)


def make_snapshot(owner: str = "org", name: str = "repo", **metrics: object) -> RepositorySnapshot:
    return RepositorySnapshot(identity=RepositoryIdentity(owner, name), **metrics)  # type: ignore[arg-type]


def find(results: list[ComparisonResult], prefix: str) -> ComparisonResult:
    return next(result for result in results if result.metric.startswith(prefix))


@pytest.mark.unit
class TestClassify:
    def test_positive_difference_fails(self) -> None:
        assert classify(3) is ValidationStatus.FAIL

    def test_negative_difference_warns(self) -> None:
        assert classify(-1) is ValidationStatus.WARN

    def test_zero_difference_passes(self) -> None:
        assert classify(0) is ValidationStatus.PASS


@pytest.mark.unit
class TestIssueComparison:
    def test_target_with_migration_log_issue_passes(self) -> None:
        results = compare(make_snapshot(issues=10), make_snapshot(issues=11))

        issues = find(results, "Issues")
        assert issues.metric == "Issues (expected +1 for migration log)"
        assert issues.status is ValidationStatus.PASS
        assert issues.difference == 0

    def test_target_missing_issues_fails(self) -> None:
        issues = find(compare(make_snapshot(issues=10), make_snapshot(issues=8)), "Issues")

        assert issues.status is ValidationStatus.FAIL
        assert issues.difference == 3
        assert issues.source_value == 10
        assert issues.target_value == 8

    def test_target_with_extra_issues_warns(self) -> None:
        issues = find(compare(make_snapshot(issues=10), make_snapshot(issues=13)), "Issues")

        assert issues.status is ValidationStatus.WARN
        assert issues.difference == -2

    def test_skip_migration_log_offset(self) -> None:
        options = ComparisonOptions(skip_migration_log_offset=True)
        issues = find(compare(make_snapshot(issues=10), make_snapshot(issues=10), options), "Issues")

        assert issues.metric == "Issues"
        assert issues.status is ValidationStatus.PASS
        assert issues.difference == 0

    def test_equal_counts_fail_without_migration_log_issue(self) -> None:
        issues = find(compare(make_snapshot(issues=5), make_snapshot(issues=5)), "Issues")

        assert issues.status is ValidationStatus.FAIL
        assert issues.difference == 1

    def test_skip_issues_omits_row(self) -> None:
        results = compare(make_snapshot(issues=10), make_snapshot(issues=0), ComparisonOptions(skip_issues=True))

        assert not any(result.metric.startswith("Issues") for result in results)


@pytest.mark.unit
class TestBranchProtection:
    def test_advisory_mismatch_is_info(self) -> None:
        options = ComparisonOptions(branch_permissions_advisory=True)
        results = compare(
            make_snapshot(branch_protection_rules=3), make_snapshot(branch_protection_rules=1), options
        )

        row = find(results, "Branch Protection Rules")
        assert row.metric.endswith("(advisory)")
        assert row.status is ValidationStatus.INFO
        assert row.difference == 2
        assert has_failures([row]) is False

    def test_hard_comparison_by_default(self) -> None:
        row = find(
            compare(make_snapshot(branch_protection_rules=3), make_snapshot(branch_protection_rules=1)),
            "Branch Protection Rules",
        )

        assert row.metric == "Branch Protection Rules"
        assert row.status is ValidationStatus.FAIL


@pytest.mark.unit
class TestLatestCommitSha:
    def test_matching_sha_passes(self) -> None:
        row = find(
            compare(make_snapshot(latest_commit_sha="abc123"), make_snapshot(latest_commit_sha="abc123")),
            LATEST_COMMIT_SHA_METRIC,
        )

        assert row.status is ValidationStatus.PASS
        assert row.difference == 0

    def test_different_sha_fails_with_zero_difference(self) -> None:
        row = find(
            compare(make_snapshot(latest_commit_sha="abc123"), make_snapshot(latest_commit_sha="def456")),
            LATEST_COMMIT_SHA_METRIC,
        )

        assert row.status is ValidationStatus.FAIL
        assert row.difference == 0
        assert row.source_value == "abc123"
        assert row.target_value == "def456"


@pytest.mark.unit
class TestCompare:
    def test_default_row_order(self) -> None:
        results = compare(make_snapshot(), make_snapshot())

        assert [result.metric for result in results] == [
            "Issues (expected +1 for migration log)",
            "Pull Requests (Total)",
            "Pull Requests (Open)",
            "Pull Requests (Merged)",
            "Tags",
            "Releases",
            "Commits",
            "Branch Protection Rules",
            "Webhooks",
            "LFS Objects",
            LATEST_COMMIT_SHA_METRIC,
        ]
        assert all(result.group is ResultGroup.STANDARD for result in results)

    def test_bitbucket_options_skip_unsupported_metrics(self) -> None:
        results = compare(make_snapshot(), make_snapshot(), BITBUCKET_OPTIONS)
        metrics = [result.metric for result in results]

        assert "Releases" not in metrics
        assert "LFS Objects" not in metrics
        assert not any(metric.startswith("Issues") for metric in metrics)
        assert "Branch Protection Rules (advisory)" in metrics

    def test_pull_request_total_is_derived_from_states(self) -> None:
        source = make_snapshot(pull_requests=PullRequestCounts(open=2, merged=5, closed=1))
        target = make_snapshot(pull_requests=PullRequestCounts(open=2, merged=4, closed=1))
        results = compare(source, target)

        total = find(results, "Pull Requests (Total)")
        assert total.source_value == 8
        assert total.target_value == 7
        assert total.status is ValidationStatus.FAIL
        assert find(results, "Pull Requests (Merged)").difference == 1
        assert find(results, "Pull Requests (Open)").status is ValidationStatus.PASS

    def test_difference_sign_matches_status(self) -> None:
        source = make_snapshot(issues=4, tags=3, releases=2, commits=100, webhooks=1, lfs_objects=7)
        target = make_snapshot(issues=9, tags=1, releases=2, commits=120, webhooks=0, lfs_objects=7)

        for result in compare(source, target):
            if result.metric == LATEST_COMMIT_SHA_METRIC:
                continue
            assert result.status is classify(result.difference)

    def test_is_idempotent(self) -> None:
        source = make_snapshot(
            issues=10,
            tags=2,
            commits=50,
            latest_commit_sha="abc",
            migration_archive=MigrationArchiveMetrics(issues=10, pull_requests=3),
        )
        target = make_snapshot(issues=11, tags=2, commits=49, latest_commit_sha="abc")

        assert compare(source, target) == compare(source, target)

    def test_does_not_modify_inputs(self) -> None:
        source = make_snapshot(issues=10, migration_archive=MigrationArchiveMetrics(issues=10))
        target = make_snapshot(issues=11)
        before = (source.copy(), target.copy())

        compare(source, target)

        assert (source, target) == before

    def test_archive_rows_follow_standard_rows(self) -> None:
        source = make_snapshot(migration_archive=MigrationArchiveMetrics())
        results = compare(source, make_snapshot())

        groups = [result.group for result in results]
        assert groups.index(ResultGroup.ARCHIVE_VS_SOURCE) > groups.index(ResultGroup.STANDARD)
        assert groups[-1] is ResultGroup.ARCHIVE_VS_TARGET
        assert groups.count(ResultGroup.ARCHIVE_VS_SOURCE) == 4
        assert groups.count(ResultGroup.ARCHIVE_VS_TARGET) == 4


@pytest.mark.unit
class TestStatusHelpers:
    def _results(self, *statuses: ValidationStatus) -> list[ComparisonResult]:
        return [ComparisonResult(f"m{i}", 0, 0, status) for i, status in enumerate(statuses)]

    def test_has_failures_ignores_warn_and_info(self) -> None:
        assert has_failures(self._results(ValidationStatus.WARN, ValidationStatus.INFO)) is False
        assert has_failures(self._results(ValidationStatus.PASS, ValidationStatus.FAIL)) is True

    def test_count_statuses(self) -> None:
        counts = count_statuses(
            self._results(
                ValidationStatus.PASS,
                ValidationStatus.PASS,
                ValidationStatus.FAIL,
                ValidationStatus.WARN,
                ValidationStatus.INFO,
            )
        )
        assert counts == StatusCounts(passed=2, failed=1, warnings=1, info=1)

    @pytest.mark.parametrize(
        ("statuses", "expected"),
        [
            ((ValidationStatus.PASS, ValidationStatus.INFO), ValidationStatus.PASS),
            ((ValidationStatus.PASS, ValidationStatus.WARN), ValidationStatus.WARN),
            ((ValidationStatus.WARN, ValidationStatus.FAIL), ValidationStatus.FAIL),
            ((), ValidationStatus.PASS),
        ],
    )
    def test_determine_repository_status(
        self, statuses: tuple[ValidationStatus, ...], expected: ValidationStatus
    ) -> None:
        assert determine_repository_status(self._results(*statuses)) is expected
