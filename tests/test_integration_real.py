"""
Integration tests against the real GitHub API.

Test source: GitHub repository (REQUIRED: set via GHMV_TEST_SOURCE_REPO, format owner/name)
Test target: GitHub repository (REQUIRED: set via GHMV_TEST_TARGET_REPO, format owner/name)

Tokens are taken from GHMV_SOURCE_TOKEN and GHMV_TARGET_TOKEN, with the
GHMV_SOURCE_HOSTNAME and GHMV_TARGET_HOSTNAME variables for GitHub
Enterprise Server. All tests are read-only.
"""

import os

import pytest

from gh_migration_validator.comparison import has_failures
from gh_migration_validator.config import Settings
from gh_migration_validator.github_provider import GitHubProvider
from gh_migration_validator.models import ComparisonOptions, RepositoryIdentity
from gh_migration_validator.retrieval import retrieve_snapshot
from gh_migration_validator.validator import MigrationValidator


@pytest.fixture(scope="module")
def settings() -> Settings:
    return Settings.from_env()


@pytest.fixture(scope="module")
def source_identity() -> RepositoryIdentity:
    return RepositoryIdentity.parse(os.environ.get("GHMV_TEST_SOURCE_REPO", "unset/unset"))


@pytest.fixture(scope="module")
def target_identity() -> RepositoryIdentity:
    return RepositoryIdentity.parse(os.environ.get("GHMV_TEST_TARGET_REPO", "unset/unset"))


@pytest.fixture
def source_provider(settings: Settings) -> GitHubProvider:
    return GitHubProvider(settings.source_token, settings.source_hostname)


@pytest.fixture
def target_provider(settings: Settings) -> GitHubProvider:
    return GitHubProvider(settings.target_token, settings.target_hostname)


@pytest.mark.integration
class TestGitHubReadOnly:
    def test_source_repository_is_accessible(
        self, source_provider: GitHubProvider, source_identity: RepositoryIdentity
    ) -> None:
        source_provider.validate_access(source_identity)

    def test_rate_limit_status(self, source_provider: GitHubProvider) -> None:
        status = source_provider.get_rate_limit_status()

        assert status.remaining >= 0

    def test_snapshot_retrieval(self, source_provider: GitHubProvider, source_identity: RepositoryIdentity) -> None:
        result = retrieve_snapshot(source_provider, source_identity)

        assert result.fatal is None
        assert result.errors == []
        assert result.snapshot.commits > 0
        assert len(result.snapshot.latest_commit_sha) == 40

    def test_repository_validates_against_itself(
        self, settings: Settings, source_provider: GitHubProvider, source_identity: RepositoryIdentity
    ) -> None:
        # Each side of a concurrent retrieval gets its own client
        second_provider = GitHubProvider(settings.source_token, settings.source_hostname)
        validator = MigrationValidator(source_provider, second_provider)

        results = validator.validate_migration(
            source_identity, source_identity, ComparisonOptions(skip_migration_log_offset=True)
        )

        assert not has_failures(results)


@pytest.mark.integration
class TestGitHubMigration:
    def test_migration_has_no_failures(
        self,
        source_provider: GitHubProvider,
        target_provider: GitHubProvider,
        source_identity: RepositoryIdentity,
        target_identity: RepositoryIdentity,
    ) -> None:
        validator = MigrationValidator(source_provider, target_provider)

        results = validator.validate_migration(source_identity, target_identity)

        failed = [result.metric for result in results if result.status.value == "fail"]
        assert failed == []
