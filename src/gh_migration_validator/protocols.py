"""Protocol defining the contract between the validator and a source or target system.

The validation architecture separates concerns into three components:

1. MetricProvider: Answers per-metric queries for one system (GitHub, Bitbucket Server)
2. Retrieval orchestrator: Calls every provider query and tolerates individual failures
3. Comparison engine: Diffs two populated snapshots

This separation allows:
- Adding new source systems without changing retrieval or comparison code
- Testing components in isolation with mock providers
- Clear boundaries for system-specific logic (pagination, rate limits, API quirks)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .models import PullRequestCounts, RateLimitStatus, RepositoryIdentity


class MetricProvider(Protocol):
    """Protocol for querying repository metrics from one system.

    Every metric query is independent. A query that fails raises
    ProviderError; the retrieval orchestrator catches it, records a message
    and substitutes the default value, so providers never need to handle
    partial failure themselves.

    Providers own their retry and backoff policy. A query may block on
    network I/O and may sleep while waiting for a rate limit to reset.

    Example implementations:
        - GitHubProvider: GraphQL counts plus PyGithub for REST-only data
        - BitbucketProvider: Bitbucket Server REST API with paged counting
    """

    name: str
    unsupported_metrics: frozenset[str]

    def validate_access(self, identity: RepositoryIdentity) -> None:
        """Verify that the repository exists and is readable.

        Raises:
            RepositoryAccessError: If the repository cannot be accessed
        """
        ...

    def get_issue_count(self, identity: RepositoryIdentity) -> int:
        """Return the number of issues (all states)."""
        ...

    def get_pull_request_counts(self, identity: RepositoryIdentity) -> PullRequestCounts:
        """Return pull request counts by state."""
        ...

    def get_tag_count(self, identity: RepositoryIdentity) -> int:
        """Return the number of tags."""
        ...

    def get_release_count(self, identity: RepositoryIdentity) -> int:
        """Return the number of releases."""
        ...

    def get_commit_count(self, identity: RepositoryIdentity) -> int:
        """Return the number of commits reachable from the default branch."""
        ...

    def get_latest_commit_sha(self, identity: RepositoryIdentity) -> str:
        """Return the SHA of the newest commit on the default branch."""
        ...

    def get_branch_protection_rule_count(self, identity: RepositoryIdentity) -> int:
        """Return the number of branch protection rules (or branch restrictions)."""
        ...

    def get_webhook_count(self, identity: RepositoryIdentity) -> int:
        """Return the number of webhooks, active and inactive."""
        ...

    def get_lfs_object_count(self, identity: RepositoryIdentity) -> int:
        """Return the number of distinct Git LFS objects on the default branch."""
        ...

    def get_rate_limit_status(self) -> RateLimitStatus | None:
        """Return the remaining API budget, or None if the system has no such concept."""
        ...
