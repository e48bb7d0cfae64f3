"""Retrieval of repository snapshots from metric providers.

The orchestrator is the single place where individual metric failures are
caught. Each provider query either stores its value in the snapshot or
leaves the default in place and records a labeled message, so one missing
metric (for example webhooks hidden by a token scope) never blocks the rest
of the validation. Only when no query at all succeeded is the retrieval
considered fatal, which usually means bad credentials or an unreachable
host.

Source and target retrievals are independent: each owns its snapshot and
its message list, so the pair can run on two worker threads without locks.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, NamedTuple

from .exceptions import ProviderError, RetrievalError
from .models import PullRequestCounts, RepositoryIdentity, RepositorySnapshot

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .models import RateLimitStatus
    from .protocols import MetricProvider

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)


class _MetricQuery(NamedTuple):
    label: str  # used in error messages
    attribute: str  # RepositorySnapshot field, also the key in MetricProvider.unsupported_metrics
    method: str  # MetricProvider method
    default: Any


_METRIC_QUERIES: tuple[_MetricQuery, ...] = (
    _MetricQuery("issues", "issues", "get_issue_count", 0),
    _MetricQuery("pull requests", "pull_requests", "get_pull_request_counts", PullRequestCounts()),
    _MetricQuery("tags", "tags", "get_tag_count", 0),
    _MetricQuery("releases", "releases", "get_release_count", 0),
    _MetricQuery("commits", "commits", "get_commit_count", 0),
    _MetricQuery("latest commit hash", "latest_commit_sha", "get_latest_commit_sha", ""),
    _MetricQuery("branch protection rules", "branch_protection_rules", "get_branch_protection_rule_count", 0),
    _MetricQuery("webhooks", "webhooks", "get_webhook_count", 0),
)


@dataclass
class RetrievalResult:
    """Outcome of retrieving one repository.

    ``errors`` lists one ``"<metric>: <error>"`` message per failed query.
    ``fatal`` is only set when every attempted query failed.
    """

    snapshot: RepositorySnapshot
    errors: list[str] = field(default_factory=list)
    failed_metrics: list[str] = field(default_factory=list)
    successful_requests: int = 0
    fatal: str | None = None

    @property
    def identity(self) -> RepositoryIdentity:
        return self.snapshot.identity

    def raise_for_fatal(self, side: str = "repository") -> None:
        if self.fatal is not None:
            msg = f"Failed to retrieve {side} data: {self.fatal}"
            raise RetrievalError(msg, self.errors)


def retrieve_snapshot(provider: MetricProvider, identity: RepositoryIdentity) -> RetrievalResult:
    """Populate a fresh snapshot by issuing every metric query of ``provider``.

    Queries the provider lists in ``unsupported_metrics`` are not issued and
    keep their defaults without counting as failures. LFS objects are not
    part of this pass; see retrieve_lfs_count().
    """
    start_time = time.monotonic()
    result = RetrievalResult(snapshot=RepositorySnapshot(identity=identity))

    for query in _METRIC_QUERIES:
        if query.attribute in provider.unsupported_metrics:
            continue

        logger.debug(f"Fetching {query.label} from {identity}")
        try:
            value = getattr(provider, query.method)(identity)
        except ProviderError as e:
            setattr(result.snapshot, query.attribute, query.default)
            result.failed_metrics.append(query.label)
            result.errors.append(f"{query.label}: {e}")
            continue

        setattr(result.snapshot, query.attribute, value)
        result.successful_requests += 1

    duration = time.monotonic() - start_time

    if result.successful_requests == 0:
        result.fatal = f"all API requests failed for {identity}"
        logger.error(f"Failed to retrieve any data from {identity}")
    elif result.failed_metrics:
        logger.warning(
            f"{identity}: {result.successful_requests} OK, {len(result.failed_metrics)} failed "
            f"({duration:.1f}s) - missing: {result.failed_metrics}"
        )
    else:
        logger.info(f"{identity} retrieved successfully ({duration:.1f}s)")

    return result


def retrieve_lfs_count(provider: MetricProvider, snapshot: RepositorySnapshot) -> None:
    """Fill ``snapshot.lfs_objects``; a failure is logged and leaves it at 0."""
    if "lfs_objects" in provider.unsupported_metrics:
        return

    logger.debug(f"Fetching LFS objects from {snapshot.identity}")
    try:
        snapshot.lfs_objects = provider.get_lfs_object_count(snapshot.identity)
    except ProviderError as e:
        snapshot.lfs_objects = 0
        logger.warning(f"LFS objects: {e} (repo={snapshot.identity})")


def retrieve_pair(
    source_provider: MetricProvider,
    source_identity: RepositoryIdentity,
    target_provider: MetricProvider,
    target_identity: RepositoryIdentity,
) -> tuple[RetrievalResult, RetrievalResult]:
    """Retrieve source and target concurrently and wait for both.

    Both message lists are logged before any fatal error is raised, so an
    operator always sees what went wrong on each side.

    Raises:
        RetrievalError: If either side failed completely (source reported first)
    """
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="retrieve") as executor:
        source_future = executor.submit(retrieve_snapshot, source_provider, source_identity)
        target_future = executor.submit(retrieve_snapshot, target_provider, target_identity)
        source_result = source_future.result()
        target_result = target_future.result()

    log_api_errors(source_result)
    log_api_errors(target_result)

    source_result.raise_for_fatal("source")
    target_result.raise_for_fatal("target")

    return source_result, target_result


def log_api_errors(result: RetrievalResult) -> None:
    """Log per-metric error messages: ERROR level when the retrieval was fatal, WARNING otherwise."""
    level = logging.ERROR if result.fatal is not None else logging.WARNING
    for message in result.errors:
        logger.log(level, f"{message} (repo={result.identity})")


def check_rate_limits(providers: Mapping[str, MetricProvider], threshold: int) -> None:
    """Warn when a provider's remaining API budget is below ``threshold``.

    A threshold of 0 disables the check. Providers without a rate limit
    concept are skipped, and a failing rate limit query is only a warning.
    """
    if threshold <= 0:
        return

    for label, provider in providers.items():
        try:
            status = provider.get_rate_limit_status()
        except ProviderError as e:
            logger.warning(f"{label} API rate limit check failed: {e}")
            continue

        if status is not None:
            log_rate_limit_warning(label, status, threshold)


def log_rate_limit_warning(label: str, status: RateLimitStatus, threshold: int) -> None:
    if status.remaining >= threshold:
        return

    wait_seconds = max(0, round((status.reset_at - datetime.now(UTC)).total_seconds()))
    logger.warning(
        f"{label} API rate limit low - fetching data may take longer until reset "
        f"(remaining={status.remaining}, resets_in={wait_seconds}s)"
    )
