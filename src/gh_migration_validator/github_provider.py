from __future__ import annotations

import base64
import binascii
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import requests
from github import Auth, Github, GithubException

from . import lfs
from .exceptions import ConfigurationError, ProviderError, RepositoryAccessError
from .models import PullRequestCounts, RateLimitStatus
from .utils import normalize_url

if TYPE_CHECKING:
    from github.GitTree import GitTree
    from github.Repository import Repository

    from .models import RepositoryIdentity

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_REST_URL: Final[str] = "https://api.github.com"
DEFAULT_GRAPHQL_URL: Final[str] = "https://api.github.com/graphql"

REQUEST_TIMEOUT: Final[int] = 30
MAX_LISTED_MIGRATIONS: Final[int] = 100
EXPORTED_STATE: Final[str] = "exported"
MIN_RATE_LIMIT_WAIT: Final[float] = 1.0

_RATE_LIMIT_QUERY: Final[str] = "query { rateLimit { remaining resetAt } }"

# PyGithub does not wrap transport errors raised by requests
_API_ERRORS: Final = (GithubException, requests.RequestException)


@dataclass
class MigrationInfo:
    """An organization migration (export) as listed by the GitHub REST API."""

    id: int
    state: str
    created_at: str = ""
    updated_at: str = ""
    repositories: list[str] = field(default_factory=list)


def build_auth(
    token: str | None,
    *,
    app_id: str | None = None,
    private_key: str | None = None,
    installation_id: str | None = None,
    name: str = "GitHub",
) -> Auth.Auth:
    """Pick GitHub App installation auth when all three App values are set, a token otherwise."""
    if app_id and private_key and installation_id:
        try:
            installation = int(installation_id)
        except ValueError as e:
            msg = f"{name} App installation ID must be an integer, got '{installation_id}'"
            raise ConfigurationError(msg) from e
        # Key material from environment variables often carries escaped newlines
        key = private_key.replace("\\n", "\n")
        return Auth.AppAuth(app_id, key).get_installation_auth(installation)

    if token:
        return Auth.Token(token)

    msg = f"{name} token or GitHub App credentials (app ID, private key, installation ID) are required"
    raise ConfigurationError(msg)


class GitHubProvider:
    """Metric provider for github.com and GitHub Enterprise Server.

    Counts come from GraphQL ``totalCount`` fields; REST-only data (webhooks,
    git trees and blobs, migrations) comes from the PyGithub object API.
    Both go through the same PyGithub requester, so they share its
    authentication (including refreshed App installation tokens) and its
    retry handling for secondary rate limits.
    """

    unsupported_metrics: frozenset[str] = frozenset()

    def __init__(
        self,
        token: str | None = None,
        hostname: str | None = None,
        *,
        name: str = "GitHub",
        app_id: str | None = None,
        private_key: str | None = None,
        installation_id: str | None = None,
        client: Github | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        auth = build_auth(
            token, app_id=app_id, private_key=private_key, installation_id=installation_id, name=name
        )

        self.name = name
        self.hostname = hostname or None
        if self.hostname:
            base = normalize_url(self.hostname)
            self.rest_url = f"{base}/api/v3"
            self.graphql_url = f"{base}/api/graphql"
        else:
            self.rest_url = DEFAULT_REST_URL
            self.graphql_url = DEFAULT_GRAPHQL_URL

        self._client = client or Github(auth=auth, base_url=self.rest_url, timeout=REQUEST_TIMEOUT)
        self._sleep = sleep

    # GraphQL plumbing

    def _post_graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """POST a GraphQL query through PyGithub's requester and return its ``data``."""
        try:
            _, payload = self._client.requester.requestJsonAndCheck(
                "POST", self.graphql_url, input={"query": query, "variables": variables or {}}
            )
        except GithubException as e:
            msg = f"{self.name} GraphQL API returned status {e.status}: {e.data}"
            raise ProviderError(msg) from e
        except requests.RequestException as e:
            msg = f"{self.name} GraphQL request failed: {e}"
            raise ProviderError(msg) from e

        if not isinstance(payload, dict):
            msg = f"{self.name} GraphQL API returned an unexpected payload: {str(payload)[:200]}"
            raise ProviderError(msg)
        if payload.get("errors"):
            messages = "; ".join(str(error.get("message", error)) for error in payload["errors"])
            raise ProviderError(messages)
        return payload.get("data") or {}

    def _wait_for_rate_limit(self) -> None:
        """Block until the GraphQL budget is above zero."""
        while True:
            status = self.get_rate_limit_status()
            if status.remaining > 0:
                return
            # A reset time in the past (clock skew) must not turn this into a busy loop
            wait_seconds = max(MIN_RATE_LIMIT_WAIT, (status.reset_at - datetime.now(UTC)).total_seconds())
            logger.info(f"{self.name} rate limit exhausted, waiting {wait_seconds:.0f}s for reset")
            self._sleep(wait_seconds)

    def _query_repository(self, identity: RepositoryIdentity, fields: str) -> dict[str, Any]:
        self._wait_for_rate_limit()
        query = (
            "query($owner: String!, $name: String!) "
            f"{{ repository(owner: $owner, name: $name) {{ {fields} }} }}"
        )
        data = self._post_graphql(query, {"owner": identity.owner, "name": identity.name})
        repository = data.get("repository")
        if repository is None:
            msg = f"repository {identity} not found"
            raise ProviderError(msg)
        return repository

    def _get_repo(self, identity: RepositoryIdentity) -> Repository:
        try:
            return self._client.get_repo(identity.full_name)
        except _API_ERRORS as e:
            msg = f"failed to get {self.name} repository {identity}: {e}"
            raise ProviderError(msg) from e

    # MetricProvider

    def validate_access(self, identity: RepositoryIdentity) -> None:
        try:
            data = self._post_graphql(
                "query($owner: String!, $name: String!) { repository(owner: $owner, name: $name) { id } }",
                {"owner": identity.owner, "name": identity.name},
            )
        except ProviderError as e:
            msg = f"Cannot access {self.name} repository {identity}: {e}"
            raise RepositoryAccessError(msg) from e
        if not data.get("repository"):
            msg = f"Cannot access {self.name} repository {identity}: not found or no permission"
            raise RepositoryAccessError(msg)

    def get_rate_limit_status(self) -> RateLimitStatus:
        data = self._post_graphql(_RATE_LIMIT_QUERY)
        rate_limit = data.get("rateLimit") or {}
        try:
            return RateLimitStatus(
                remaining=int(rate_limit["remaining"]),
                reset_at=datetime.fromisoformat(rate_limit["resetAt"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            msg = f"{self.name} returned an unexpected rate limit payload: {rate_limit}"
            raise ProviderError(msg) from e

    def get_issue_count(self, identity: RepositoryIdentity) -> int:
        repository = self._query_repository(identity, "issues { totalCount }")
        return int(repository["issues"]["totalCount"])

    def get_pull_request_counts(self, identity: RepositoryIdentity) -> PullRequestCounts:
        repository = self._query_repository(
            identity,
            "openPRs: pullRequests(states: OPEN) { totalCount } "
            "mergedPRs: pullRequests(states: MERGED) { totalCount } "
            "closedPRs: pullRequests(states: CLOSED) { totalCount }",
        )
        return PullRequestCounts(
            open=int(repository["openPRs"]["totalCount"]),
            merged=int(repository["mergedPRs"]["totalCount"]),
            closed=int(repository["closedPRs"]["totalCount"]),
        )

    def get_tag_count(self, identity: RepositoryIdentity) -> int:
        repository = self._query_repository(identity, 'refs(refPrefix: "refs/tags/") { totalCount }')
        return int(repository["refs"]["totalCount"])

    def get_release_count(self, identity: RepositoryIdentity) -> int:
        repository = self._query_repository(identity, "releases { totalCount }")
        return int(repository["releases"]["totalCount"])

    def get_commit_count(self, identity: RepositoryIdentity) -> int:
        repository = self._query_repository(
            identity, "defaultBranchRef { target { ... on Commit { history { totalCount } } } }"
        )
        # Empty repositories have no default branch
        branch = repository.get("defaultBranchRef") or {}
        history = (branch.get("target") or {}).get("history") or {}
        return int(history.get("totalCount", 0))

    def get_latest_commit_sha(self, identity: RepositoryIdentity) -> str:
        repository = self._query_repository(identity, "defaultBranchRef { target { ... on Commit { oid } } }")
        branch = repository.get("defaultBranchRef") or {}
        return str((branch.get("target") or {}).get("oid", ""))

    def get_branch_protection_rule_count(self, identity: RepositoryIdentity) -> int:
        repository = self._query_repository(identity, "branchProtectionRules { totalCount }")
        return int(repository["branchProtectionRules"]["totalCount"])

    def get_webhook_count(self, identity: RepositoryIdentity) -> int:
        repo = self._get_repo(identity)
        try:
            # Active and inactive hooks alike
            return sum(1 for _ in repo.get_hooks())
        except _API_ERRORS as e:
            msg = f"failed to list {self.name} webhooks for {identity}: {e}"
            raise ProviderError(msg) from e

    def get_lfs_object_count(self, identity: RepositoryIdentity) -> int:
        """Count distinct LFS objects referenced on the default branch.

        Only paths tracked by ``.gitattributes`` are inspected. Without a
        ``.gitattributes`` file every blob small enough to be a pointer is
        inspected instead.
        """
        repository = self._query_repository(identity, "defaultBranchRef { name }")
        default_branch = (repository.get("defaultBranchRef") or {}).get("name")
        if not default_branch:
            return 0

        repo = self._get_repo(identity)
        try:
            top_level = repo.get_git_tree(default_branch)
            patterns = self._read_lfs_patterns(repo, top_level)
            if patterns is not None and not patterns:
                return 0
            tree = repo.get_git_tree(default_branch, recursive=True)
        except _API_ERRORS as e:
            msg = f"failed to read {self.name} repository tree for {identity}: {e}"
            raise ProviderError(msg) from e

        oids: set[str] = set()
        for entry in tree.tree:
            if entry.type != "blob":
                continue
            if patterns is None:
                if entry.size is not None and entry.size > lfs.MAX_POINTER_SIZE:
                    continue
            elif not lfs.matches_lfs_pattern(entry.path, patterns):
                continue

            content = self._read_blob(repo, entry.sha)
            if not content or not content.strip():
                continue
            if (pointer := lfs.parse_lfs_pointer(content)) is not None:
                oids.add(pointer.oid)

        return len(oids)

    def _read_lfs_patterns(self, repo: Repository, top_level: GitTree) -> list[str] | None:
        """Return the LFS patterns of ``.gitattributes``, or None when there is no such file."""
        for entry in top_level.tree:
            if entry.path == lfs.GITATTRIBUTES_PATH and entry.type == "blob":
                content = self._read_blob(repo, entry.sha)
                return None if content is None else lfs.parse_lfs_patterns(content)
        return None

    def _read_blob(self, repo: Repository, sha: str) -> str | None:
        """Return decoded blob content, or None when the API refuses the blob.

        A transport failure is not a property of the blob and aborts the count.
        """
        try:
            blob = repo.get_git_blob(sha)
        except GithubException as e:
            logger.debug(f"Skipping unreadable blob {sha}: {e}")
            return None
        except requests.RequestException as e:
            msg = f"failed to read {self.name} blob {sha}: {e}"
            raise ProviderError(msg) from e
        content = blob.content or ""
        if blob.encoding == "base64":
            try:
                return base64.b64decode(content).decode("utf-8", errors="replace")
            except (binascii.Error, ValueError):
                return None
        return content

    # Organization migrations

    def find_migrations(self, organization: str, repository_name: str) -> list[MigrationInfo]:
        """Return exported migrations of ``organization`` that contain ``repository_name``.

        Only the most recent migrations are considered.
        """
        found: list[MigrationInfo] = []
        try:
            migrations = self._client.get_organization(organization).get_migrations()
            for index, migration in enumerate(migrations):
                if index >= MAX_LISTED_MIGRATIONS:
                    break
                if migration.state != EXPORTED_STATE:
                    continue
                names = [repo.name for repo in migration.repositories]
                if repository_name in names:
                    found.append(
                        MigrationInfo(
                            id=migration.id,
                            state=migration.state,
                            created_at=str(migration.created_at or ""),
                            updated_at=str(migration.updated_at or ""),
                            repositories=names,
                        )
                    )
        except _API_ERRORS as e:
            msg = f"failed to list {self.name} organization migrations for {organization}: {e}"
            raise ProviderError(msg) from e
        return found

    def download_migration_archive(self, organization: str, migration_id: int, output_path: Path) -> Path:
        """Download a migration archive to ``output_path``.

        The REST API hands out a pre-signed URL, which is fetched without the
        API credentials.
        """
        try:
            migrations = self._client.get_organization(organization).get_migrations()
            migration = next((m for m in migrations if m.id == migration_id), None)
            if migration is None:
                msg = f"migration {migration_id} not found in organization {organization}"
                raise ProviderError(msg)
            archive_url = migration.get_archive_url()
        except _API_ERRORS as e:
            msg = f"failed to get {self.name} migration archive URL: {e}"
            raise ProviderError(msg) from e

        try:
            with requests.get(archive_url, stream=True, timeout=REQUEST_TIMEOUT) as response:
                if response.status_code != 200:  # noqa: PLR2004
                    msg = f"failed to download migration archive: status {response.status_code}"
                    raise ProviderError(msg)
                output_path.parent.mkdir(parents=True, exist_ok=True)
                with output_path.open("wb") as f:
                    for chunk in response.iter_content(chunk_size=1024 * 1024):
                        f.write(chunk)
        except requests.RequestException as e:
            msg = f"failed to download migration archive: {e}"
            raise ProviderError(msg) from e
        except OSError as e:
            msg = f"failed to save migration archive to {output_path}: {e}"
            raise ProviderError(msg) from e

        logger.info(f"Downloaded migration archive {migration_id} to {output_path}")
        return output_path
