"""
Metric provider for Bitbucket Server / Data Center.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Final

import requests

from .exceptions import ConfigurationError, ProviderError, RepositoryAccessError
from .models import PullRequestCounts
from .utils import normalize_url

if TYPE_CHECKING:
    from .models import RepositoryIdentity

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

REQUEST_TIMEOUT: Final[int] = 30
MAX_RETRIES: Final[int] = 3
PAGE_LIMIT: Final[int] = 100
COMMIT_PAGE_LIMIT: Final[int] = 1000


class BitbucketProvider:
    """Answers metric queries from the Bitbucket Server REST API.

    A RepositoryIdentity maps to project key (owner) and repository slug
    (name). Bitbucket Server has no issues, releases or LFS object listing,
    so those metrics are declared unsupported and return 0 without a request.
    """

    name = "Bitbucket"
    unsupported_metrics: frozenset[str] = frozenset({"issues", "releases", "lfs_objects"})

    def __init__(
        self,
        server_url: str | None,
        token: str | None,
        *,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not server_url or not server_url.strip():
            msg = "Bitbucket Server base URL is required"
            raise ConfigurationError(msg)
        if not token:
            msg = "Bitbucket Server token is required"
            raise ConfigurationError(msg)

        self.base_url = normalize_url(server_url)
        self._session = session or requests.Session()
        self._session.headers.update({"Authorization": f"Bearer {token}", "Accept": "application/json"})
        self._sleep = sleep

    def _repo_path(self, identity: RepositoryIdentity) -> str:
        return f"/rest/api/1.0/projects/{identity.owner}/repos/{identity.name}"

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:  # noqa: ANN401
        """GET a JSON document, retrying HTTP 429 and transport errors with exponential backoff."""
        url = self.base_url + path
        last_error: str = ""

        for attempt in range(MAX_RETRIES + 1):
            try:
                response = self._session.get(url, params=params, timeout=REQUEST_TIMEOUT)
            except requests.RequestException as e:
                last_error = f"request failed for {path}: {e}"
                if attempt < MAX_RETRIES:
                    delay = 2**attempt
                    logger.debug(f"{last_error}, retrying in {delay}s")
                    self._sleep(delay)
                continue

            status = response.status_code
            if status == 200:  # noqa: PLR2004
                try:
                    return response.json()
                except ValueError as e:
                    msg = f"invalid JSON in response for {path}: {e}"
                    raise ProviderError(msg) from e
            if status == 429:  # noqa: PLR2004
                if attempt < MAX_RETRIES:
                    delay = 2**attempt
                    logger.debug(f"Rate limited (429) on {path}, retrying in {delay}s")
                    self._sleep(delay)
                    last_error = f"rate limited (429) on {path}"
                    continue
                msg = f"rate limited (429) on {path} after {MAX_RETRIES} retries"
                raise ProviderError(msg)
            if status == 401:  # noqa: PLR2004
                msg = f"authentication failed (401) for {path}: check your Bitbucket token"
                raise ProviderError(msg)
            if status == 403:  # noqa: PLR2004
                msg = f"access denied (403) for {path}: insufficient permissions"
                raise ProviderError(msg)
            if status == 404:  # noqa: PLR2004
                msg = f"not found (404) for {path}: verify the project/repo exists"
                raise ProviderError(msg)
            msg = f"unexpected status {status} for {path}: {response.text[:200]}"
            raise ProviderError(msg)

        raise ProviderError(last_error)

    def _paged_count(self, path: str, params: dict[str, Any] | None = None, *, limit: int = PAGE_LIMIT) -> int:
        """Sum ``size`` over all pages of a paged collection."""
        total = 0
        start = 0
        while True:
            page = self._get(path, {**(params or {}), "limit": limit, "start": start})
            total += int(page.get("size", 0))
            if page.get("isLastPage", True):
                return total
            start = int(page.get("start", start)) + int(page.get("limit", limit))

    def _default_branch(self, identity: RepositoryIdentity) -> str:
        branch = self._get(f"{self._repo_path(identity)}/default-branch")
        return branch.get("displayId") or branch.get("id") or ""

    # MetricProvider

    def validate_access(self, identity: RepositoryIdentity) -> None:
        try:
            self._get(self._repo_path(identity))
        except ProviderError as e:
            msg = f"Cannot access {self.name} repository {identity}: {e}"
            raise RepositoryAccessError(msg) from e

    def get_rate_limit_status(self) -> None:
        return None

    def get_issue_count(self, identity: RepositoryIdentity) -> int:  # noqa: ARG002
        return 0

    def get_release_count(self, identity: RepositoryIdentity) -> int:  # noqa: ARG002
        return 0

    def get_lfs_object_count(self, identity: RepositoryIdentity) -> int:  # noqa: ARG002
        return 0

    def get_pull_request_counts(self, identity: RepositoryIdentity) -> PullRequestCounts:
        path = f"{self._repo_path(identity)}/pull-requests"
        counts: dict[str, int] = {}
        for state in ("OPEN", "MERGED", "DECLINED"):
            try:
                counts[state] = self._paged_count(path, {"state": state})
            except ProviderError as e:
                msg = f"failed to get {state.lower()} PR count: {e}"
                raise ProviderError(msg) from e
        # Declined is the Bitbucket name for closed-unmerged
        return PullRequestCounts(open=counts["OPEN"], merged=counts["MERGED"], closed=counts["DECLINED"])

    def get_tag_count(self, identity: RepositoryIdentity) -> int:
        return self._paged_count(f"{self._repo_path(identity)}/tags")

    def get_commit_count(self, identity: RepositoryIdentity) -> int:
        branch = self._default_branch(identity)
        if not branch:
            return 0

        path = f"{self._repo_path(identity)}/commits"
        response = self._get(path, {"limit": 0, "until": branch})
        total_count = response.get("totalCount")
        if total_count is not None:
            return int(total_count)
        return self._paged_count(path, {"until": branch}, limit=COMMIT_PAGE_LIMIT)

    def get_latest_commit_sha(self, identity: RepositoryIdentity) -> str:
        branch = self._default_branch(identity)
        if not branch:
            return ""

        page = self._get(f"{self._repo_path(identity)}/commits", {"limit": 1, "until": branch})
        commits = page.get("values") or []
        if not commits:
            msg = f"no commits found on branch {branch}"
            raise ProviderError(msg)
        return str(commits[0]["id"])

    def get_branch_protection_rule_count(self, identity: RepositoryIdentity) -> int:
        return self._paged_count(
            f"/rest/branch-permissions/2.0/projects/{identity.owner}/repos/{identity.name}/restrictions"
        )

    def get_webhook_count(self, identity: RepositoryIdentity) -> int:
        return self._paged_count(f"{self._repo_path(identity)}/webhooks")
