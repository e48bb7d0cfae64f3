"""
Pytest configuration and fixtures.

This module configures pytest behavior for different test types:
- Integration tests: Skipped unless the test repositories are configured,
  and failed on any warning logged by the validator
- Unit tests: Allow warnings
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Final

import pytest
from typing_extensions import override

if TYPE_CHECKING:
    from collections.abc import Generator

# owner/name of two repositories holding the same migrated content
INTEGRATION_ENV_VARS: Final[tuple[str, ...]] = ("GHMV_TEST_SOURCE_REPO", "GHMV_TEST_TARGET_REPO")

# Store warning records during test execution
_integration_test_warnings: dict[str, list[logging.LogRecord]] = {}


class IntegrationTestWarningHandler(logging.Handler):
    """Logging handler capturing validator warnings during integration tests."""

    test_nodeid: str

    def __init__(self, test_nodeid: str) -> None:
        super().__init__()
        self.test_nodeid = test_nodeid
        self.setLevel(logging.WARNING)

    @override
    def emit(self, record: logging.LogRecord) -> None:
        # Third-party libraries may warn on their own; only validator records count
        if record.name.startswith("gh_migration_validator"):
            _integration_test_warnings.setdefault(self.test_nodeid, []).append(record)


@pytest.fixture(autouse=True)
def check_integration_test_env_vars(request: pytest.FixtureRequest) -> None:
    """Skip integration tests with a clear message when the test repositories are not configured."""
    if request.node.get_closest_marker("integration") is None:
        return

    missing = [name for name in INTEGRATION_ENV_VARS if not os.environ.get(name)]
    if missing:
        pytest.skip(f"Integration test requires environment variables: {', '.join(missing)}")


@pytest.fixture(autouse=True)
def fail_on_log_warnings_for_integration_tests(
    request: pytest.FixtureRequest,
) -> Generator[None]:
    """
    Fail integration tests if the validator logs any WARNING or ERROR.

    A partial retrieval failure or a low rate limit budget is acceptable when
    running the tool, but against known-good test repositories it means
    something is broken. Warnings raised by the test code via warnings.warn()
    are not affected.
    """
    if request.node.get_closest_marker("integration") is None:
        yield
        return

    test_nodeid = request.node.nodeid
    _integration_test_warnings[test_nodeid] = []

    handler = IntegrationTestWarningHandler(test_nodeid)
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)

    try:
        yield
    finally:
        root_logger.removeHandler(handler)


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[None]
) -> Generator[None]:  # type: ignore[misc]
    """Mark a passed integration test as failed when warnings were captured during its call phase."""
    outcome = yield
    report = outcome.get_result()

    if call.when == "call" and report.outcome == "passed":
        test_nodeid = item.nodeid
        warning_records = _integration_test_warnings.get(test_nodeid, [])

        if warning_records:
            warning_messages = [
                f"{record.levelname}: {record.getMessage()} (in {record.name}:{record.lineno})"
                for record in warning_records
            ]
            report.outcome = "failed"
            report.longrepr = f"Integration test failed: {len(warning_records)} warning(s) detected:\n" + "\n".join(
                f"  - {msg}" for msg in warning_messages
            )

        _integration_test_warnings.pop(test_nodeid, None)
