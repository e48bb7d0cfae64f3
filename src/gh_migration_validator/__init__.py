"""
GitHub Migration Validator

Validates repository migrations to GitHub by comparing issue, pull request,
tag, release, commit, branch protection, webhook and LFS counts between the
source repository (GitHub, Bitbucket Server or an export) and the target.
"""

from __future__ import annotations

# Package version
__version__ = "0.1.0"

from .cli import main  # noqa: E402
from .comparison import compare  # noqa: E402
from .exceptions import MigrationValidatorError  # noqa: E402
from .models import ComparisonOptions, ComparisonResult, RepositoryIdentity, RepositorySnapshot  # noqa: E402
from .utils import setup_logging  # noqa: E402
from .validator import MigrationValidator  # noqa: E402

# Public API
__all__ = [
    "ComparisonOptions",
    "ComparisonResult",
    "MigrationValidator",
    "MigrationValidatorError",
    "RepositoryIdentity",
    "RepositorySnapshot",
    "compare",
    "main",
    "setup_logging",
]
