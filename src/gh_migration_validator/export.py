"""
Exporting a source snapshot to JSON or CSV and loading it back.

An export freezes the source side of a validation so it can be compared
against the target later, for example after the source has been archived.
"""

from __future__ import annotations

import csv
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Final

from .exceptions import ExportError
from .models import MigrationArchiveMetrics, RepositorySnapshot

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

EXPORT_DIR: Final[str] = ".exports"
SUPPORTED_FORMATS: Final[tuple[str, ...]] = ("json", "csv")

CSV_HEADER: Final[tuple[str, ...]] = (
    "export_timestamp",
    "owner",
    "repository_name",
    "issues_count",
    "pull_requests_open",
    "pull_requests_closed",
    "pull_requests_merged",
    "pull_requests_total",
    "tags_count",
    "releases_count",
    "commits_count",
    "latest_commit_sha",
    "branch_protection_rules_count",
    "webhooks_count",
    "lfs_objects_count",
)


@dataclass
class ExportData:
    export_timestamp: datetime
    repository: RepositorySnapshot

    def to_dict(self) -> dict[str, Any]:
        return {
            "export_timestamp": self.export_timestamp.isoformat(),
            "repository_data": self.repository.to_dict(),
        }

    def csv_row(self) -> list[str]:
        repo = self.repository
        prs = repo.pull_requests
        return [
            self.export_timestamp.isoformat(),
            repo.owner,
            repo.name,
            str(repo.issues),
            str(prs.open),
            str(prs.closed),
            str(prs.merged),
            str(prs.total),
            str(repo.tags),
            str(repo.releases),
            str(repo.commits),
            repo.latest_commit_sha,
            str(repo.branch_protection_rules),
            str(repo.webhooks),
            str(repo.lfs_objects),
        ]


def default_export_path(owner: str, repo: str, fmt: str, timestamp: datetime) -> Path:
    """``.exports/<owner>_<repo>_export_<YYYYmmdd_HHMMSS>.<fmt>``"""
    return Path(EXPORT_DIR) / f"{owner}_{repo}_export_{timestamp.strftime('%Y%m%d_%H%M%S')}.{fmt}"


def write_export(data: ExportData, fmt: str, path: Path) -> Path:
    """Write ``data`` to ``path`` as JSON or CSV, creating parent directories."""
    fmt = fmt.lower()
    if fmt not in SUPPORTED_FORMATS:
        msg = f"unsupported format: {fmt}. Supported formats: {', '.join(SUPPORTED_FORMATS)}"
        raise ExportError(msg)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as f:
            if fmt == "json":
                json.dump(data.to_dict(), f, indent=2)
                f.write("\n")
            else:
                writer = csv.writer(f)
                writer.writerow(CSV_HEADER)
                writer.writerow(data.csv_row())
    except OSError as e:
        msg = f"failed to write export file {path}: {e}"
        raise ExportError(msg) from e

    logger.info(f"Export written to {path}")
    return path


def load_export(path: Path) -> ExportData:
    """Load and validate a JSON export.

    Raises:
        ExportError: If the file is missing or unparseable, or lacks the timestamp, owner or name
    """
    if not path.exists():
        msg = f"export file does not exist: {path}"
        raise ExportError(msg)

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        msg = f"failed to read export file: {e}"
        raise ExportError(msg) from e
    except ValueError as e:
        msg = f"failed to parse export JSON: {e}"
        raise ExportError(msg) from e

    if not isinstance(raw, dict):
        msg = "invalid export data: expected a JSON object"
        raise ExportError(msg)

    timestamp_text = raw.get("export_timestamp")
    if not timestamp_text:
        msg = "invalid export data: export timestamp is missing or invalid"
        raise ExportError(msg)
    try:
        timestamp = datetime.fromisoformat(str(timestamp_text))
    except ValueError as e:
        msg = "invalid export data: export timestamp is missing or invalid"
        raise ExportError(msg) from e

    repository_data = raw.get("repository_data") or {}
    if not repository_data.get("owner"):
        msg = "invalid export data: repository owner is missing"
        raise ExportError(msg)
    if not repository_data.get("name"):
        msg = "invalid export data: repository name is missing"
        raise ExportError(msg)

    try:
        snapshot = RepositorySnapshot.from_dict(repository_data)
    except (TypeError, ValueError) as e:
        msg = f"invalid export data: {e}"
        raise ExportError(msg) from e

    # Older exports kept the archive metrics next to the repository data
    if snapshot.migration_archive is None and raw.get("migration_archive"):
        snapshot.migration_archive = MigrationArchiveMetrics.from_dict(raw["migration_archive"])

    return ExportData(export_timestamp=timestamp, repository=snapshot)
