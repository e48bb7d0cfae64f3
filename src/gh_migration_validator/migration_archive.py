"""
Locating, downloading, extracting and analyzing GitHub organization migration archives.

An exported archive holds one JSON array file series per entity type
(``issues_000001.json``, ``issues_000002.json``, ...). Counting the array
entries gives a point-in-time record of what the export contained.
"""

from __future__ import annotations

import json
import logging
import tarfile
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Final

from .exceptions import ArchiveError, ProviderError
from .models import MigrationArchiveMetrics

if TYPE_CHECKING:
    from .github_provider import GitHubProvider, MigrationInfo

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_DIR: Final[str] = "migration-archives"

_COUNTED_PREFIXES: Final[dict[str, str]] = {
    "issues": "issues_",
    "pull_requests": "pull_requests_",
    "protected_branches": "protected_branches_",
    "releases": "releases_",
}
_RECOGNIZED_PREFIXES: Final[frozenset[str]] = frozenset(
    {"issues", "pull_requests", "protected_branches", "releases", "repositories"}
)


def analyze_archive(directory: Path) -> MigrationArchiveMetrics:
    """Count issues, pull requests, protected branches and releases in an extracted archive.

    Raises:
        ArchiveError: If the directory or one of its JSON files cannot be read
    """
    counts = {field: _count_json_array_entries(directory, prefix) for field, prefix in _COUNTED_PREFIXES.items()}
    metrics = MigrationArchiveMetrics(**counts)
    logger.info(
        f"Migration archive {directory}: {metrics.issues} issues, {metrics.pull_requests} pull requests, "
        f"{metrics.protected_branches} protected branches, {metrics.releases} releases"
    )
    return metrics


def _count_json_array_entries(directory: Path, prefix: str) -> int:
    try:
        entries = sorted(directory.iterdir())
    except OSError as e:
        msg = f"failed to read archive directory {directory}: {e}"
        raise ArchiveError(msg) from e

    total = 0
    for entry in entries:
        if entry.is_dir() or not (entry.name.startswith(prefix) and entry.name.endswith(".json")):
            continue
        try:
            data = json.loads(entry.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            msg = f"failed to parse JSON in file {entry.name}: {e}"
            raise ArchiveError(msg) from e
        if not isinstance(data, list):
            msg = f"file {entry.name} does not contain a JSON array"
            raise ArchiveError(msg)
        total += len(data)
    return total


def validate_archive_path(path: Path) -> None:
    """Check that ``path`` looks like an extracted migration archive."""
    if not path.exists():
        msg = f"archive path does not exist: {path}"
        raise ArchiveError(msg)
    if not path.is_dir():
        msg = f"archive path is not a directory: {path}"
        raise ArchiveError(msg)

    for entry in path.glob("*.json"):
        prefix, separator, _ = entry.name.partition("_")
        if separator and prefix in _RECOGNIZED_PREFIXES:
            return

    msg = f"archive path does not contain migration archive JSON files: {path}"
    raise ArchiveError(msg)


def archive_destination(archive_path: Path) -> Path:
    """Directory next to the archive, named after it without its ``.tar.gz``/``.tgz`` suffix."""
    name = archive_path.name
    for suffix in (".tar.gz", ".tgz"):
        if name.endswith(suffix):
            name = name.removesuffix(suffix)
            break
    return archive_path.parent / name


def extract_tar_gz(archive_path: Path, destination: Path) -> None:
    """Extract a gzipped tarball, refusing members that would escape ``destination``."""
    destination.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(archive_path, "r:gz") as tar:
            members = [member for member in tar.getmembers() if member.isfile() or member.isdir() or member.issym()]
            skipped = len(tar.getmembers()) - len(members)
            if skipped:
                logger.warning(f"Skipping {skipped} special file(s) in {archive_path}")
            tar.extractall(destination, members=members, filter="data")
    except (tarfile.TarError, OSError) as e:
        msg = f"failed to extract archive {archive_path}: {e}"
        raise ArchiveError(msg) from e


def select_migration(
    provider: GitHubProvider,
    organization: str,
    repository_name: str,
    input_func: Callable[[str], str] = input,
) -> int:
    """Pick the exported migration to use for a repository.

    A single candidate is used directly; several are listed and the user is
    asked for a 1-based choice.
    """
    print(f"Searching for migrations containing repository '{repository_name}'...")
    try:
        migrations = provider.find_migrations(organization, repository_name)
    except ProviderError as e:
        msg = f"failed to search for migrations: {e}"
        raise ArchiveError(msg) from e

    if not migrations:
        msg = f"no exported migrations found containing repository '{repository_name}' in organization {organization}"
        raise ArchiveError(msg)

    if len(migrations) == 1:
        migration = migrations[0]
        print(f"Found one migration containing '{repository_name}':")
        print(f"  Migration ID: {migration.id} (will use for download)")
        print(f"  Created: {migration.created_at}")
        return migration.id

    print(f"Found {len(migrations)} migrations containing repository '{repository_name}':\n")
    for number, migration in enumerate(migrations, start=1):
        _print_migration(number, migration)

    answer = input_func(f"Please select a migration (1-{len(migrations)}): ")
    try:
        selection = int(answer.strip())
    except ValueError:
        selection = 0
    if not 1 <= selection <= len(migrations):
        msg = f"invalid selection. Please enter a number between 1 and {len(migrations)}"
        raise ArchiveError(msg)

    selected = migrations[selection - 1]
    print(f"Selected migration ID: {selected.id} (will use for download)")
    return selected.id


def _print_migration(number: int, migration: MigrationInfo) -> None:
    print(f"{number}. Migration ID: {migration.id}")
    print(f"   Created: {migration.created_at}")
    print(f"   Updated: {migration.updated_at}")
    print(f"   State: {migration.state}")
    print(f"   Repositories ({len(migration.repositories)}): {', '.join(migration.repositories)}\n")


def download_and_extract_archive(
    provider: GitHubProvider,
    organization: str,
    repository_name: str,
    download_dir: Path | None = None,
    input_func: Callable[[str], str] = input,
) -> Path:
    """Select, download and extract the migration archive of a repository.

    Returns:
        The directory the archive was extracted to
    """
    migration_id = select_migration(provider, organization, repository_name, input_func)

    output_dir = download_dir or Path(DEFAULT_DOWNLOAD_DIR)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        msg = f"failed to create output directory {output_dir}: {e}"
        raise ArchiveError(msg) from e

    archive_path = output_dir / f"migration-{repository_name}-{migration_id}.tar.gz"
    logger.info(f"Downloading migration archive {migration_id}...")
    try:
        provider.download_migration_archive(organization, migration_id, archive_path)
    except ProviderError as e:
        msg = f"failed to download migration archive: {e}"
        raise ArchiveError(msg) from e

    extract_path = archive_destination(archive_path)
    logger.info(f"Extracting migration archive to {extract_path}")
    extract_tar_gz(archive_path, extract_path)
    return extract_path
