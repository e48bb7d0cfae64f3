"""
Tests for migration archive handling.
"""

import io
import json
import tarfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from gh_migration_validator.exceptions import ArchiveError, ProviderError
from gh_migration_validator.github_provider import MigrationInfo
from gh_migration_validator.migration_archive import (
    analyze_archive,
    archive_destination,
    download_and_extract_archive,
    extract_tar_gz,
    select_migration,
    validate_archive_path,
)
from gh_migration_validator.models import MigrationArchiveMetrics


def write_json(directory: Path, name: str, data: object) -> None:
    (directory / name).write_text(json.dumps(data), encoding="utf-8")


def make_tarball(path: Path, files: dict[str, bytes]) -> None:
    with tarfile.open(path, "w:gz") as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))


@pytest.mark.unit
class TestAnalyzeArchive:
    def test_counts_paginated_files(self, tmp_path: Path) -> None:
        write_json(tmp_path, "issues_000001.json", [{}, {}, {}])
        write_json(tmp_path, "issues_000002.json", [{}, {}, {}])
        write_json(tmp_path, "pull_requests_000001.json", [{}, {}])
        write_json(tmp_path, "protected_branches_000001.json", [{}])
        write_json(tmp_path, "repositories_000001.json", [{}])
        (tmp_path / "issues_notes.txt").write_text("ignored")

        metrics = analyze_archive(tmp_path)

        assert metrics == MigrationArchiveMetrics(issues=6, pull_requests=2, protected_branches=1, releases=0)

    def test_invalid_json(self, tmp_path: Path) -> None:
        (tmp_path / "issues_000001.json").write_text("{not json")

        with pytest.raises(ArchiveError, match="failed to parse JSON in file issues_000001.json"):
            analyze_archive(tmp_path)

    def test_non_array_json(self, tmp_path: Path) -> None:
        write_json(tmp_path, "releases_000001.json", {"id": 1})

        with pytest.raises(ArchiveError, match="does not contain a JSON array"):
            analyze_archive(tmp_path)

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ArchiveError, match="failed to read archive directory"):
            analyze_archive(tmp_path / "missing")


@pytest.mark.unit
class TestValidateArchivePath:
    def test_valid_archive(self, tmp_path: Path) -> None:
        write_json(tmp_path, "repositories_000001.json", [])

        validate_archive_path(tmp_path)

    def test_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ArchiveError, match="does not exist"):
            validate_archive_path(tmp_path / "nope")

    def test_file_instead_of_directory(self, tmp_path: Path) -> None:
        file_path = tmp_path / "archive.tar.gz"
        file_path.write_bytes(b"")

        with pytest.raises(ArchiveError, match="not a directory"):
            validate_archive_path(file_path)

    def test_unrelated_json_files(self, tmp_path: Path) -> None:
        write_json(tmp_path, "package.json", {})

        with pytest.raises(ArchiveError, match="does not contain migration archive JSON files"):
            validate_archive_path(tmp_path)


@pytest.mark.unit
class TestExtraction:
    def test_archive_destination(self) -> None:
        assert archive_destination(Path("dl/migration-repo-7.tar.gz")) == Path("dl/migration-repo-7")
        assert archive_destination(Path("dl/export.tgz")) == Path("dl/export")

    def test_extract_tar_gz(self, tmp_path: Path) -> None:
        tarball = tmp_path / "archive.tar.gz"
        make_tarball(tarball, {"issues_000001.json": b"[{}]", "attachments/readme.txt": b"hi"})

        extract_tar_gz(tarball, tmp_path / "out")

        assert (tmp_path / "out" / "issues_000001.json").read_bytes() == b"[{}]"
        assert (tmp_path / "out" / "attachments" / "readme.txt").read_text() == "hi"

    def test_member_escaping_destination_is_rejected(self, tmp_path: Path) -> None:
        tarball = tmp_path / "evil.tar.gz"
        make_tarball(tarball, {"../escaped.txt": b"nope"})

        with pytest.raises(ArchiveError, match="failed to extract archive"):
            extract_tar_gz(tarball, tmp_path / "out")
        assert not (tmp_path / "escaped.txt").exists()

    def test_corrupt_tarball(self, tmp_path: Path) -> None:
        tarball = tmp_path / "broken.tar.gz"
        tarball.write_bytes(b"not a tarball")

        with pytest.raises(ArchiveError):
            extract_tar_gz(tarball, tmp_path / "out")


@pytest.mark.unit
class TestSelectMigration:
    def _migration(self, migration_id: int) -> MigrationInfo:
        return MigrationInfo(
            id=migration_id, state="exported", created_at="2024-01-01", updated_at="2024-01-02", repositories=["repo"]
        )

    def test_single_migration_is_used(self, capsys: pytest.CaptureFixture[str]) -> None:
        provider = MagicMock()
        provider.find_migrations.return_value = [self._migration(11)]
        input_func = MagicMock()

        assert select_migration(provider, "org", "repo", input_func) == 11
        input_func.assert_not_called()
        assert "Migration ID: 11 (will use for download)" in capsys.readouterr().out

    def test_user_selects_among_several(self, capsys: pytest.CaptureFixture[str]) -> None:
        provider = MagicMock()
        provider.find_migrations.return_value = [self._migration(11), self._migration(12)]

        assert select_migration(provider, "org", "repo", lambda _prompt: "2") == 12
        output = capsys.readouterr().out
        assert "Found 2 migrations" in output
        assert "Selected migration ID: 12" in output

    @pytest.mark.parametrize("answer", ["0", "3", "abc", ""])
    def test_invalid_selection(self, answer: str) -> None:
        provider = MagicMock()
        provider.find_migrations.return_value = [self._migration(11), self._migration(12)]

        with pytest.raises(ArchiveError, match="invalid selection"):
            select_migration(provider, "org", "repo", lambda _prompt: answer)

    def test_no_migrations(self) -> None:
        provider = MagicMock()
        provider.find_migrations.return_value = []

        with pytest.raises(ArchiveError, match="no exported migrations found"):
            select_migration(provider, "org", "repo")

    def test_search_failure(self) -> None:
        provider = MagicMock()
        provider.find_migrations.side_effect = ProviderError("403")

        with pytest.raises(ArchiveError, match="failed to search for migrations"):
            select_migration(provider, "org", "repo")


@pytest.mark.unit
class TestDownloadAndExtract:
    def test_downloads_extracts_and_returns_directory(self, tmp_path: Path) -> None:
        provider = MagicMock()
        provider.find_migrations.return_value = [MigrationInfo(id=5, state="exported", repositories=["repo"])]

        def download(_org: str, _migration_id: int, output_path: Path) -> Path:
            make_tarball(output_path, {"issues_000001.json": b"[{}, {}]"})
            return output_path

        provider.download_migration_archive.side_effect = download

        extracted = download_and_extract_archive(provider, "org", "repo", tmp_path)

        assert extracted == tmp_path / "migration-repo-5"
        provider.download_migration_archive.assert_called_once_with("org", 5, tmp_path / "migration-repo-5.tar.gz")
        assert analyze_archive(extracted).issues == 2

    def test_download_failure(self, tmp_path: Path) -> None:
        provider = MagicMock()
        provider.find_migrations.return_value = [MigrationInfo(id=5, state="exported", repositories=["repo"])]
        provider.download_migration_archive.side_effect = ProviderError("status 404")

        with pytest.raises(ArchiveError, match="failed to download migration archive"):
            download_and_extract_archive(provider, "org", "repo", tmp_path)
