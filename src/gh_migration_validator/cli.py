"""
Command-line interface for the migration validator.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import fields
from datetime import datetime
from pathlib import Path
from typing import Final

from rich.console import Console

from . import __version__, report
from .bitbucket_provider import BitbucketProvider
from .comparison import has_failures
from .config import Settings, require, resolve_token
from .exceptions import MigrationValidatorError
from .export import ExportData, default_export_path, load_export, write_export
from .github_provider import GitHubProvider
from .migration_archive import analyze_archive, download_and_extract_archive, validate_archive_path
from .models import ComparisonOptions, RepositoryIdentity
from .session import SessionStore, should_save_session
from .utils import is_interactive, setup_logging
from .validator import MigrationValidator, parse_repository_list

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

EXIT_OK: Final[int] = 0
EXIT_ERROR: Final[int] = 1
EXIT_STRICT_FAILURE: Final[int] = 2

BITBUCKET_OPTIONS: Final[ComparisonOptions] = ComparisonOptions(
    skip_issues=True,
    skip_releases=True,
    skip_lfs=True,
    skip_migration_log_offset=True,
    branch_permissions_advisory=True,
    source_label="Bitbucket",
)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    _ = parser.add_argument(
        "--markdown-table", "-m", action="store_true", default=None, help="Print results as a markdown table"
    )
    _ = parser.add_argument("--markdown-file", help="Write the markdown report to this file")
    _ = parser.add_argument("--no-lfs", action="store_true", default=None, help="Skip LFS object validation")
    _ = parser.add_argument(
        "--strict-exit", action="store_true", default=None, help="Exit with code 2 when any comparison fails"
    )
    _ = parser.add_argument(
        "--rate-limit-threshold", type=int, help="Warn when the API budget is below this value (0 disables)"
    )
    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    _ = parser.add_argument("--source-organization", "-s", help="Source organization")
    _ = parser.add_argument("--source-token", "-a", help="Source GitHub token")
    _ = parser.add_argument("--source-pass-token", help="Path for the source GitHub token in pass utility")
    _ = parser.add_argument(
        "--source-hostname", "-u", help="GitHub Enterprise source hostname (optional), e.g. https://github.example.com"
    )
    _ = parser.add_argument("--source-repo", help="Source repository name (just the repo name, not owner/repo)")
    _ = parser.add_argument("--source-app-id", help="Source GitHub App ID (use with private key and installation ID)")
    _ = parser.add_argument("--source-private-key", help="Source GitHub App private key (PEM contents)")
    _ = parser.add_argument("--source-installation-id", help="Source GitHub App installation ID")


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    _ = parser.add_argument("--target-organization", "-t", help="Target organization")
    _ = parser.add_argument("--target-token", "-b", help="Target GitHub token")
    _ = parser.add_argument("--target-pass-token", help="Path for the target GitHub token in pass utility")
    _ = parser.add_argument(
        "--target-hostname", help="GitHub Enterprise target hostname (optional), e.g. https://github.example.com"
    )
    _ = parser.add_argument("--target-repo", help="Target repository name (just the repo name, not owner/repo)")
    _ = parser.add_argument("--target-app-id", help="Target GitHub App ID (use with private key and installation ID)")
    _ = parser.add_argument("--target-private-key", help="Target GitHub App private key (PEM contents)")
    _ = parser.add_argument("--target-installation-id", help="Target GitHub App installation ID")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gh-migration-validator",
        description="Validate repository migrations by comparing source and target metadata",
    )
    _ = parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Validate a GitHub to GitHub migration")
    _add_source_arguments(validate)
    _add_target_arguments(validate)
    _ = validate.add_argument("--repo-list", "-l", help="CSV file of repository pairs (format: source,target)")
    _add_common_arguments(validate)

    export = subparsers.add_parser("export", help="Export source repository data to JSON or CSV")
    _add_source_arguments(export)
    _ = export.add_argument("--format", "-f", choices=["json", "csv"], default="json", help="Output format")
    _ = export.add_argument("--output", "-o", help="Output file path (default: .exports/<owner>_<repo>_export_<ts>)")
    archive_group = export.add_mutually_exclusive_group()
    _ = archive_group.add_argument(
        "--download", "-d", action="store_true", help="Download and analyze the repository's migration archive"
    )
    _ = archive_group.add_argument("--archive-path", "-p", help="Path to an already extracted migration archive")
    _ = export.add_argument("--download-path", help="Directory for downloaded archives (default: ./migration-archives)")
    _add_common_arguments(export)

    from_export = subparsers.add_parser(
        "validate-from-export", help="Validate a target repository against exported source data"
    )
    _ = from_export.add_argument("--export-file", "-e", required=True, help="Exported JSON file to use as source data")
    _add_target_arguments(from_export)
    _add_common_arguments(from_export)

    bitbucket = subparsers.add_parser("bitbucket", help="Validate a Bitbucket Server to GitHub migration")
    _ = bitbucket.add_argument("--bbs-server-url", "-H", help="Bitbucket Server URL, e.g. https://bitbucket.example.com")
    _ = bitbucket.add_argument("--bbs-project", help="Bitbucket project key (use ~username for personal repos)")
    _ = bitbucket.add_argument("--bbs-repo", "-r", help="Bitbucket repository slug")
    _ = bitbucket.add_argument("--bbs-token", "-k", help="Bitbucket personal access token")
    _add_target_arguments(bitbucket)
    _add_common_arguments(bitbucket)

    inspect = subparsers.add_parser("inspect", help="Show detailed results of one repository from a saved session")
    _ = inspect.add_argument("repository", help="Repository name (source or target)")
    _ = inspect.add_argument("--session", "-s", default="latest", help="Session to load: latest, an id or a path")
    _ = inspect.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return parser


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    return build_parser().parse_args(argv)


def load_settings(args: argparse.Namespace) -> Settings:
    """Environment settings overridden by whatever was given on the command line."""
    overrides = {field.name: getattr(args, field.name, None) for field in fields(Settings)}
    settings = Settings.from_env().with_overrides(**overrides)
    return settings.with_overrides(
        source_token=resolve_token(settings.source_token, getattr(args, "source_pass_token", None)),
        target_token=resolve_token(settings.target_token, getattr(args, "target_pass_token", None)),
    )


def _github_provider(
    token: str | None,
    hostname: str | None,
    app: tuple[str | None, str | None, str | None],
    side: str,
) -> GitHubProvider:
    app_id, private_key, installation_id = app
    # Complete GitHub App credentials take precedence over a token
    if not (app_id and private_key and installation_id):
        token = require(token, f"--{side}-token", f"{side}_token", f"{side} token")
    return GitHubProvider(
        token, hostname, name="GitHub", app_id=app_id, private_key=private_key, installation_id=installation_id
    )


def _source_provider(settings: Settings) -> GitHubProvider:
    app = (settings.source_app_id, settings.source_private_key, settings.source_installation_id)
    return _github_provider(settings.source_token, settings.source_hostname, app, "source")


def _target_provider(settings: Settings) -> GitHubProvider:
    app = (settings.target_app_id, settings.target_private_key, settings.target_installation_id)
    return _github_provider(settings.target_token, settings.target_hostname, app, "target")


def _target_identity(settings: Settings) -> RepositoryIdentity:
    return RepositoryIdentity(
        require(settings.target_organization, "--target-organization", "target_organization", "target organization"),
        require(settings.target_repo, "--target-repo", "target_repo", "target repo"),
    )


def _emit_report(validator: MigrationValidator, settings: Settings, console: Console, source_label: str) -> None:
    assert validator.source is not None and validator.target is not None  # set by every validation flow
    report.render_console(validator.source, validator.target, validator.results, console, source_label=source_label)

    if not settings.markdown_table and not settings.markdown_file:
        return
    markdown = report.render_markdown(validator.source, validator.target, validator.results, source_label=source_label)
    if settings.markdown_table:
        report.print_markdown(markdown, console)
    if settings.markdown_file:
        try:
            report.write_markdown(markdown, Path(settings.markdown_file))
        except OSError as e:
            logger.error(f"Failed to write markdown file {settings.markdown_file}: {e}")


def _strict_exit_code(validator: MigrationValidator, settings: Settings) -> int:
    if settings.strict_exit and has_failures(validator.results):
        return EXIT_STRICT_FAILURE
    return EXIT_OK


def run_validate(settings: Settings, console: Console) -> int:
    source_organization = require(
        settings.source_organization, "--source-organization", "source_organization", "source organization"
    )
    target_organization = require(
        settings.target_organization, "--target-organization", "target_organization", "target organization"
    )
    validator = MigrationValidator(_source_provider(settings), _target_provider(settings), settings)

    if settings.repo_list:
        return _run_batch(validator, source_organization, target_organization, Path(settings.repo_list), console)

    source_identity = RepositoryIdentity(
        source_organization, require(settings.source_repo, "--source-repo", "source_repo", "source repo")
    )
    target_identity = RepositoryIdentity(
        target_organization, require(settings.target_repo, "--target-repo", "target_repo", "target repo")
    )
    validator.validate_migration(source_identity, target_identity)
    _emit_report(validator, settings, console, "Source")

    if has_failures(validator.results):
        if settings.strict_exit:
            return EXIT_STRICT_FAILURE
        logger.error("Validation failed - some data is missing in target repository")
        return EXIT_ERROR
    return EXIT_OK


def _run_batch(
    validator: MigrationValidator, source_organization: str, target_organization: str, repo_list: Path, console: Console
) -> int:
    pairs = parse_repository_list(repo_list)
    logger.info(f"Found {len(pairs)} repository pairs to validate")

    batch = validator.validate_batch(source_organization, target_organization, pairs)
    report.render_batch_console(batch, console)

    if should_save_session(batch, interactive=is_interactive()):
        try:
            session_path = SessionStore().save(batch)
        except MigrationValidatorError as e:
            logger.warning(f"Failed to save session: {e}")
        else:
            console.print(f"💾 Session saved: {session_path}")
            if batch.has_problems:
                console.print("💡 To investigate specific repositories, use:")
                console.print("   gh-migration-validator inspect <repository-name>")

    if batch.summary.failed:
        logger.error(f"Batch validation completed with {batch.summary.failed} failures")
        return EXIT_ERROR
    return EXIT_OK


def run_export(args: argparse.Namespace, settings: Settings, console: Console) -> int:
    organization = require(
        settings.source_organization, "--source-organization", "source_organization", "source organization"
    )
    repo = require(settings.source_repo, "--source-repo", "source_repo", "source repo")
    provider = _source_provider(settings)
    validator = MigrationValidator(provider, None, settings)

    logger.info(f"Exporting {organization}/{repo}")
    snapshot = validator.retrieve_source(RepositoryIdentity(organization, repo))

    if args.download:
        download_dir = Path(args.download_path) if args.download_path else None
        archive_dir = download_and_extract_archive(provider, organization, repo, download_dir)
        snapshot.migration_archive = analyze_archive(archive_dir)
    elif args.archive_path:
        archive_dir = Path(args.archive_path)
        validate_archive_path(archive_dir)
        snapshot.migration_archive = analyze_archive(archive_dir)

    timestamp = datetime.now().astimezone()
    output = Path(args.output) if args.output else default_export_path(organization, repo, args.format, timestamp)
    write_export(ExportData(export_timestamp=timestamp, repository=snapshot), args.format, output)
    console.print(f"[green]Export completed successfully: {output}[/green]")
    return EXIT_OK


def run_validate_from_export(args: argparse.Namespace, settings: Settings, console: Console) -> int:
    export_data = load_export(Path(args.export_file))
    target_identity = _target_identity(settings)
    validator = MigrationValidator(None, _target_provider(settings), settings)

    logger.info(f"Using export of {export_data.repository.identity} taken at {export_data.export_timestamp}")
    validator.validate_from_snapshot(export_data.repository, target_identity)
    _emit_report(validator, settings, console, "Source")
    return _strict_exit_code(validator, settings)


def run_bitbucket(settings: Settings, console: Console) -> int:
    server_url = require(settings.bbs_server_url, "--bbs-server-url", "bbs_server_url", "BBS server URL")
    project = require(settings.bbs_project, "--bbs-project", "bbs_project", "BBS project")
    repo = require(settings.bbs_repo, "--bbs-repo", "bbs_repo", "BBS repo")
    token = require(settings.bbs_token, "--bbs-token", "bbs_token", "BBS token")
    target_identity = _target_identity(settings)

    validator = MigrationValidator(BitbucketProvider(server_url, token), _target_provider(settings), settings)
    source = validator.retrieve_source(RepositoryIdentity(project, repo), include_lfs=False)
    validator.validate_from_snapshot(source, target_identity, BITBUCKET_OPTIONS)
    _emit_report(validator, settings, console, BITBUCKET_OPTIONS.source_label)
    return _strict_exit_code(validator, settings)


def run_inspect(args: argparse.Namespace, console: Console) -> int:
    batch = SessionStore().load(args.session)
    repository = batch.find(args.repository)
    if repository is None:
        logger.error(f"Repository '{args.repository}' not found in session")
        available = ", ".join(repo.source.name for repo in batch.repositories)
        if available:
            console.print(f"Available repositories: {available}")
        return EXIT_ERROR

    report.render_repository_detail(batch, repository, console)
    return EXIT_OK


def run(args: argparse.Namespace, console: Console | None = None) -> int:
    """Execute a parsed command and return its exit code."""
    console = console or Console()
    try:
        if args.command == "inspect":
            return run_inspect(args, console)

        settings = load_settings(args)
        if args.command == "validate":
            return run_validate(settings, console)
        if args.command == "export":
            return run_export(args, settings, console)
        if args.command == "validate-from-export":
            return run_validate_from_export(args, settings, console)
        if args.command == "bitbucket":
            return run_bitbucket(settings, console)
    except MigrationValidatorError as e:
        logger.error(f"{args.command} failed: {e}")
        return EXIT_ERROR

    msg = f"Unknown command: {args.command}"
    raise ValueError(msg)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    verbose: bool = getattr(args, "verbose", False)
    setup_logging(verbose=verbose)

    sys.exit(run(args))
