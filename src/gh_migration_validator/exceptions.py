"""
Custom exception classes for the migration validator.
"""

from __future__ import annotations


class MigrationValidatorError(Exception):
    """Base exception for migration validation errors."""


class ConfigurationError(MigrationValidatorError):
    """Raised when required configuration is missing or malformed."""


class RepositoryAccessError(MigrationValidatorError):
    """Raised when a repository cannot be reached or authenticated against."""


class ProviderError(MigrationValidatorError):
    """Raised by a metric provider when a single metric query fails."""


class RetrievalError(MigrationValidatorError):
    """Raised when every metric query for one repository failed."""

    def __init__(self, message: str, messages: list[str] | None = None) -> None:
        super().__init__(message)
        self.messages: list[str] = list(messages or [])


class ArchiveError(MigrationValidatorError):
    """Raised when a migration archive cannot be located, extracted or analyzed."""


class ExportError(MigrationValidatorError):
    """Raised when export data cannot be written or loaded."""


class SessionError(MigrationValidatorError):
    """Raised when a saved validation session cannot be written or loaded."""


class ValidationError(MigrationValidatorError):
    """Raised when a validation run cannot start with the given inputs."""
