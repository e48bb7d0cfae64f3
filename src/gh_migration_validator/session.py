"""
Persistence of batch validation results for later inspection.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Final

from .exceptions import SessionError
from .validator import BatchResult

if TYPE_CHECKING:
    from collections.abc import Callable

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_SESSION_DIR: Final[str] = ".sessions"
LATEST: Final[str] = "latest"
_SESSION_PREFIX: Final[str] = "session_"
_ID_FORMAT: Final[str] = "%Y-%m-%d_%H-%M-%S"


class SessionStore:
    """Sessions are JSON files named ``session_<YYYY-mm-dd_HH-MM-SS>.json``."""

    def __init__(self, directory: Path | str = DEFAULT_SESSION_DIR, clock: Callable[[], datetime] = datetime.now) -> None:
        self.directory = Path(directory)
        self._clock = clock

    def path_for(self, session_id: str) -> Path:
        return self.directory / f"{_SESSION_PREFIX}{session_id}.json"

    def save(self, batch: BatchResult) -> Path:
        path = self.path_for(self._clock().strftime(_ID_FORMAT))
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(batch.to_dict(), indent=2), encoding="utf-8")
        except OSError as e:
            msg = f"failed to save session to {path}: {e}"
            raise SessionError(msg) from e
        logger.info(f"Session saved: {path}")
        return path

    def list_sessions(self) -> list[Path]:
        """Saved sessions, oldest first."""
        if not self.directory.is_dir():
            return []
        # The id format sorts chronologically
        return sorted(self.directory.glob(f"{_SESSION_PREFIX}*.json"))

    def resolve(self, ref: str = LATEST) -> Path:
        """Map ``latest``, a session id or a file path to an existing session file."""
        if ref == LATEST:
            sessions = self.list_sessions()
            if not sessions:
                msg = f"no saved sessions found in {self.directory}"
                raise SessionError(msg)
            return sessions[-1]

        candidate = Path(ref)
        if candidate.is_file():
            return candidate

        by_id = self.path_for(ref)
        if by_id.is_file():
            return by_id

        msg = f"session not found: {ref}"
        raise SessionError(msg)

    def load(self, ref: str = LATEST) -> BatchResult:
        path = self.resolve(ref)
        try:
            return BatchResult.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except OSError as e:
            msg = f"failed to read session {path}: {e}"
            raise SessionError(msg) from e
        except (ValueError, KeyError, TypeError) as e:
            msg = f"invalid session file {path}: {e}"
            raise SessionError(msg) from e


def should_save_session(batch: BatchResult, *, interactive: bool) -> bool:
    """Sessions are kept when something needs a closer look or nobody is watching the terminal."""
    return batch.has_problems or not interactive
