"""
Git LFS helpers: ``.gitattributes`` parsing, path matching and pointer parsing.
"""

from __future__ import annotations

import fnmatch
import posixpath
import re
from dataclasses import dataclass
from typing import Final

GITATTRIBUTES_PATH: Final[str] = ".gitattributes"

# Pointer files are tiny; anything larger cannot be one
MAX_POINTER_SIZE: Final[int] = 200

_POINTER_VERSION_PREFIX: Final[str] = "version https://git-lfs.github.com/spec/"
_OID_PREFIX: Final[str] = "oid sha256:"
_SIZE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^size (\d+)")


@dataclass(frozen=True)
class LfsPointer:
    oid: str
    size: int


def parse_lfs_patterns(content: str) -> list[str]:
    """Return the path patterns of all ``filter=lfs`` lines in a ``.gitattributes`` file."""
    patterns: list[str] = []
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "filter=lfs" in line:
            patterns.append(line.split()[0])
    return patterns


def matches_lfs_pattern(path: str, patterns: list[str]) -> bool:
    """Check whether a repository path is tracked by any of the given patterns.

    Three pattern shapes are supported:
    - ``*.ext``: suffix match anywhere in the tree
    - other globs: matched against the full path and against the file name
    - plain names: exact path or directory prefix
    """
    for pattern in patterns:
        if pattern.startswith("*"):
            if path.endswith(pattern[1:]):
                return True
        elif "*" in pattern:
            if fnmatch.fnmatchcase(path, pattern) or fnmatch.fnmatchcase(posixpath.basename(path), pattern):
                return True
        elif path == pattern or path.startswith(pattern + "/"):
            return True
    return False


def parse_lfs_pointer(content: str) -> LfsPointer | None:
    """Parse an LFS pointer file, returning None when the content is not one.

    Example pointer:
        version https://git-lfs.github.com/spec/v1
        oid sha256:4d7a214614ab2935c943f9e0ff69d22eadbb8f32b1258daaa5e2ca24d17e2393
        size 12345
    """
    lines = content.split("\n")
    if len(lines) < 3 or not lines[0].startswith(_POINTER_VERSION_PREFIX):  # noqa: PLR2004
        return None

    oid = ""
    size: int | None = None
    for raw_line in lines:
        line = raw_line.strip()
        if line.startswith(_OID_PREFIX):
            oid = line.removeprefix(_OID_PREFIX)
        elif match := _SIZE_PATTERN.match(line):
            size = int(match.group(1))

    if not oid or size is None:
        return None
    return LfsPointer(oid=oid, size=size)
