"""
Validation helpers for titles that become file names and for user text that
ends up inside SQL LIKE patterns.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

MAX_FILENAME_LENGTH = 255
MAX_SEARCH_LENGTH = 500
LIKE_ESCAPE_CHAR = "\\"

INVALID_FILENAME_CHARS = re.compile(r'[/\\:*?"<>|\x00-\x1f]')
EDGE_DOTS_AND_SPACES = re.compile(r"^[.\s]+|[.\s]+$")
RESERVED_NAMES = frozenset(
    ["CON", "PRN", "AUX", "NUL"]
    + [f"COM{i}" for i in range(1, 10)]
    + [f"LPT{i}" for i in range(1, 10)]
)


class UnsafeTitleError(ValueError):
    """Raised when a title or path would escape its target directory."""


def validate_title(title: str | None) -> None:
    if title is None or not title.strip():
        raise UnsafeTitleError("Book title cannot be empty")
    if len(title) > MAX_FILENAME_LENGTH:
        raise UnsafeTitleError(
            f"Book title too long: {len(title)} characters (max: {MAX_FILENAME_LENGTH})"
        )
    if ".." in title or "/" in title or "\\" in title:
        raise UnsafeTitleError(
            "Book title contains path separators or traversal sequences"
        )


def sanitize_filename(name: str | None) -> str:
    if name is None or not name.strip():
        raise UnsafeTitleError("Filename cannot be empty")

    sanitized = name.strip().replace("..", "")
    sanitized = INVALID_FILENAME_CHARS.sub("_", sanitized)
    sanitized = EDGE_DOTS_AND_SPACES.sub("", sanitized)
    if not sanitized:
        raise UnsafeTitleError(f"Filename is empty after sanitization: {name!r}")

    if len(sanitized) > MAX_FILENAME_LENGTH:
        logger.warning(
            "Filename too long, truncating from %d to %d characters",
            len(sanitized),
            MAX_FILENAME_LENGTH,
        )
        sanitized = sanitized[:MAX_FILENAME_LENGTH]

    stem = sanitized.split(".", 1)[0].upper()
    if stem in RESERVED_NAMES:
        sanitized = "_" + sanitized

    if sanitized != name:
        logger.debug("Filename sanitized: %r -> %r", name, sanitized)
    return sanitized


def is_within_directory(base_dir: Path, candidate: Path) -> bool:
    base = base_dir.resolve()
    target = candidate.resolve()
    inside = target == base or base in target.parents
    if not inside:
        logger.warning(
            "Path %s is outside the allowed directory %s", target, base
        )
    return inside


def safe_book_path(base_dir: Path, title: str, suffix: str) -> Path:
    """Validate ``title`` and return the file it maps to inside ``base_dir``."""
    validate_title(title)
    filename = sanitize_filename(title) + suffix
    # File systems limit names in bytes, not characters.
    if len(filename.encode("utf-8")) > MAX_FILENAME_LENGTH:
        raise UnsafeTitleError(
            f"File name for {title!r} exceeds {MAX_FILENAME_LENGTH} bytes"
        )
    path = base_dir / filename
    if not is_within_directory(base_dir, path):
        raise UnsafeTitleError(
            f"Title {title!r} would create a file outside {base_dir}"
        )
    return path


def escape_like(text: str) -> str:
    escaped = text.replace(LIKE_ESCAPE_CHAR, LIKE_ESCAPE_CHAR * 2)
    escaped = escaped.replace("%", LIKE_ESCAPE_CHAR + "%")
    return escaped.replace("_", LIKE_ESCAPE_CHAR + "_")


def contains_pattern(text: str | None, max_length: int = MAX_SEARCH_LENGTH) -> str:
    """Build an escaped ``%text%`` pattern, rejecting oversized input."""
    if text is None:
        raise ValueError("Search text cannot be empty")
    if len(text) > max_length:
        raise ValueError(
            f"Search text too long: {len(text)} characters (max: {max_length})"
        )
    return f"%{escape_like(text)}%"
