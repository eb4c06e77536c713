"""Utility functions for git-repo-sync."""

import posixpath
from typing import Optional

# =============================================================================
# Constants for file operations
# =============================================================================

# Chunk size for streaming file contents between endpoints (1 MB)
DEFAULT_CHUNK_SIZE: int = 1024 * 1024

# Name of the per-directory exclusion file
IGNORE_FILE_NAME: str = ".gitignore"

# Directory that is never synchronized
GIT_DIR_NAME: str = ".git"


# =============================================================================
# Relative path helpers
# =============================================================================


def normalize_relative_path(path: str) -> str:
    """Normalize a relative path to the canonical snapshot form.

    Backslashes become forward slashes, duplicate and ``.`` segments are
    dropped, and leading/trailing slashes are removed.

    Args:
        path: Relative path in any separator style

    Returns:
        Slash-normalized path ("" for the root)

    Raises:
        ValueError: If the path escapes the root with ``..``

    Examples:
        >>> normalize_relative_path("docs\\\\a.txt")
        'docs/a.txt'
        >>> normalize_relative_path("/docs//sub/")
        'docs/sub'
    """
    parts = []
    for part in path.replace("\\", "/").split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            raise ValueError(f"Path escapes the sync root: {path}")
        parts.append(part)
    return "/".join(parts)


def join_relative(directory: str, name: str) -> str:
    """Join a relative directory and a child name."""
    return f"{directory}/{name}" if directory else name


def parent_of(path: str) -> str:
    """Return the parent of a relative path ("" for top-level entries)."""
    return posixpath.dirname(path)


def ancestors_of(path: str) -> list[str]:
    """Return all proper ancestor directories of a relative path.

    The root ("") is not included.

    Examples:
        >>> ancestors_of("a/b/c.txt")
        ['a', 'a/b']
    """
    parts = path.split("/")[:-1]
    return ["/".join(parts[: i + 1]) for i in range(len(parts))]


def is_descendant(path: str, directory: str) -> bool:
    """Check whether ``path`` lies strictly beneath ``directory``."""
    if not directory:
        return bool(path)
    return path.startswith(directory + "/")


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: Optional[int]) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Human-readable size string (e.g., "1.5 MB")
    """
    if size_bytes is None:
        return "-"
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"
