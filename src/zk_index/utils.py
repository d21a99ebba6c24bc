"""Small helpers shared by the storage and query layers."""

import posixpath
import re
from typing import Iterable, List, TypeVar

T = TypeVar("T")

# Replaces "/" in sortable paths. Sorts below any printable character so a
# directory's entries stay contiguous; \x00 is avoided because SQLite treats
# it as a string terminator.
PATH_SORT_SENTINEL = "\x01"

# Delimits link relations and concatenated lists stored in a single column.
LIST_DELIMITER = "\x01"


def normalize_path(path: str) -> str:
    """Normalize a notebook-relative path.

    Backslashes become forward slashes, redundant separators and ``.``
    segments are collapsed.

    Raises:
        ValueError: If the path is empty, absolute or escapes the notebook.
    """
    if path is None or not path.strip():
        raise ValueError("Path cannot be empty")
    candidate = path.strip().replace("\\", "/")
    if candidate.startswith("/"):
        raise ValueError(f"Path must be relative to the notebook: {path}")
    candidate = posixpath.normpath(candidate)
    if candidate == "." or candidate == ".." or candidate.startswith("../"):
        raise ValueError(f"Path escapes the notebook: {path}")
    return candidate


def sortable_path(path: str) -> str:
    """Return the key used to order paths so directories sort contiguously."""
    return path.replace("/", PATH_SORT_SENTINEL)


def path_prefixes(path: str) -> List[str]:
    """All non-empty prefixes of ``path``, shortest first."""
    return [path[:i] for i in range(1, len(path) + 1)]


def escape_like_pattern(value: str, escape_char: str = "\\") -> str:
    """Escape LIKE wildcards so ``value`` matches literally."""
    return (
        value.replace(escape_char, escape_char * 2)
        .replace("%", f"{escape_char}%")
        .replace("_", f"{escape_char}_")
    )


def glob_to_path_regex(glob: str) -> str:
    """Translate a path glob into an anchored regular expression.

    The expression matches the file named by the glob (or any file whose
    name extends it in the same directory, e.g. ``note`` matches
    ``note.md``) as well as anything below it when it names a directory.
    ``*`` and ``?`` never cross a ``/``; ``**`` does.
    """
    glob = glob.rstrip("/")
    parts = []
    i = 0
    while i < len(glob):
        char = glob[i]
        if glob.startswith("**", i):
            parts.append(".*")
            i += 2
            continue
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(char))
        i += 1
    pattern = "".join(parts)
    return f"^(?:{pattern}[^/]*|{pattern}/.+)$"


def join_list(items: Iterable[str]) -> str:
    """Join items so each one is wrapped by delimiters, for exact matching."""
    items = list(items)
    if not items:
        return ""
    return LIST_DELIMITER + LIST_DELIMITER.join(items) + LIST_DELIMITER


def split_list(value: str) -> List[str]:
    """Inverse of :func:`join_list`, tolerant of missing outer delimiters."""
    if not value:
        return []
    return [item for item in value.split(LIST_DELIMITER) if item]


def remove_duplicates(items: Iterable[T]) -> List[T]:
    """Drop repeated items, keeping the first occurrence of each."""
    return list(dict.fromkeys(items))
