# fscrawl/core/paths.py
"""
Path helpers shared by the scan engine and the deletion diff.

Identifiers
-----------
Documents are identified by `sign(parent_virtual_path + "/" + filename)`.
Separators are normalised to "/" first, so "a\\b\\c" and "a/b/c" produce
the same id on every platform and across runs.

Include / exclude
-----------------
Patterns are glob-like and case-insensitive:
    *   any run of characters (including "/")
    ?   zero or one character
They are matched against the whole virtual path ("/docs/report.pdf").
Excludes always win. Directories are traversed unless explicitly excluded,
so "*.pdf" as an include still descends into sub folders.
"""

from __future__ import annotations

import hashlib
import re
from functools import lru_cache
from typing import Iterable, Optional, Sequence

IGNORE_MARKER = ".fscrawlerignore"


def sign(value: str) -> str:
    """Stable hex digest of a string."""
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def normalize_separators(path: str) -> str:
    return path.replace("\\", "/")


def generate_id(parent_path: str, filename: str, *, filename_as_id: bool = False) -> str:
    """
    Build a document identifier from its parent (virtual) path and name.

    With `filename_as_id` the raw filename is returned unchanged.
    """
    if filename_as_id:
        return filename

    parent = normalize_separators(parent_path)
    name = filename.replace("\\", "").replace("/", "")
    separator = "" if parent.endswith("/") else "/"
    return sign(f"{parent}{separator}{name}")


def path_key(path: str) -> str:
    """Normalised directory path: forward slashes, no trailing slash except for "/"."""
    return normalize_separators(path).rstrip("/") or "/"


def folder_id(path: str) -> str:
    """Identifier of a folder record, derived from its normalised path."""
    return sign(path_key(path))


def compute_virtual_path(root: str, real_path: str) -> str:
    """
    Express `real_path` relative to the scan root, always starting with "/".

    The root itself maps to "/". A path outside the root is returned as-is
    with normalised separators.
    """
    root_n = normalize_separators(root).rstrip("/") or "/"
    real_n = normalize_separators(real_path)

    if root_n == "/":
        return real_n if real_n.startswith("/") else "/" + real_n
    if real_n == root_n or real_n == root_n + "/":
        return "/"
    if real_n.startswith(root_n + "/"):
        return real_n[len(root_n):]
    return real_n


@lru_cache(maxsize=512)
def _glob_to_regex(pattern: str) -> re.Pattern[str]:
    parts = []
    for char in pattern.lower():
        if char == "*":
            parts.append(".*?")
        elif char == "?":
            parts.append(".?")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def matches_pattern(path: str, pattern: str) -> bool:
    return _glob_to_regex(pattern).fullmatch(path.lower()) is not None


def is_excluded(path: str, excludes: Optional[Iterable[str]]) -> bool:
    if not excludes:
        return False
    return any(matches_pattern(path, pattern) for pattern in excludes)


def is_included(path: str, includes: Optional[Iterable[str]]) -> bool:
    if not includes:
        return True
    return any(matches_pattern(path, pattern) for pattern in includes)


def is_indexable(
    is_directory: bool,
    path: str,
    includes: Optional[Sequence[str]],
    excludes: Optional[Sequence[str]],
) -> bool:
    """Decide whether an entry (by virtual path) takes part in the crawl."""
    if is_excluded(path, excludes):
        return False
    return is_directory or is_included(path, includes)


def is_size_under_limit(size: int, limit: Optional[int]) -> bool:
    return limit is None or limit < 0 or size <= limit


def matches_content_filters(content: Optional[str], filters: Optional[Sequence[str]]) -> bool:
    """All regexes must match somewhere in the content. Empty content always passes."""
    if not content or not filters:
        return True
    return all(re.search(f, content, re.MULTILINE) for f in filters)


def is_ignore_marker(name: str) -> bool:
    return name.lower() == IGNORE_MARKER


__all__ = [
    "IGNORE_MARKER",
    "sign",
    "normalize_separators",
    "generate_id",
    "path_key",
    "folder_id",
    "compute_virtual_path",
    "matches_pattern",
    "is_excluded",
    "is_included",
    "is_indexable",
    "is_size_under_limit",
    "matches_content_filters",
    "is_ignore_marker",
]
