# fscrawl/client/directory.py
"""
Queries the scan engine needs to compute deletions.

Documents and folder records carry `path.root`, the signature of the real
path of their parent directory, so "what is indexed under D" is a single
term query on `sign(D)`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from fscrawl.client.client import IndexingClient
from fscrawl.core.paths import path_key, sign
from fscrawl.logging.logger import get_logger
from fscrawl.logging.tags import CLIENT

logger = get_logger(__name__)

MAX_RESULTS = 10000


@runtime_checkable
class Directory(Protocol):
    """What the scan engine needs from the backend."""

    def file_names(self, index: str, dir_path: str) -> List[str]:
        ...

    def folder_paths(self, index: str, dir_path: str) -> List[str]:
        ...

    def store_folder(self, index: str, id: str, folder: Dict[str, Any]) -> None:
        ...

    def delete(self, index: str, id: str) -> None:
        ...


def _extract_path(data: Dict[str, Any], dotted: str) -> Any:
    """Resolve 'a.b.c' in a nested dict; None when any step is missing."""
    current: Any = data
    for part in dotted.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def _hit_value(hit: Dict[str, Any], field: str) -> Any:
    stored = (hit.get("fields") or {}).get(field)
    if isinstance(stored, list) and stored:
        return stored[0]
    if stored is not None:
        return stored
    return _extract_path(hit.get("_source") or {}, field)


class DirectoryService:
    """
    Directory queries backed by an IndexingClient.

    `documents_index` pins file lookups to the index the documents are
    actually written to, when an output overrides the job's index.
    """

    def __init__(self, client: IndexingClient, documents_index: Optional[str] = None):
        self.client = client
        self.documents_index = documents_index

    def _children(self, index: str, dir_path: str, field: str) -> List[str]:
        # Send queued writes before reading the directory back
        self.client.bulk.drain()
        request = {
            "size": MAX_RESULTS,
            "query": {"term": {"path.root": sign(path_key(dir_path))}},
            "_source": [field],
            "stored_fields": [field],
        }
        response = self.client.search(index, request)
        hits = _extract_path(response, "hits.hits") or []
        if len(hits) >= MAX_RESULTS:
            logger.warning(
                f"{CLIENT} {index} returned {len(hits)} entries under {dir_path}, the query limit; "
                "entries beyond it are not checked for deletion"
            )

        values: List[str] = []
        for hit in hits:
            value = _hit_value(hit, field)
            if isinstance(value, str):
                values.append(value)
        logger.debug(f"{CLIENT} {len(values)} indexed entr(ies) under {dir_path} in {index}")
        return values

    def file_names(self, index: str, dir_path: str) -> List[str]:
        return self._children(self.documents_index or index, dir_path, "file.filename")

    def folder_paths(self, index: str, dir_path: str) -> List[str]:
        return self._children(index, dir_path, "path.real")

    def store_folder(self, index: str, id: str, folder: Dict[str, Any]) -> None:
        self.client.index(index, id, folder)

    def delete(self, index: str, id: str) -> None:
        self.client.delete(index, id)


__all__ = ["Directory", "DirectoryService", "MAX_RESULTS"]
