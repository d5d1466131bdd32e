# fscrawl/sources/base.py
"""
File source capability.

The scan engine talks to a tree of documents only through `FileSource`.
Local disks, SSH or FTP servers are different implementations of the same
five operations, injected into one engine:

    open() / close()        connect and release resources
    exists(path)            is the path reachable
    stat(path) -> Entry     describe one node
    list(path) -> [Entry]   children of a directory
    read_stream(entry)      binary stream of a file's content
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import BinaryIO, List, Optional, Protocol, runtime_checkable


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"
    OTHER = "other"


@dataclass(frozen=True)
class Entry:
    """One node of the crawled tree. Timestamps are timezone-aware UTC."""

    name: str
    path: str
    kind: EntryKind
    size: int = 0
    created: Optional[datetime] = None
    modified: Optional[datetime] = None
    accessed: Optional[datetime] = None
    owner: Optional[str] = None
    group: Optional[str] = None
    permissions: Optional[int] = None

    @property
    def is_file(self) -> bool:
        return self.kind is EntryKind.FILE

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    def changed_since(self, watermark: Optional[datetime]) -> bool:
        """True when modified or created after the watermark (None = beginning of time)."""
        if watermark is None:
            return True
        if self.modified is not None and self.modified > watermark:
            return True
        if self.created is not None and self.created > watermark:
            return True
        return self.modified is None and self.created is None


@runtime_checkable
class FileSource(Protocol):
    """Protocol for tree sources."""

    def open(self) -> None:
        ...

    def close(self) -> None:
        ...

    def exists(self, path: str) -> bool:
        ...

    def stat(self, path: str) -> Entry:
        ...

    def list(self, path: str) -> List[Entry]:
        ...

    def read_stream(self, entry: Entry) -> BinaryIO:
        ...


__all__ = ["Entry", "EntryKind", "FileSource"]
