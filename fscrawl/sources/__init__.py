# fscrawl/sources/__init__.py
from fscrawl.sources.base import Entry, EntryKind, FileSource

__all__ = ["Entry", "EntryKind", "FileSource"]
