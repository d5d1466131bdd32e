# fscrawl/sources/local.py
"""Local filesystem source."""

from __future__ import annotations

import os
import stat as stat_mod
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, List, Optional

from pydantic import BaseModel, ConfigDict

from fscrawl.logging.logger import get_logger
from fscrawl.logging.tags import SCAN
from fscrawl.registry import SOURCES
from fscrawl.sources.base import Entry, EntryKind

logger = get_logger(__name__)


class LocalSourceSettings(BaseModel):
    # Symlinks are reported as OTHER unless followed
    follow_symlinks: bool = False

    model_config = ConfigDict(extra="forbid")


def _ts(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _owner(path: Path) -> Optional[str]:
    try:
        return path.owner()
    except (KeyError, NotImplementedError, OSError):
        return None


def _group(path: Path) -> Optional[str]:
    try:
        return path.group()
    except (KeyError, NotImplementedError, OSError):
        return None


@SOURCES.register
class LocalFileSource:
    """Walks a directory tree on the local disk."""

    plugin_name = "local"
    settings_model = LocalSourceSettings

    def __init__(self, settings: Optional[LocalSourceSettings] = None):
        self.settings = settings or LocalSourceSettings()

    def open(self) -> None:
        pass

    def close(self) -> None:
        pass

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def stat(self, path: str) -> Entry:
        p = Path(path)
        try:
            st = p.stat() if self.settings.follow_symlinks else p.lstat()
        except OSError:
            # Broken symlink or vanished entry
            return Entry(name=p.name, path=str(p), kind=EntryKind.OTHER)

        if stat_mod.S_ISREG(st.st_mode):
            kind = EntryKind.FILE
        elif stat_mod.S_ISDIR(st.st_mode):
            kind = EntryKind.DIRECTORY
        else:
            kind = EntryKind.OTHER

        created = getattr(st, "st_birthtime", None)
        if created is None:
            created = st.st_ctime

        return Entry(
            name=p.name,
            path=str(p),
            kind=kind,
            size=st.st_size if kind is EntryKind.FILE else 0,
            created=_ts(created),
            modified=_ts(st.st_mtime),
            accessed=_ts(st.st_atime),
            owner=_owner(p),
            group=_group(p),
            permissions=stat_mod.S_IMODE(st.st_mode),
        )

    def list(self, path: str) -> List[Entry]:
        with os.scandir(path) as it:
            names = sorted(e.name for e in it)
        logger.debug(f"{SCAN} Listed {len(names)} entries in {path}")
        return [self.stat(os.path.join(path, name)) for name in names]

    def read_stream(self, entry: Entry) -> BinaryIO:
        return open(entry.path, "rb")


__all__ = ["LocalFileSource", "LocalSourceSettings"]
