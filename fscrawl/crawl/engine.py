# fscrawl/crawl/engine.py
"""
Incremental scan/diff engine.

One call to `run_once(job, state)` performs a full traversal of the job's
tree:

    1. read the watermark W from the previous RunState (None = beginning of
       time); on the very first run the root folder itself is recorded
    2. visit every directory D:
         - a ".fscrawlerignore" child hides D's whole subtree
         - excluded children are invisible to indexing and deletion
         - files modified or created after W, below the size ceiling, are
           turned into Documents and routed through the PipelineRouter
         - sub-directories are always visited and their folder record
           refreshed when folder indexing is on
         - a directory reached again through a symlink is walked only once
    3. with remove_deleted, entries the backend knows under D but that were
       not seen in this run are deleted (folders recursively)
    4. on success the new RunState is persisted with
       watermark = run start - SAFETY_MARGIN

Every recursion step and every index/delete call checks the closed flag.
A run interrupted by close() does not persist any state.
"""

from __future__ import annotations

import base64
import hashlib
import io
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Set, Tuple

import yaml

from fscrawl.client.directory import Directory
from fscrawl.config.schema import JobSettings
from fscrawl.core.paths import (
    compute_virtual_path,
    folder_id,
    generate_id,
    is_ignore_marker,
    is_indexable,
    is_size_under_limit,
    matches_content_filters,
    normalize_separators,
    path_key,
    sign,
)
from fscrawl.exceptions import ScanError
from fscrawl.logging.logger import get_logger
from fscrawl.logging.tags import SCAN
from fscrawl.pipeline.context import Document, RoutingContext, deep_merge
from fscrawl.pipeline.router import PipelineRouter
from fscrawl.sources.base import Entry, EntryKind, FileSource
from fscrawl.state.store import RunState, RunStateStore

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parent(path: str) -> str:
    head, _, _ = path_key(path).rpartition("/")
    return head or "/"


def _join_virtual(parent: str, name: str) -> str:
    return f"{parent}{name}" if parent.endswith("/") else f"{parent}/{name}"


def _resolved(path: str) -> str:
    return path_key(os.path.realpath(path))


def _extension(name: str) -> str:
    dot = name.rfind(".")
    return name[dot + 1 :].lower() if dot > 0 else ""


@dataclass
class ScanStatistic:
    """Outcome of one run."""

    job: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    indexed: int = 0
    deleted: int = 0
    skipped: int = 0
    folders: int = 0
    errors: int = 0
    aborted: bool = False

    @property
    def duration(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def __str__(self) -> str:
        status = "aborted" if self.aborted else "done"
        return (
            f"Run {status} for '{self.job}' in {self.duration:.1f}s: "
            f"{self.indexed} indexed, {self.deleted} deleted, "
            f"{self.skipped} skipped, {self.folders} folders, {self.errors} errors"
        )


@dataclass
class _Run:
    job: JobSettings
    watermark: Optional[datetime]
    stats: ScanStatistic
    static_meta: Dict[str, Any] = field(default_factory=dict)
    # Resolved paths of directories already walked in this run
    visited: Set[str] = field(default_factory=set)


class ScanEngine:
    """
    Scan/diff engine for one FileSource.

    `directory` answers "what is indexed under D" for deletions and stores
    folder records; without it, deletions and folder records are skipped.
    """

    def __init__(
        self,
        source: FileSource,
        router: PipelineRouter,
        state_store: RunStateStore,
        directory: Optional[Directory] = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.source = source
        self.router = router
        self.state_store = state_store
        self.directory = directory
        self.clock = clock
        self._closed = threading.Event()
        self.last_statistic: Optional[ScanStatistic] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run_once(
        self, job: JobSettings, state: Optional[RunState]
    ) -> Tuple[Optional[RunState], Optional[BaseException]]:
        """
        Crawl the whole tree once.

        Returns (new_state, None) on success, (None, error) on failure and
        (None, None) when the run was interrupted by close().
        """
        started = self.clock()
        stats = ScanStatistic(job=job.name, started_at=started)
        self.last_statistic = stats
        watermark = state.lastrun if state is not None else None
        run = _Run(job=job, watermark=watermark, stats=stats)

        logger.info(f"{SCAN} Starting run for '{job.name}' on {job.url} (watermark={_iso(watermark)})")

        try:
            self.source.open()
            try:
                if not self.source.exists(job.url):
                    raise ScanError(job.url, "root directory does not exist")
                run.static_meta = self._load_static_meta(job)
                self._walk(run, job.url, is_root=True, first_run=state is None)
            finally:
                self.source.close()
        except Exception as exc:
            stats.errors += 1
            stats.finished_at = self.clock()
            logger.error(f"{SCAN} Run for '{job.name}' failed: {exc}")
            logger.debug(f"{SCAN} Run failure", exc_info=True)
            return None, exc

        stats.finished_at = self.clock()
        if self.closed:
            stats.aborted = True
            logger.info(f"{SCAN} {stats}")
            return None, None

        new_state = self.state_store.update(
            job.name,
            started_at=started,
            indexed=stats.indexed,
            deleted=stats.deleted,
            next_check=stats.finished_at + timedelta(seconds=job.update_rate),
            previous=state,
        )
        logger.info(f"{SCAN} {stats}")
        return new_state, None

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _walk(self, run: _Run, dir_path: str, *, is_root: bool = False, first_run: bool = False) -> None:
        if self.closed:
            return
        job = run.job
        if is_root:
            run.visited.add(_resolved(dir_path))

        children = self.source.list(dir_path)
        if any(is_ignore_marker(child.name) for child in children):
            logger.debug(f"{SCAN} Ignore marker found, skipping {dir_path}")
            return

        if job.index_folders and (not is_root or first_run):
            self._index_folder(run, dir_path)

        folder_meta = self._load_folder_meta(run, children)
        extra = deep_merge(run.static_meta, folder_meta)

        seen_files: Set[str] = set()
        seen_folders: Set[str] = set()

        for child in children:
            if self.closed:
                return
            if job.meta_filename and child.is_file and child.name == job.meta_filename:
                continue
            if child.kind is EntryKind.OTHER:
                logger.debug(f"{SCAN} Skipping {child.path}: neither file nor directory")
                continue

            virtual = compute_virtual_path(job.url, child.path)
            if not is_indexable(child.is_directory, virtual, job.includes, job.excludes):
                logger.debug(f"{SCAN} Ignoring {virtual}: excluded")
                continue

            try:
                if child.is_file:
                    seen_files.add(child.name)
                    self._visit_file(run, dir_path, child, virtual, extra)
                else:
                    seen_folders.add(path_key(child.path))
                    resolved = _resolved(child.path)
                    if resolved in run.visited:
                        logger.debug(f"{SCAN} Skipping {child.path}: already visited as {resolved}")
                        continue
                    run.visited.add(resolved)
                    self._walk(run, child.path)
            except Exception as exc:
                if not job.continue_on_error:
                    raise
                run.stats.errors += 1
                logger.warning(f"{SCAN} Error on {child.path}, continuing: {exc}")
                logger.debug(f"{SCAN} Entry failure", exc_info=True)

        if job.remove_deleted:
            self._remove_deleted(run, dir_path, seen_files, seen_folders)

    def _visit_file(
        self, run: _Run, dir_path: str, entry: Entry, virtual: str, extra: Dict[str, Any]
    ) -> None:
        job = run.job
        if not entry.changed_since(run.watermark):
            return
        if not is_size_under_limit(entry.size, job.ignore_above):
            run.stats.skipped += 1
            logger.debug(f"{SCAN} Skipping {virtual}: {entry.size} bytes above {job.ignore_above}")
            return
        if self.closed:
            return

        parent_virtual = compute_virtual_path(job.url, dir_path)
        doc = self._build_document(run, dir_path, parent_virtual, entry, virtual, extra)
        context = RoutingContext(
            filename=entry.name,
            path=virtual,
            size=entry.size,
            source_id=job.name,
            target_index=job.documents_index,
            tags=set(job.tags),
            metadata=dict(extra),
        )

        stream = None
        if job.index_content or job.store_source or job.checksum:
            stream = self.source.read_stream(entry)
        try:
            if stream is not None and (job.store_source or job.checksum):
                data = stream.read()
                stream.close()
                if job.checksum:
                    doc.file["checksum"] = hashlib.new(job.checksum, data).hexdigest()
                if job.store_source:
                    doc.attachment = base64.b64encode(data).decode("ascii")
                stream = io.BytesIO(data)

            result = self.router.process(
                stream if job.index_content else None,
                doc,
                context,
                gate=lambda d: matches_content_filters(d.content, job.content_filters),
            )
        finally:
            if stream is not None:
                stream.close()

        if result.dispatched:
            run.stats.indexed += 1
            logger.debug(f"{SCAN} Indexed {virtual} as {doc.id}")
        else:
            run.stats.skipped += 1

    def _build_document(
        self,
        run: _Run,
        dir_path: str,
        parent_virtual: str,
        entry: Entry,
        virtual: str,
        extra: Dict[str, Any],
    ) -> Document:
        job = run.job
        doc = Document(id=generate_id(parent_virtual, entry.name, filename_as_id=job.filename_as_id))
        doc.file = {
            "filename": entry.name,
            "extension": _extension(entry.name),
            "indexing_date": _iso(self.clock()),
            "last_modified": _iso(entry.modified),
            "created": _iso(entry.created),
            "last_accessed": _iso(entry.accessed),
            "url": f"file://{normalize_separators(entry.path)}",
        }
        if job.add_filesize:
            doc.file["filesize"] = entry.size
        doc.path = {
            "root": sign(path_key(dir_path)),
            "virtual": virtual,
            "real": entry.path,
        }
        if job.attributes_support:
            doc.attributes = {
                "owner": entry.owner,
                "group": entry.group,
                "permissions": entry.permissions,
            }
        doc.extra = dict(extra)
        return doc

    def _index_folder(self, run: _Run, path: str) -> None:
        if self.closed or self.directory is None:
            return
        job = run.job
        folder = {
            "name": path_key(path).rpartition("/")[2] or "/",
            "path": {
                "root": sign(_parent(path)),
                "virtual": compute_virtual_path(job.url, path),
                "real": path,
            },
            "indexing_date": _iso(self.clock()),
        }
        self.directory.store_folder(job.folders_index, folder_id(path), folder)
        run.stats.folders += 1

    # ------------------------------------------------------------------
    # Metadata files
    # ------------------------------------------------------------------

    def _load_static_meta(self, job: JobSettings) -> Dict[str, Any]:
        if not job.static_meta_file:
            return {}
        try:
            with open(job.static_meta_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ScanError(job.static_meta_file, f"cannot read static metadata: {exc}") from exc
        if not isinstance(data, dict):
            raise ScanError(job.static_meta_file, "static metadata must be a mapping")
        return data

    def _load_folder_meta(self, run: _Run, children: list[Entry]) -> Dict[str, Any]:
        name = run.job.meta_filename
        if not name:
            return {}
        for child in children:
            if child.is_file and child.name == name:
                try:
                    with self.source.read_stream(child) as stream:
                        data = yaml.safe_load(stream.read().decode("utf-8")) or {}
                except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
                    raise ScanError(child.path, f"cannot read metadata file: {exc}") from exc
                if not isinstance(data, dict):
                    raise ScanError(child.path, "metadata file must contain a mapping")
                return data
        return {}

    # ------------------------------------------------------------------
    # Deletions
    # ------------------------------------------------------------------

    def _remove_deleted(
        self, run: _Run, dir_path: str, seen_files: Set[str], seen_folders: Set[str]
    ) -> None:
        if self.closed or self.directory is None:
            return
        job = run.job
        parent_virtual = compute_virtual_path(job.url, dir_path)

        for name in self.directory.file_names(job.documents_index, dir_path):
            if self.closed:
                return
            if name in seen_files or name == job.meta_filename:
                continue
            virtual = _join_virtual(parent_virtual, name)
            if not is_indexable(False, virtual, job.includes, job.excludes):
                continue
            self._delete_file(run, parent_virtual, name)

        if not job.index_folders:
            return

        for folder in self.directory.folder_paths(job.folders_index, dir_path):
            if self.closed:
                return
            if path_key(folder) in seen_folders:
                continue
            virtual = compute_virtual_path(job.url, folder)
            if not is_indexable(True, virtual, job.includes, job.excludes):
                continue
            self._remove_folder_recursively(run, folder)

    def _delete_file(self, run: _Run, parent_virtual: str, name: str) -> None:
        if self.closed:
            return
        job = run.job
        doc_id = generate_id(parent_virtual, name, filename_as_id=job.filename_as_id)
        logger.debug(f"{SCAN} Deleting {_join_virtual(parent_virtual, name)} ({doc_id})")
        self.router.delete(job.documents_index, doc_id)
        run.stats.deleted += 1

    def _remove_folder_recursively(self, run: _Run, path: str) -> None:
        if self.closed or self.directory is None:
            return
        job = run.job
        logger.debug(f"{SCAN} Removing folder {path} and its content")
        parent_virtual = compute_virtual_path(job.url, path)

        for name in self.directory.file_names(job.documents_index, path):
            self._delete_file(run, parent_virtual, name)
        for sub_folder in self.directory.folder_paths(job.folders_index, path):
            self._remove_folder_recursively(run, sub_folder)

        if not self.closed:
            self.directory.delete(job.folders_index, folder_id(path))


__all__ = ["ScanEngine", "ScanStatistic"]
