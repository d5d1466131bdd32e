# tests/conftest.py
"""
Shared fakes for the test suite.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
from tenacity import wait_none

from fscrawl.client.client import IndexingClient
from fscrawl.config.schema import ClientSettings, JobSettings
from fscrawl.core.paths import path_key
from fscrawl.pipeline.context import RoutingContext
from fscrawl.pipeline.plugins import OutputPlugin


class RecordingOutput(OutputPlugin):
    """Output that keeps everything it receives in memory."""

    plugin_name = "recording"

    def __init__(self, *args: Any, fail_on: Optional[str] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.indexed: List[Tuple[str, str, Dict[str, Any]]] = []
        self.deleted: List[Tuple[str, str]] = []
        self.contexts: List[RoutingContext] = []
        self.fail_on = fail_on
        self.flushed = 0
        self.stopped = False

    def index_document(
        self, index: str, id: str, document: Dict[str, Any], context: RoutingContext
    ) -> None:
        if self.fail_on and context.filename == self.fail_on:
            raise RuntimeError(f"cannot index {context.filename}")
        self.indexed.append((index, id, document))
        self.contexts.append(context)

    def delete(self, index: str, id: str) -> None:
        self.deleted.append((index, id))

    def flush(self) -> None:
        self.flushed += 1

    def stop(self) -> None:
        self.stopped = True

    @property
    def filenames(self) -> List[str]:
        return sorted(doc["file"]["filename"] for _, _, doc in self.indexed)


class FakeDirectory:
    """In-memory stand-in for the backend's directory queries."""

    def __init__(self) -> None:
        self.files: Dict[str, List[str]] = {}
        self.folders: Dict[str, List[str]] = {}
        self.stored: List[Tuple[str, str, Dict[str, Any]]] = []
        self.deleted: List[Tuple[str, str]] = []

    def add_files(self, dir_path: str, *names: str) -> None:
        self.files.setdefault(path_key(dir_path), []).extend(names)

    def add_folder(self, parent: str, path: str) -> None:
        self.folders.setdefault(path_key(parent), []).append(path)

    def file_names(self, index: str, dir_path: str) -> List[str]:
        return list(self.files.get(path_key(dir_path), []))

    def folder_paths(self, index: str, dir_path: str) -> List[str]:
        return list(self.folders.get(path_key(dir_path), []))

    def store_folder(self, index: str, id: str, folder: Dict[str, Any]) -> None:
        self.stored.append((index, id, folder))

    def delete(self, index: str, id: str) -> None:
        self.deleted.append((index, id))


class FakeBackend:
    """Minimal Elasticsearch-like backend behind a MockTransport."""

    def __init__(self, down=()):
        self.down = set(down)
        self.requests = []
        self.docs = {}
        self.bulk_errors = {}
        self.bulk_actions = []
        self.server_errors = 0
        self.pipelines = set()
        self.search_hits = []
        # (index, path.root signature) -> hits, checked before search_hits
        self.hits_by_root = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host in self.down:
            raise httpx.ConnectError("connection refused", request=request)

        self.requests.append((host, request.method, request.url.path))
        path = request.url.path.strip("/")

        if self.server_errors > 0 and request.method in ("GET", "HEAD"):
            self.server_errors -= 1
            return httpx.Response(503, json={"error": "unavailable"})

        if path == "_bulk":
            return self._bulk(request)
        if path.startswith("_ingest/pipeline/"):
            name = path.rsplit("/", 1)[1]
            return httpx.Response(200 if name in self.pipelines else 404, json={})
        if path.endswith("/_search"):
            return httpx.Response(200, json={"hits": {"hits": self._search(path, request)}})

        index, _, doc_id = path.partition("/_doc/")
        key = (index, doc_id)
        if key not in self.docs:
            return httpx.Response(404, json={"found": False})
        if request.method == "HEAD":
            return httpx.Response(200)
        return httpx.Response(200, json={"_id": doc_id, "_source": self.docs[key]})

    def _search(self, path: str, request: httpx.Request) -> List[Dict[str, Any]]:
        index = path.rsplit("/", 1)[0]
        body = json.loads(request.content) if request.content else {}
        root = body.get("query", {}).get("term", {}).get("path.root")
        return self.hits_by_root.get((index, root), self.search_hits)

    def _bulk(self, request: httpx.Request) -> httpx.Response:
        lines = [json.loads(line) for line in request.content.decode("utf-8").splitlines() if line]
        items = []
        i = 0
        while i < len(lines):
            action = lines[i]
            kind, meta = next(iter(action.items()))
            key = (meta["_index"], meta["_id"])
            self.bulk_actions.append((kind, meta["_index"], meta["_id"]))
            if kind == "index":
                source = lines[i + 1]
                i += 2
                if meta["_id"] in self.bulk_errors:
                    error_type = self.bulk_errors[meta["_id"]]
                    items.append(
                        {kind: {**meta, "status": 400, "error": {"type": error_type, "reason": "bad"}}}
                    )
                    continue
                self.docs[key] = source
                items.append({kind: {**meta, "status": 201}})
            else:
                i += 1
                existed = self.docs.pop(key, None) is not None
                items.append({kind: {**meta, "status": 200 if existed else 404}})
        return httpx.Response(200, json={"took": 1, "errors": False, "items": items})


def make_client(backend, urls=("http://h1:9200",), listener=None, **settings):
    settings.setdefault("flush_interval", 0)
    return IndexingClient(
        ClientSettings(urls=list(urls), **settings),
        transport=httpx.MockTransport(backend.handler),
        listener=listener,
        read_retry_wait=wait_none(),
    )


def set_mtime(path: Path, when: datetime) -> None:
    ts = when.timestamp()
    os.utime(path, (ts, ts))


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    """
    root/
      a.txt
      b.pdf
      sub/
        c.json
    """
    root = tmp_path / "root"
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_text("alpha", encoding="utf-8")
    (root / "b.pdf").write_bytes(b"%PDF-1.4 fake")
    (root / "sub" / "c.json").write_text('{"k": 1}', encoding="utf-8")
    return root


@pytest.fixture
def make_job(tree: Path):
    def _make(**overrides: Any) -> JobSettings:
        data: Dict[str, Any] = {"name": "test", "url": str(tree), "update_rate": 0}
        data.update(overrides)
        return JobSettings(**data)

    return _make


@pytest.fixture
def fixed_clock():
    now = datetime(2026, 10, 19, 8, 0, 0, 750000, tzinfo=timezone.utc)
    return lambda: now


@pytest.fixture
def output() -> RecordingOutput:
    return RecordingOutput()


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()
