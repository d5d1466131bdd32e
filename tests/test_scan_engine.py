# tests/test_scan_engine.py
"""
Tests for fscrawl.crawl.engine.ScanEngine on a real temporary tree.
"""

import hashlib
import os
from datetime import datetime, timedelta, timezone

import pytest

from fscrawl.client.directory import DirectoryService
from fscrawl.core.paths import folder_id, generate_id, sign
from fscrawl.crawl.engine import ScanEngine, ScanStatistic
from fscrawl.exceptions import PluginError, ScanError
from fscrawl.pipeline.filters.extract import ExtractFilter
from fscrawl.pipeline.outputs.search_index import SearchIndexOutput, SearchIndexSettings
from fscrawl.pipeline.router import PipelineRouter
from fscrawl.sources.local import LocalFileSource, LocalSourceSettings
from fscrawl.state.store import RunState, RunStateStore, compute_watermark
from tests.conftest import FakeBackend, RecordingOutput, make_client, set_mtime


@pytest.fixture
def store(tmp_path):
    return RunStateStore(tmp_path / "state")


@pytest.fixture
def make_engine(store, output, directory, fixed_clock):
    def _make(out=None, directory_=directory):
        router = PipelineRouter([ExtractFilter()], [out or output])
        return ScanEngine(LocalFileSource(), router, store, directory_, clock=fixed_clock)

    return _make


def future_watermark():
    return datetime.now(timezone.utc).replace(microsecond=0) + timedelta(seconds=1000)


class TestFirstRun:
    """A run without previous state indexes everything."""

    def test_indexes_all_files(self, make_engine, make_job, output, store):
        engine = make_engine()
        state, error = engine.run_once(make_job(), None)

        assert error is None
        assert output.filenames == ["a.txt", "b.pdf", "c.json"]
        assert engine.last_statistic.indexed == 3
        assert state == store.read("test")
        assert state.lastrun == datetime(2026, 10, 19, 7, 59, 58, tzinfo=timezone.utc)
        assert state.indexed == 3

    def test_document_shape(self, make_engine, make_job, output, tree):
        make_engine().run_once(make_job(), None)

        index, doc_id, doc = next(i for i in output.indexed if i[2]["file"]["filename"] == "c.json")
        assert index == "test"
        assert doc_id == generate_id("/sub", "c.json")
        assert doc["content"] == '{"k": 1}'
        assert doc["file"]["extension"] == "json"
        assert doc["file"]["filesize"] == 8
        assert doc["file"]["url"].startswith("file://")
        assert doc["path"] == {
            "root": sign(str(tree / "sub")),
            "virtual": "/sub/c.json",
            "real": str(tree / "sub" / "c.json"),
        }

    def test_routing_context(self, make_engine, make_job, output):
        make_engine().run_once(make_job(tags=["nas"]), None)
        context = next(c for c in output.contexts if c.filename == "a.txt")
        assert context.path == "/a.txt"
        assert context.size == 5
        assert context.source_id == "test"
        assert context.target_index == "test"
        assert context.tags == {"nas"}
        assert context.mime_type == "text/plain"

    def test_folder_records(self, make_engine, make_job, directory, tree):
        make_engine().run_once(make_job(), None)

        stored = {doc_id: folder for _, doc_id, folder in directory.stored}
        assert set(stored) == {folder_id(str(tree)), folder_id(str(tree / "sub"))}
        sub = stored[folder_id(str(tree / "sub"))]
        assert sub["name"] == "sub"
        assert sub["path"]["root"] == sign(str(tree))
        assert sub["path"]["virtual"] == "/sub"
        assert all(index == "test_folder" for index, _, _ in directory.stored)

    def test_root_folder_recorded_on_first_run_only(self, make_engine, make_job, directory, tree):
        previous = RunState(name="test", lastrun=future_watermark())
        make_engine().run_once(make_job(), previous)
        assert [doc_id for _, doc_id, _ in directory.stored] == [folder_id(str(tree / "sub"))]

    def test_no_folder_records_when_disabled(self, make_engine, make_job, directory):
        make_engine().run_once(make_job(index_folders=False), None)
        assert directory.stored == []

    def test_statistic_summary(self, make_engine, make_job):
        engine = make_engine()
        engine.run_once(make_job(), None)
        stats = engine.last_statistic
        assert isinstance(stats, ScanStatistic)
        assert "3 indexed" in str(stats)
        assert stats.folders == 2


class TestIncremental:
    """Only entries changed after the watermark are processed."""

    def test_only_changed_files(self, make_engine, make_job, output, tree, fixed_clock):
        watermark = future_watermark()
        set_mtime(tree / "a.txt", watermark - timedelta(seconds=10))
        set_mtime(tree / "sub" / "c.json", watermark - timedelta(seconds=10))
        set_mtime(tree / "b.pdf", watermark + timedelta(seconds=10))

        previous = RunState(name="test", lastrun=watermark, indexed=7)
        state, error = make_engine().run_once(make_job(), previous)

        assert error is None
        assert output.filenames == ["b.pdf"]
        assert state.indexed == 8
        # the watermark never moves backwards
        assert state.lastrun == max(watermark, compute_watermark(fixed_clock()))

    def test_next_check_from_update_rate(self, make_engine, make_job, fixed_clock):
        state, _ = make_engine().run_once(make_job(update_rate="15m"), None)
        assert state.next_check == fixed_clock() + timedelta(minutes=15)


class TestDeletions:
    """Entries known to the backend but gone from disk."""

    def test_deleted_file_is_removed(self, make_engine, make_job, output, directory, tree):
        directory.add_files(str(tree), "a.txt", "gone.txt")
        state, _ = make_engine().run_once(make_job(), None)

        assert output.deleted == [("test", generate_id("/", "gone.txt"))]
        assert state.deleted == 1

    def test_excluded_names_are_not_deleted(self, make_engine, make_job, output, directory, tree):
        directory.add_files(str(tree), "~draft.txt")
        make_engine().run_once(make_job(), None)
        assert output.deleted == []

    def test_meta_file_is_not_deleted(self, make_engine, make_job, output, directory, tree):
        directory.add_files(str(tree), "_meta.yml")
        make_engine().run_once(make_job(meta_filename="_meta.yml"), None)
        assert output.deleted == []

    def test_nothing_removed_when_disabled(self, make_engine, make_job, output, directory, tree):
        directory.add_files(str(tree), "gone.txt")
        directory.add_folder(str(tree), str(tree / "old"))
        make_engine().run_once(make_job(remove_deleted=False), None)
        assert output.deleted == []
        assert directory.deleted == []

    def test_folder_removed_recursively(self, make_engine, make_job, output, directory, tree):
        old = tree / "old"
        deeper = old / "deeper"
        directory.add_folder(str(tree), str(tree / "sub"))
        directory.add_folder(str(tree), str(old))
        directory.add_files(str(old), "x.txt")
        directory.add_folder(str(old), str(deeper))
        directory.add_files(str(deeper), "y.txt")

        state, _ = make_engine().run_once(make_job(), None)

        assert sorted(output.deleted) == sorted(
            [("test", generate_id("/old", "x.txt")), ("test", generate_id("/old/deeper", "y.txt"))]
        )
        assert directory.deleted == [
            ("test_folder", folder_id(str(deeper))),
            ("test_folder", folder_id(str(old))),
        ]
        assert state.deleted == 2

    def test_deletions_look_in_the_output_index(self, store, make_job, tree, fixed_clock):
        backend = FakeBackend()
        backend.hits_by_root[("archive", sign(str(tree)))] = [
            {"_id": "1", "_source": {"file": {"filename": "a.txt"}}},
            {"_id": "2", "_source": {"file": {"filename": "gone.txt"}}},
        ]
        client = make_client(backend)
        es = SearchIndexOutput(SearchIndexSettings(index="archive"), id="es", client=client)
        engine = ScanEngine(
            LocalFileSource(),
            PipelineRouter([ExtractFilter()], [es]),
            store,
            DirectoryService(client, documents_index="archive"),
            clock=fixed_clock,
        )

        state, error = engine.run_once(make_job(index_folders=False), None)
        client.flush()

        assert error is None
        assert state.deleted == 1
        assert ("delete", "archive", generate_id("/", "gone.txt")) in backend.bulk_actions
        searched = [path for _, method, path in backend.requests if path.endswith("/_search")]
        assert searched
        assert all(path == "/archive/_search" for path in searched)
        client.close()

    def test_without_directory_nothing_is_deleted(self, make_engine, make_job, output):
        state, error = make_engine(directory_=None).run_once(make_job(), None)
        assert error is None
        assert output.deleted == []
        assert state.indexed == 3


class TestFiltering:
    """Entries hidden from the crawl."""

    def test_ignore_marker_hides_subtree(self, make_engine, make_job, output, directory, tree):
        (tree / "sub" / ".fscrawlerignore").touch()
        make_engine().run_once(make_job(), None)

        assert output.filenames == ["a.txt", "b.pdf"]
        assert [doc_id for _, doc_id, _ in directory.stored] == [folder_id(str(tree))]

    def test_ignore_marker_keeps_indexed_entries(self, make_engine, make_job, output, directory, tree):
        sub = tree / "sub"
        (sub / ".fscrawlerignore").touch()
        directory.add_folder(str(tree), str(sub))
        directory.add_files(str(sub), "c.json", "old.txt")
        directory.add_folder(str(sub), str(sub / "nested"))

        state, error = make_engine().run_once(make_job(), None)

        assert error is None
        assert output.deleted == []
        assert directory.deleted == []
        assert state.deleted == 0

    def test_excludes(self, make_engine, make_job, output):
        make_engine().run_once(make_job(excludes=["*.pdf"]), None)
        assert output.filenames == ["a.txt", "c.json"]

    def test_excluded_directory(self, make_engine, make_job, output):
        make_engine().run_once(make_job(excludes=["/sub"]), None)
        assert output.filenames == ["a.txt", "b.pdf"]

    def test_includes(self, make_engine, make_job, output):
        make_engine().run_once(make_job(includes=["*.json"]), None)
        assert output.filenames == ["c.json"]

    def test_size_ceiling(self, make_engine, make_job, output):
        engine = make_engine()
        engine.run_once(make_job(ignore_above=6), None)
        assert output.filenames == ["a.txt"]
        assert engine.last_statistic.skipped == 2

    def test_content_filters(self, make_engine, make_job, output):
        engine = make_engine()
        engine.run_once(make_job(content_filters=["^alp"]), None)
        assert output.filenames == ["a.txt"]
        assert engine.last_statistic.skipped == 2


class TestMetadata:
    """Static and per-folder metadata files."""

    def test_meta_file_merged_into_folder_documents(self, make_engine, make_job, output, tree):
        (tree / "_meta.yml").write_text("project: apollo\nfile:\n  lang: en\n", encoding="utf-8")
        make_engine().run_once(make_job(meta_filename="_meta.yml"), None)

        docs = {doc["file"]["filename"]: doc for _, _, doc in output.indexed}
        assert "_meta.yml" not in docs
        assert docs["a.txt"]["project"] == "apollo"
        assert docs["a.txt"]["file"]["lang"] == "en"
        assert docs["a.txt"]["file"]["extension"] == "txt"
        assert "project" not in docs["c.json"]

    def test_static_meta(self, make_engine, make_job, output, tmp_path):
        meta = tmp_path / "static.yml"
        meta.write_text("source: nas\n", encoding="utf-8")
        make_engine().run_once(make_job(static_meta_file=str(meta)), None)
        assert all(doc["source"] == "nas" for _, _, doc in output.indexed)

    def test_invalid_meta_file(self, make_engine, make_job, tree):
        (tree / "_meta.yml").write_text("- just\n- a list\n", encoding="utf-8")
        state, error = make_engine().run_once(make_job(meta_filename="_meta.yml"), None)
        assert state is None
        assert isinstance(error, ScanError)

    def test_checksum_and_source(self, make_engine, make_job, output):
        make_engine().run_once(make_job(checksum="md5", store_source=True), None)
        doc = next(d for _, _, d in output.indexed if d["file"]["filename"] == "a.txt")
        assert doc["file"]["checksum"] == hashlib.md5(b"alpha").hexdigest()
        assert doc["attachment"] == "YWxwaGE="
        assert doc["content"] == "alpha"

    def test_attributes(self, make_engine, make_job, output):
        make_engine().run_once(make_job(attributes_support=True), None)
        doc = output.indexed[0][2]
        assert set(doc["attributes"]) == {"owner", "group", "permissions"}

    def test_content_not_indexed(self, make_engine, make_job, output):
        make_engine().run_once(make_job(index_content=False), None)
        assert all("content" not in doc for _, _, doc in output.indexed)


class TestFailures:
    """Errors, aborts and missing roots."""

    def test_error_aborts_run_without_state(self, make_engine, make_job, store):
        failing = RecordingOutput(fail_on="b.pdf")
        state, error = make_engine(out=failing).run_once(make_job(), None)

        assert state is None
        assert isinstance(error, PluginError)
        assert store.read("test") is None

    def test_continue_on_error(self, make_engine, make_job, store):
        failing = RecordingOutput(fail_on="b.pdf")
        engine = make_engine(out=failing)
        state, error = engine.run_once(make_job(continue_on_error=True), None)

        assert error is None
        assert failing.filenames == ["a.txt", "c.json"]
        assert engine.last_statistic.errors == 1
        assert store.read("test") == state

    def test_missing_root(self, make_engine, make_job, tmp_path, store):
        state, error = make_engine().run_once(make_job(url=str(tmp_path / "nope")), None)
        assert state is None
        assert isinstance(error, ScanError)
        assert store.read("test") is None

    def test_closed_engine_does_nothing(self, make_engine, make_job, output, store):
        engine = make_engine()
        engine.close()
        state, error = engine.run_once(make_job(), None)

        assert (state, error) == (None, None)
        assert output.indexed == []
        assert store.read("test") is None
        assert engine.last_statistic.aborted

    def test_close_during_run_stops_dispatch_and_deletions(
        self, make_engine, make_job, directory, store, tree
    ):
        class ClosingOutput(RecordingOutput):
            engine = None

            def index_document(self, index, id, document, context):
                super().index_document(index, id, document, context)
                self.engine.close()

        closing = ClosingOutput()
        engine = make_engine(out=closing)
        closing.engine = engine
        directory.add_files(str(tree), "gone.txt")

        state, error = engine.run_once(make_job(), None)

        assert (state, error) == (None, None)
        assert closing.filenames == ["a.txt"]
        assert closing.deleted == []
        assert directory.deleted == []
        assert store.read("test") is None
        assert engine.last_statistic.aborted


class TestSymlinks:
    """Linked directories and link cycles."""

    def test_directory_links_skipped_by_default(self, make_engine, make_job, output, tree):
        os.symlink(tree, tree / "sub" / "loop")
        state, error = make_engine().run_once(make_job(), None)

        assert error is None
        assert output.filenames == ["a.txt", "b.pdf", "c.json"]

    def test_link_cycle_walked_once(self, store, output, directory, make_job, tree, fixed_clock):
        os.symlink(tree, tree / "sub" / "loop")
        source = LocalFileSource(LocalSourceSettings(follow_symlinks=True))
        router = PipelineRouter([ExtractFilter()], [output])
        engine = ScanEngine(source, router, store, directory, clock=fixed_clock)

        state, error = engine.run_once(make_job(), None)

        assert error is None
        assert output.filenames == ["a.txt", "b.pdf", "c.json"]
        assert state.indexed == 3
