# tests/test_service.py
"""
Tests for fscrawl.crawl.service.
"""

from fscrawl.client.directory import DirectoryService
from fscrawl.config.schema import CrawlerSettings
from fscrawl.crawl.service import CrawlerService, build_router
from fscrawl.pipeline.filters.extract import ExtractFilter
from fscrawl.pipeline.outputs.search_index import SearchIndexOutput
from fscrawl.pipeline.router import PipelineRouter
from fscrawl.state.store import RunStateStore


def make_settings(tree, tmp_path, **extra):
    data = {
        "config_dir": str(tmp_path / "state"),
        "jobs": [
            {"name": "one", "url": str(tree), "update_rate": "1h"},
            {"name": "two", "url": str(tree / "sub"), "update_rate": "1h"},
        ],
    }
    data.update(extra)
    return CrawlerSettings(**data)


class TestCrawlerService:
    """Running several jobs against a shared router."""

    def test_runs_every_job(self, tree, tmp_path, output, directory):
        settings = make_settings(tree, tmp_path)
        router = PipelineRouter([ExtractFilter()], [output])

        with CrawlerService(settings, router, directory=directory, loop=1) as service:
            assert service.wait(timeout=10)

        assert service.errors() == []
        assert sorted(c.source_id for c in output.contexts) == ["one", "one", "one", "two"]
        assert output.stopped

        store = RunStateStore(tmp_path / "state")
        assert store.jobs() == ["one", "two"]

    def test_close_is_idempotent(self, tree, tmp_path, output, directory):
        settings = make_settings(tree, tmp_path)
        service = CrawlerService(settings, PipelineRouter([], [output]), directory=directory)
        service.start()
        service.close(timeout=5)
        service.close(timeout=5)
        assert output.flushed == 1
        assert all(not c.is_alive for c in service.crawlers.values())

    def test_errors_are_collected(self, tmp_path, output):
        settings = CrawlerSettings(
            config_dir=str(tmp_path / "state"),
            jobs=[{"name": "missing", "url": str(tmp_path / "nope")}],
        )
        service = CrawlerService(settings, PipelineRouter([], [output]), loop=1)
        service.start()
        assert service.wait(timeout=10)
        service.close()
        assert len(service.errors()) == 1


class TestFromSettings:
    """Building the service from a settings document."""

    def test_router_from_settings(self, tree, tmp_path):
        settings = make_settings(
            tree,
            tmp_path,
            filters=[{"plugin_name": "extract"}, {"plugin_name": "tag", "kwargs": {"tags": ["x"]}}],
            outputs=[{"plugin_name": "search_index", "when": 'extension == "pdf"', "kwargs": {"index": "pdfs"}}],
        )
        router = build_router(settings)

        assert [f.id for f in router.filters] == ["extract", "tag"]
        output = router.outputs[0]
        assert isinstance(output, SearchIndexOutput)
        assert output.index == "pdfs"
        assert output.when == 'extension == "pdf"'
        router.stop()

    def test_directory_uses_first_search_index_output(self, tree, tmp_path):
        settings = make_settings(tree, tmp_path, outputs=[{"plugin_name": "search_index"}])
        service = CrawlerService.from_settings(settings, loop=1)

        assert isinstance(service.directory, DirectoryService)
        assert service.directory.client is service.router.outputs[0].client
        service.close()

    def test_directory_follows_output_index(self, tree, tmp_path):
        settings = make_settings(
            tree, tmp_path, outputs=[{"plugin_name": "search_index", "kwargs": {"index": "archive"}}]
        )
        service = CrawlerService.from_settings(settings)

        assert service.directory.documents_index == "archive"
        service.close()

    def test_dedicated_directory_client_follows_output_index(self, tree, tmp_path):
        settings = make_settings(
            tree,
            tmp_path,
            outputs=[{"plugin_name": "search_index", "kwargs": {"index": "archive"}}],
            directory={"urls": ["http://directory:9200"]},
        )
        service = CrawlerService.from_settings(settings)

        assert service.directory.documents_index == "archive"
        service.close()

    def test_dedicated_directory_client(self, tree, tmp_path):
        settings = make_settings(
            tree,
            tmp_path,
            outputs=[{"plugin_name": "search_index"}],
            directory={"urls": ["http://directory:9200"]},
        )
        service = CrawlerService.from_settings(settings)

        assert service.directory.client.pool.configured == ["http://directory:9200"]
        service.close()
        assert service.directory.client.closed

    def test_without_outputs_there_is_no_directory(self, tree, tmp_path):
        service = CrawlerService.from_settings(make_settings(tree, tmp_path, filters=[]))
        assert service.directory is None
        assert service.router.filters == []
        service.close()
