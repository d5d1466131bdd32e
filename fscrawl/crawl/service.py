# fscrawl/crawl/service.py
"""
Wires settings into running crawlers.

    settings -> filters/outputs (registry) -> PipelineRouter
             -> DirectoryService (deletion queries, folder records)
             -> one ScanEngine + Crawler per job

Shutdown order: crawlers first (no new items), then the router (flush and
stop outputs), then the dedicated directory client.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

from fscrawl.client.client import IndexingClient
from fscrawl.client.directory import Directory, DirectoryService
from fscrawl.config.schema import CrawlerSettings
from fscrawl.crawl.crawler import DEFAULT_CLOSE_TIMEOUT, Crawler
from fscrawl.crawl.engine import ScanEngine
from fscrawl.logging.logger import get_logger
from fscrawl.logging.tags import CRAWLER
from fscrawl.pipeline.outputs.search_index import SearchIndexOutput
from fscrawl.pipeline.router import PipelineRouter
from fscrawl.registry import FILTERS, OUTPUTS, SOURCES, load_builtin_plugins
from fscrawl.state.store import RunStateStore

logger = get_logger(__name__)


def build_router(settings: CrawlerSettings) -> PipelineRouter:
    load_builtin_plugins()
    filters = [
        FILTERS.create(cfg.plugin_name, cfg.kwargs, id=cfg.instance_id, when=cfg.when)
        for cfg in settings.filters
    ]
    outputs = [
        OUTPUTS.create(cfg.plugin_name, cfg.kwargs, id=cfg.instance_id, when=cfg.when)
        for cfg in settings.outputs
    ]
    return PipelineRouter(filters, outputs)


class CrawlerService:
    def __init__(
        self,
        settings: CrawlerSettings,
        router: PipelineRouter,
        *,
        state_store: Optional[RunStateStore] = None,
        directory: Optional[Directory] = None,
        directory_client: Optional[IndexingClient] = None,
        loop: int = 0,
        restart: bool = False,
    ):
        load_builtin_plugins()
        self.settings = settings
        self.router = router
        self.state_store = state_store or RunStateStore(settings.config_dir)
        self.directory = directory
        self._directory_client = directory_client
        self._lock = threading.Lock()
        self._started = False
        self._closed = False

        self.crawlers: Dict[str, Crawler] = {}
        for job in settings.jobs:
            source = SOURCES.create(job.source.plugin_name, job.source.kwargs)
            engine = ScanEngine(source, router, self.state_store, directory)
            self.crawlers[job.name] = Crawler(
                job, engine, self.state_store, loop=loop, restart=restart
            )

    @classmethod
    def from_settings(
        cls, settings: CrawlerSettings, *, loop: int = 0, restart: bool = False
    ) -> "CrawlerService":
        router = build_router(settings)

        index_output = next(
            (output for output in router.outputs if isinstance(output, SearchIndexOutput)), None
        )
        # File lookups must hit the index the documents are written to
        documents_index = index_output.index if index_output is not None else None

        directory_client: Optional[IndexingClient] = None
        directory: Optional[Directory] = None
        if settings.directory is not None:
            directory_client = IndexingClient(settings.directory, name="directory")
            directory = DirectoryService(directory_client, documents_index=documents_index)
        elif index_output is not None:
            directory = DirectoryService(index_output.client, documents_index=documents_index)

        if directory is None:
            logger.warning(
                f"{CRAWLER} No search_index output or directory client configured: "
                "deleted files and folder records will not be tracked"
            )

        return cls(
            settings,
            router,
            directory=directory,
            directory_client=directory_client,
            loop=loop,
            restart=restart,
        )

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._started = True

        if self._directory_client is not None:
            self._directory_client.start()
        self.router.start()
        for crawler in self.crawlers.values():
            crawler.start()
        logger.info(f"{CRAWLER} Started {len(self.crawlers)} crawler(s)")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until every crawler finished; True when all did."""
        finished = [crawler.join(timeout) for crawler in self.crawlers.values()]
        return all(finished)

    def errors(self) -> List[BaseException]:
        return [c.last_error for c in self.crawlers.values() if c.last_error is not None]

    def close(self, timeout: float = DEFAULT_CLOSE_TIMEOUT) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True

        for crawler in self.crawlers.values():
            crawler.engine.close()
            crawler.wake()
        for crawler in self.crawlers.values():
            crawler.close(timeout)
        self.router.stop()
        if self._directory_client is not None:
            self._directory_client.close()
        logger.info(f"{CRAWLER} Service closed")

    def __enter__(self) -> "CrawlerService":
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


__all__ = ["CrawlerService", "build_router"]
