# fscrawl/crawl/crawler.py
"""
Worker thread running the scan engine for one job.

    run_once -> wait(update_rate) -> run_once -> ...

The wait is a per-crawler threading.Event, so close() wakes this worker
immediately without touching any other job. `loop` bounds the number of
runs (0 = run until closed).
"""

from __future__ import annotations

import threading
from typing import Optional

from fscrawl.config.schema import JobSettings
from fscrawl.crawl.engine import ScanEngine
from fscrawl.exceptions import StateStoreError
from fscrawl.logging.logger import get_logger
from fscrawl.logging.tags import CRAWLER
from fscrawl.state.store import RunStateStore

logger = get_logger(__name__)

DEFAULT_CLOSE_TIMEOUT = 30.0


class Crawler:
    def __init__(
        self,
        job: JobSettings,
        engine: ScanEngine,
        state_store: RunStateStore,
        *,
        loop: int = 0,
        restart: bool = False,
    ):
        self.job = job
        self.engine = engine
        self.state_store = state_store
        self.loop = loop
        self.restart = restart

        self.run_count = 0
        self.last_error: Optional[BaseException] = None
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def closed(self) -> bool:
        return self.engine.closed

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self.run, name=f"fscrawl-{self.job.name}", daemon=True
        )
        self._thread.start()

    def run(self) -> None:
        """Loop until closed or `loop` runs are done. Runs in the worker thread."""
        if self.restart:
            self.state_store.clean(self.job.name)

        while not self.closed:
            self.run_count += 1
            logger.info(f"{CRAWLER} Run #{self.run_count} for job '{self.job.name}'")

            try:
                state = self.state_store.read(self.job.name)
                _, error = self.engine.run_once(self.job, state)
            except StateStoreError as exc:
                error = exc
                logger.error(f"{CRAWLER} {exc}")
            self.last_error = error

            if self.loop > 0 and self.run_count >= self.loop:
                logger.info(f"{CRAWLER} Job '{self.job.name}' reached {self.loop} run(s)")
                break
            if self.closed:
                break

            logger.debug(
                f"{CRAWLER} Job '{self.job.name}' sleeping {self.job.update_rate:.0f}s"
            )
            self._wake.wait(self.job.update_rate)
            self._wake.clear()

        logger.debug(f"{CRAWLER} Worker for '{self.job.name}' stopped")

    def wake(self) -> None:
        """Start the next run now instead of waiting for update_rate."""
        self._wake.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker; returns True when it has finished."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def close(self, timeout: float = DEFAULT_CLOSE_TIMEOUT) -> None:
        """Stop the worker at its next check point. Idempotent."""
        self.engine.close()
        self._wake.set()

        if self._thread is None or self._thread is threading.current_thread():
            return
        if not self.join(timeout):
            logger.warning(
                f"{CRAWLER} Worker for '{self.job.name}' still alive after {timeout}s"
            )


__all__ = ["Crawler"]
