# fscrawl/client/endpoints.py
"""
Endpoint pool with failover and periodic reintroduction.

With a single endpoint the pool is inert: `next()` always returns it and
`remove()` is ignored. With several endpoints:

    - `next()` rotates round-robin through the live list
    - `remove(e)` drops an endpoint after a connection failure
    - once `check_every` calls have been served since the live list shrank,
      the live list is reset to the configured list so a recovered endpoint
      gets another chance
    - an empty live list raises AllEndpointsExhaustedError

The pool has its own lock, independent of the bulk queue lock.
"""

from __future__ import annotations

import threading
from typing import Sequence

from fscrawl.exceptions import AllEndpointsExhaustedError
from fscrawl.logging.logger import get_logger
from fscrawl.logging.tags import CLIENT

logger = get_logger(__name__)

DEFAULT_CHECK_EVERY = 10


class EndpointPool:
    def __init__(self, endpoints: Sequence[str], check_every: int = DEFAULT_CHECK_EVERY):
        if not endpoints:
            raise ValueError("at least one endpoint is required")
        if check_every < 1:
            raise ValueError("check_every must be >= 1")

        self._configured: tuple[str, ...] = tuple(endpoints)
        self._live: list[str] = list(endpoints)
        self._cursor = -1
        self._calls = 0
        self.check_every = check_every
        self._lock = threading.Lock()

    @property
    def configured(self) -> list[str]:
        return list(self._configured)

    @property
    def is_single(self) -> bool:
        return len(self._configured) == 1

    def live(self) -> list[str]:
        with self._lock:
            return list(self._live)

    def next(self) -> str:
        if self.is_single:
            return self._configured[0]

        with self._lock:
            self._reintroduce_if_due()
            if not self._live:
                raise AllEndpointsExhaustedError(list(self._configured))

            self._cursor += 1
            if self._cursor >= len(self._live):
                self._cursor = 0
            return self._live[self._cursor]

    def _reintroduce_if_due(self) -> None:
        self._calls += 1
        if len(self._live) != len(self._configured) and self._calls >= self.check_every:
            logger.debug(f"{CLIENT} Reintroducing endpoints {list(self._configured)}")
            self._live = list(self._configured)
            self._cursor = -1
            self._calls = 0

    def remove(self, endpoint: str) -> None:
        if self.is_single:
            return

        with self._lock:
            try:
                position = self._live.index(endpoint)
            except ValueError:
                return
            del self._live[position]
            if position <= self._cursor:
                self._cursor -= 1
            self._calls = 0
            remaining = list(self._live)

        logger.warning(f"{CLIENT} Removed failing endpoint {endpoint}; live endpoints: {remaining}")

    def reset(self) -> None:
        with self._lock:
            self._live = list(self._configured)
            self._cursor = -1
            self._calls = 0


__all__ = ["EndpointPool", "DEFAULT_CHECK_EVERY"]
