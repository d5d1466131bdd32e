# fscrawl/client/bulk.py
"""
Batched write operations.

Operations are queued by `BulkProcessor.add` and sent as one `_bulk`
request (NDJSON, one action line plus an optional source line per
operation) when any of these happens:

    - `bulk_size` operations are queued
    - `byte_size` bytes of NDJSON are queued
    - `flush_interval` seconds elapse (timer thread)
    - `flush()` is called

Batches are sent one at a time, in queue order: everything queued before a
flush goes out before anything queued after it.

The response is parsed item by item. Each operation gets its own
BulkItemResult, so one failing operation never hides the outcome of its
siblings. Listeners see every batch; `RetryBulkListener` puts operations
that failed with a retryable signature back on the queue.
"""

from __future__ import annotations

import itertools
import json
import threading
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any, Callable, Dict, List, Optional, Sequence

from fscrawl.exceptions import IndexingClientError
from fscrawl.logging.logger import get_logger
from fscrawl.logging.tags import BULK

logger = get_logger(__name__)

DEFAULT_BULK_SIZE = 100
DEFAULT_BYTE_SIZE = 10 * 1024 * 1024
DEFAULT_FLUSH_INTERVAL = 5.0
DEFAULT_RETRY_ON = ("es_rejected_execution_exception",)
CLOSE_TIMEOUT = 10.0


# =============================================================================
# Operations
# =============================================================================


class OperationKind(str, Enum):
    INDEX = "index"
    DELETE = "delete"


@dataclass(eq=False)
class BulkOperation:
    kind: OperationKind
    index: str
    id: str
    payload: Optional[Dict[str, Any]] = None
    pipeline: Optional[str] = None
    attempts: int = 0

    @classmethod
    def index_op(
        cls, index: str, id: str, payload: Dict[str, Any], pipeline: Optional[str] = None
    ) -> "BulkOperation":
        return cls(OperationKind.INDEX, index, id, payload, pipeline)

    @classmethod
    def delete_op(cls, index: str, id: str) -> "BulkOperation":
        return cls(OperationKind.DELETE, index, id)

    @cached_property
    def ndjson(self) -> str:
        meta: Dict[str, Any] = {"_index": self.index, "_id": self.id}
        if self.kind is OperationKind.INDEX and self.pipeline:
            meta["pipeline"] = self.pipeline
        lines = [json.dumps({self.kind.value: meta}, ensure_ascii=False)]
        if self.kind is OperationKind.INDEX:
            lines.append(json.dumps(self.payload or {}, ensure_ascii=False, default=str))
        return "\n".join(lines) + "\n"

    @property
    def size_in_bytes(self) -> int:
        return len(self.ndjson.encode("utf-8"))

    def __str__(self) -> str:
        return f"{self.kind.value} {self.index}/{self.id}"


# =============================================================================
# Responses
# =============================================================================


@dataclass
class BulkItemResult:
    operation: BulkOperation
    status: int
    failed: bool
    failure_type: Optional[str] = None
    failure_reason: Optional[str] = None

    @property
    def failure_message(self) -> str:
        parts = [p for p in (self.failure_type, self.failure_reason) if p]
        return ": ".join(parts)


@dataclass
class BulkResponse:
    items: List[BulkItemResult] = field(default_factory=list)
    took: int = 0

    @property
    def has_failures(self) -> bool:
        return any(item.failed for item in self.items)

    def failures(self) -> List[BulkItemResult]:
        return [item for item in self.items if item.failed]

    def succeeded(self) -> List[BulkItemResult]:
        return [item for item in self.items if not item.failed]

    @classmethod
    def parse(cls, operations: Sequence[BulkOperation], body: Dict[str, Any]) -> "BulkResponse":
        """Match response items to operations by position."""
        raw_items = body.get("items") or []
        items: List[BulkItemResult] = []

        for position, op in enumerate(operations):
            if position >= len(raw_items):
                items.append(
                    BulkItemResult(op, 0, True, "missing_item", "no item in bulk response")
                )
                continue

            raw = raw_items[position]
            result = next(iter(raw.values()), {}) if isinstance(raw, dict) else {}
            status = int(result.get("status", 0))
            error = result.get("error")

            failure_type: Optional[str] = None
            failure_reason: Optional[str] = None
            if isinstance(error, dict):
                failure_type = error.get("type")
                failure_reason = error.get("reason")
            elif error is not None:
                failure_reason = str(error)

            failed = error is not None or status >= 300
            if op.kind is OperationKind.DELETE and status == 404:
                # Deleting an unknown id is not a failure
                failed = False

            items.append(BulkItemResult(op, status, failed, failure_type, failure_reason))

        return cls(items=items, took=int(body.get("took", 0)))


# =============================================================================
# Listeners
# =============================================================================


class BulkListener:
    """Hooks around every batch. The default implementation does nothing."""

    processor: Optional["BulkProcessor"] = None

    def bind(self, processor: "BulkProcessor") -> None:
        self.processor = processor

    def before_bulk(self, execution_id: int, operations: List[BulkOperation]) -> None:
        pass

    def after_bulk(
        self, execution_id: int, operations: List[BulkOperation], response: BulkResponse
    ) -> None:
        pass

    def after_bulk_failure(
        self, execution_id: int, operations: List[BulkOperation], error: BaseException
    ) -> None:
        pass


class LoggingBulkListener(BulkListener):
    """Logs failed operations and failed requests; counts successive failing batches."""

    def __init__(self) -> None:
        self.successive_errors = 0
        self.total_failed = 0
        self.last_failures: List[BulkItemResult] = []
        self.last_error: Optional[BaseException] = None

    def before_bulk(self, execution_id: int, operations: List[BulkOperation]) -> None:
        logger.debug(f"{BULK} Sending bulk #{execution_id} with {len(operations)} operation(s)")

    def after_bulk(
        self, execution_id: int, operations: List[BulkOperation], response: BulkResponse
    ) -> None:
        failures = response.failures()
        self.last_failures = failures
        if not failures:
            self.successive_errors = 0
            logger.debug(f"{BULK} Bulk #{execution_id} done in {response.took}ms")
            return

        self.successive_errors += 1
        self.total_failed += len(failures)
        logger.warning(
            f"{BULK} Bulk #{execution_id}: {len(failures)} of {len(operations)} operation(s) failed"
        )
        for item in failures:
            logger.debug(f"{BULK}   {item.operation} -> {item.status} {item.failure_message}")
        if self.successive_errors > 1:
            logger.warning(
                f"{BULK} {self.successive_errors} successive bulks with failures; "
                "the backend may be overloaded"
            )

    def after_bulk_failure(
        self, execution_id: int, operations: List[BulkOperation], error: BaseException
    ) -> None:
        self.successive_errors += 1
        self.total_failed += len(operations)
        self.last_error = error
        logger.error(
            f"{BULK} Bulk #{execution_id} with {len(operations)} operation(s) failed: {error}"
        )


class RetryBulkListener(LoggingBulkListener):
    """
    Requeues operations whose failure matches a retryable signature.

    Each operation is retried at most `max_retries` times; other failures
    are logged and dropped.
    """

    def __init__(self, retry_on: Sequence[str] = DEFAULT_RETRY_ON, max_retries: int = 3):
        super().__init__()
        self.retry_on = tuple(s.lower() for s in retry_on)
        self.max_retries = max_retries
        self.retried = 0
        self.dropped = 0

    def is_retryable(self, item: BulkItemResult) -> bool:
        message = item.failure_message.lower()
        return any(signature in message for signature in self.retry_on)

    def after_bulk(
        self, execution_id: int, operations: List[BulkOperation], response: BulkResponse
    ) -> None:
        super().after_bulk(execution_id, operations, response)

        for item in response.failures():
            op = item.operation
            if self.processor is not None and self.is_retryable(item) and op.attempts < self.max_retries:
                op.attempts += 1
                self.retried += 1
                logger.debug(f"{BULK} Retrying {op} (attempt {op.attempts}/{self.max_retries})")
                self.processor.add(op)
            else:
                self.dropped += 1
                logger.warning(f"{BULK} Dropping {op}: {item.failure_message or item.status}")


# =============================================================================
# Processor
# =============================================================================


class BulkProcessor:
    def __init__(
        self,
        sender: Callable[[List[BulkOperation]], BulkResponse],
        *,
        bulk_size: int = DEFAULT_BULK_SIZE,
        byte_size: int = DEFAULT_BYTE_SIZE,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
        listener: Optional[BulkListener] = None,
        name: str = "bulk",
    ):
        self._sender = sender
        self.bulk_size = bulk_size
        self.byte_size = byte_size
        self.flush_interval = flush_interval
        self.listener = listener or LoggingBulkListener()
        self.listener.bind(self)
        self.name = name

        self._queue: List[BulkOperation] = []
        self._queued_bytes = 0
        self._queue_lock = threading.Lock()
        self._send_lock = threading.RLock()
        self._ids = itertools.count(1)

        self._wake = threading.Event()
        self._stop = threading.Event()
        self._timer: Optional[threading.Thread] = None
        self._closed = False

    @property
    def pending(self) -> int:
        with self._queue_lock:
            return len(self._queue)

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        if self._timer is not None or self.flush_interval <= 0 or self._closed:
            return
        self._timer = threading.Thread(
            target=self._run_timer, name=f"{self.name}-flush", daemon=True
        )
        self._timer.start()

    def add(self, operation: BulkOperation) -> None:
        if self._closed:
            raise IndexingClientError(f"Bulk processor '{self.name}' is closed")

        with self._queue_lock:
            self._queue.append(operation)
            self._queued_bytes += operation.size_in_bytes
            full = len(self._queue) >= self.bulk_size or self._queued_bytes >= self.byte_size

        if full:
            self._execute()

    def flush(self) -> None:
        """Request a flush now. Returns without waiting when a timer thread is running."""
        if self._timer is not None and self._timer.is_alive():
            self._wake.set()
        else:
            self._execute()

    def drain(self) -> None:
        """Send batches until the queue is empty, in the calling thread."""
        while self.pending:
            self._execute()

    def close(self, timeout: float = CLOSE_TIMEOUT) -> None:
        if self._closed:
            return

        self._stop.set()
        self._wake.set()
        if self._timer is not None:
            self._timer.join(timeout)
            if self._timer.is_alive():
                logger.warning(f"{BULK} Flush thread of '{self.name}' still alive after {timeout}s")

        self.drain()
        self._closed = True
        logger.debug(f"{BULK} Bulk processor '{self.name}' closed")

    def _run_timer(self) -> None:
        while not self._stop.is_set():
            self._wake.wait(self.flush_interval)
            self._wake.clear()
            if self._stop.is_set():
                break
            self._execute()

    def _execute(self) -> None:
        with self._send_lock:
            with self._queue_lock:
                batch = self._queue
                self._queue = []
                self._queued_bytes = 0
            if not batch:
                return
            self._send(next(self._ids), batch)

    def _send(self, execution_id: int, batch: List[BulkOperation]) -> None:
        try:
            self.listener.before_bulk(execution_id, batch)
            response = self._sender(batch)
        except Exception as exc:
            logger.debug(f"{BULK} Bulk #{execution_id} raised", exc_info=True)
            self._notify_failure(execution_id, batch, exc)
            return

        try:
            self.listener.after_bulk(execution_id, batch, response)
        except Exception:
            logger.exception(f"{BULK} Listener failed after bulk #{execution_id}")

    def _notify_failure(self, execution_id: int, batch: List[BulkOperation], exc: Exception) -> None:
        try:
            self.listener.after_bulk_failure(execution_id, batch, exc)
        except Exception:
            logger.exception(f"{BULK} Listener failed after failed bulk #{execution_id}")


__all__ = [
    "OperationKind",
    "BulkOperation",
    "BulkItemResult",
    "BulkResponse",
    "BulkListener",
    "LoggingBulkListener",
    "RetryBulkListener",
    "BulkProcessor",
]
