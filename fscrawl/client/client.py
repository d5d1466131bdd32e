# fscrawl/client/client.py
"""
Resilient indexing client.

Writes (`index`, `delete`, `submit`) are queued in a BulkProcessor and sent
as `_bulk` requests. Reads (`get`, `exists`, `search`) are synchronous.

Every HTTP call goes through `_request`, which picks an endpoint from the
EndpointPool. A connection-level failure on a multi-endpoint pool removes
that endpoint and retries the same request on the next one, at most once
per configured endpoint. On a single endpoint the failure surfaces as
BackendConnectionError.

Read-only calls additionally retry 5xx answers with exponential backoff.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from fscrawl.client.bulk import (
    BulkListener,
    BulkOperation,
    BulkProcessor,
    BulkResponse,
    RetryBulkListener,
)
from fscrawl.client.endpoints import EndpointPool
from fscrawl.config.schema import ClientSettings
from fscrawl.exceptions import (
    AllEndpointsExhaustedError,
    BackendConnectionError,
    BackendResponseError,
    ConfigError,
)
from fscrawl.logging.logger import get_logger
from fscrawl.logging.tags import CLIENT

logger = get_logger(__name__)

_CONNECTION_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


def _is_server_error(exc: BaseException) -> bool:
    return isinstance(exc, BackendResponseError) and exc.status_code >= 500


def _quote(value: str) -> str:
    return quote(value, safe="")


class IndexingClient:
    """
    Client for an Elasticsearch-compatible backend.

    Example:
        >>> client = IndexingClient(ClientSettings(urls=["http://localhost:9200"]))
        >>> client.start()
        >>> client.index("docs", "abc", {"content": "hello"})
        >>> client.close()
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        listener: Optional[BulkListener] = None,
        read_retry_wait: Any = None,
        name: str = "client",
    ):
        self.settings = settings or ClientSettings()
        self.name = name
        self.pool = EndpointPool(self.settings.urls, self.settings.check_nodes_every)

        headers = {"Accept": "application/json"}
        if self.settings.api_key:
            headers["Authorization"] = f"ApiKey {self.settings.api_key}"
        auth = None
        if self.settings.username:
            auth = (self.settings.username, self.settings.password or "")

        self._http = httpx.Client(
            headers=headers,
            auth=auth,
            timeout=self.settings.timeout,
            verify=self.settings.ssl_verify,
            transport=transport,
        )
        self._read_retry_wait = read_retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=5)

        self.bulk = BulkProcessor(
            self._send_bulk,
            bulk_size=self.settings.bulk_size,
            byte_size=self.settings.byte_size,
            flush_interval=self.settings.flush_interval,
            listener=listener
            or RetryBulkListener(self.settings.retry_on, self.settings.max_retries),
            name=name,
        )
        self._started = False
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        if self._started:
            return

        pipeline = self.settings.pipeline
        if pipeline and not self.pipeline_exists(pipeline):
            raise ConfigError(f"Ingest pipeline {pipeline!r} does not exist on {self.pool.configured}")

        self.bulk.start()
        self._started = True
        logger.info(f"{CLIENT} Client '{self.name}' started with endpoints {self.pool.configured}")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.bulk.close()
        finally:
            self._http.close()
        logger.debug(f"{CLIENT} Client '{self.name}' closed")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def submit(self, operation: BulkOperation) -> None:
        if self._closed:
            logger.warning(f"{CLIENT} Client '{self.name}' is closed; ignoring {operation}")
            return
        self.bulk.add(operation)

    def index(
        self,
        index: str,
        id: str,
        document: Dict[str, Any],
        pipeline: Optional[str] = None,
    ) -> None:
        self.submit(BulkOperation.index_op(index, id, document, pipeline or self.settings.pipeline))

    def delete(self, index: str, id: str) -> None:
        self.submit(BulkOperation.delete_op(index, id))

    def flush(self) -> None:
        self.bulk.flush()

    def _send_bulk(self, operations: List[BulkOperation]) -> BulkResponse:
        body = "".join(op.ndjson for op in operations)
        response = self._request(
            "POST",
            "_bulk",
            content=body.encode("utf-8"),
            headers={"Content-Type": "application/x-ndjson"},
        )
        return BulkResponse.parse(operations, response.json())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, index: str, id: str) -> Optional[Dict[str, Any]]:
        response = self._read("GET", f"{_quote(index)}/_doc/{_quote(id)}", allow=(404,))
        if response.status_code == 404:
            return None
        return response.json().get("_source")

    def exists(self, index: str, id: str) -> bool:
        response = self._read("HEAD", f"{_quote(index)}/_doc/{_quote(id)}", allow=(404,))
        return response.status_code != 404

    def search(self, index: str, request: Dict[str, Any]) -> Dict[str, Any]:
        """Run a search request. A missing index yields an empty result."""
        response = self._read("GET", f"{_quote(index)}/_search", allow=(404,), json=request)
        if response.status_code == 404:
            return {"hits": {"total": {"value": 0}, "hits": []}}
        return response.json()

    def pipeline_exists(self, name: str) -> bool:
        response = self._read("GET", f"_ingest/pipeline/{_quote(name)}", allow=(404,))
        return response.status_code != 404

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _read(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.read_retries),
            wait=self._read_retry_wait,
            retry=retry_if_exception(_is_server_error),
            reraise=True,
        )
        return retrying(self._request, method, path, **kwargs)

    def _request(
        self,
        method: str,
        path: str,
        *,
        allow: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        attempts = len(self.pool.configured)
        for _ in range(attempts):
            endpoint = self.pool.next()
            url = f"{endpoint}/{path.lstrip('/')}"
            try:
                response = self._http.request(method, url, **kwargs)
            except _CONNECTION_ERRORS as exc:
                if self.pool.is_single:
                    raise BackendConnectionError(endpoint, exc) from exc
                logger.warning(f"{CLIENT} {method} {url} failed to connect: {exc}")
                self.pool.remove(endpoint)
                continue

            if response.status_code >= 400 and response.status_code not in allow:
                raise BackendResponseError(response.status_code, method, path, response.text)
            return response

        raise AllEndpointsExhaustedError(self.pool.configured)


__all__ = ["IndexingClient"]
