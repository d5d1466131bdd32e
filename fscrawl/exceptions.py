# fscrawl/exceptions.py
"""
Error taxonomy for fscrawl.

    FscrawlError
    ├── ConfigError                  bad settings, invalid predicate, missing index
    ├── PluginRegistryError
    │   └── PluginNotFoundError      unknown plugin type name
    ├── ConditionEvaluationError     routing predicate failed to compile/evaluate
    ├── PluginError                  a filter or output failed on one item
    ├── ScanError                    per-item traversal failure
    ├── StateStoreError              run state could not be read/written
    └── IndexingClientError
        ├── BackendConnectionError   transport-level failure on a single endpoint
        ├── AllEndpointsExhaustedError
        └── BackendResponseError     non-success HTTP status from the backend
"""

from __future__ import annotations

from typing import Optional


class FscrawlError(Exception):
    """Base class for every error raised by fscrawl."""


# =============================================================================
# Configuration / plugins
# =============================================================================


class ConfigError(FscrawlError):
    """Invalid or unusable configuration."""


class PluginRegistryError(FscrawlError):
    """Plugin registration conflict."""


class PluginNotFoundError(PluginRegistryError, LookupError):
    """No plugin registered under the requested type name."""

    def __init__(self, kind: str, name: str, available: list[str]):
        self.kind = kind
        self.name = name
        self.available = available
        super().__init__(
            f"Unknown {kind} plugin: {name!r}. Available: {sorted(available)}"
        )


class ConditionEvaluationError(FscrawlError):
    """A routing predicate could not be compiled or evaluated."""

    def __init__(self, expression: str, reason: str):
        self.expression = expression
        self.reason = reason
        super().__init__(f"Cannot evaluate condition {expression!r}: {reason}")


class PluginError(FscrawlError):
    """A filter or output failed while processing a single document."""


# =============================================================================
# Crawl / state
# =============================================================================


class ScanError(FscrawlError):
    """A single entry could not be processed during a scan."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Error while crawling {path}: {reason}")


class StateStoreError(FscrawlError):
    """Run state could not be read or written."""


# =============================================================================
# Indexing client
# =============================================================================


class IndexingClientError(FscrawlError):
    """Base error for the indexing client."""


class BackendConnectionError(IndexingClientError):
    """Could not open a connection to a backend endpoint."""

    def __init__(self, endpoint: str, original_error: Exception):
        self.endpoint = endpoint
        self.original_error = original_error
        super().__init__(f"Cannot connect to {endpoint}: {original_error}")


class AllEndpointsExhaustedError(IndexingClientError):
    """Every configured endpoint failed at the connection level."""

    def __init__(self, endpoints: list[str]):
        self.endpoints = endpoints
        super().__init__(f"All nodes are failing: {endpoints}")


class BackendResponseError(IndexingClientError):
    """The backend answered with a non-success status code."""

    def __init__(self, status_code: int, method: str, path: str, body: Optional[str] = None):
        self.status_code = status_code
        self.method = method
        self.path = path
        self.body = body
        detail = f": {body[:300]}" if body else ""
        super().__init__(f"{method} {path} returned HTTP {status_code}{detail}")


__all__ = [
    "FscrawlError",
    "ConfigError",
    "PluginRegistryError",
    "PluginNotFoundError",
    "ConditionEvaluationError",
    "PluginError",
    "ScanError",
    "StateStoreError",
    "IndexingClientError",
    "BackendConnectionError",
    "AllEndpointsExhaustedError",
    "BackendResponseError",
]
