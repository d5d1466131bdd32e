# fscrawl/client/__init__.py
from fscrawl.client.bulk import (
    BulkItemResult,
    BulkListener,
    BulkOperation,
    BulkProcessor,
    BulkResponse,
    LoggingBulkListener,
    OperationKind,
    RetryBulkListener,
)
from fscrawl.client.client import IndexingClient
from fscrawl.client.directory import Directory, DirectoryService
from fscrawl.client.endpoints import EndpointPool

__all__ = [
    "BulkItemResult",
    "BulkListener",
    "BulkOperation",
    "BulkProcessor",
    "BulkResponse",
    "LoggingBulkListener",
    "OperationKind",
    "RetryBulkListener",
    "IndexingClient",
    "Directory",
    "DirectoryService",
    "EndpointPool",
]
