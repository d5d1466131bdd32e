# fscrawl/pipeline/outputs/search_index.py
"""Output writing documents to a search index through an IndexingClient."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fscrawl.client.client import IndexingClient
from fscrawl.config.schema import ClientSettings
from fscrawl.pipeline.context import RoutingContext
from fscrawl.pipeline.plugins import OutputPlugin
from fscrawl.registry import OUTPUTS


class SearchIndexSettings(ClientSettings):
    index: Optional[str] = None


@OUTPUTS.register
class SearchIndexOutput(OutputPlugin):
    plugin_name = "search_index"
    settings_model = SearchIndexSettings

    def __init__(self, *args: Any, client: Optional[IndexingClient] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.client = client or IndexingClient(self.settings, name=self.id)  # type: ignore[arg-type]

    def start(self) -> None:
        self.client.start()

    def index_document(
        self, index: str, id: str, document: Dict[str, Any], context: RoutingContext
    ) -> None:
        self.client.index(index, id, document)

    def delete(self, index: str, id: str) -> None:
        self.client.delete(index, id)

    def flush(self) -> None:
        self.client.flush()

    def stop(self) -> None:
        self.client.close()


__all__ = ["SearchIndexOutput", "SearchIndexSettings"]
