# fscrawl/pipeline/filters/tag.py
"""Adds static tags and metadata to the routing context of matching items."""

from __future__ import annotations

from typing import Any, BinaryIO, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fscrawl.pipeline.context import Document, RoutingContext, deep_merge
from fscrawl.pipeline.plugins import FilterPlugin
from fscrawl.registry import FILTERS


class TagFilterSettings(BaseModel):
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    add_to_document: bool = True

    model_config = ConfigDict(extra="forbid")


@FILTERS.register
class TagFilter(FilterPlugin):
    plugin_name = "tag"
    settings_model = TagFilterSettings
    consumes_stream = False

    def process(self, stream: Optional[BinaryIO], doc: Document, context: RoutingContext) -> None:
        settings: TagFilterSettings = self.settings  # type: ignore[assignment]
        context.tags.update(settings.tags)
        context.metadata = deep_merge(context.metadata, settings.metadata)

        if settings.add_to_document:
            if context.tags:
                doc.extra["tags"] = sorted(context.tags)
            if settings.metadata:
                doc.meta = deep_merge(doc.meta, settings.metadata)


__all__ = ["TagFilter", "TagFilterSettings"]
