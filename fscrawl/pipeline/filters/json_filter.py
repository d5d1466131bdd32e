# fscrawl/pipeline/filters/json_filter.py
"""Parses JSON files into the document instead of extracting text."""

from __future__ import annotations

import json
from typing import BinaryIO, Optional

from pydantic import BaseModel, ConfigDict

from fscrawl.exceptions import PluginError
from fscrawl.pipeline.context import Document, RoutingContext, deep_merge
from fscrawl.pipeline.plugins import FilterPlugin
from fscrawl.registry import FILTERS


class JsonFilterSettings(BaseModel):
    # False: merge the JSON object at the top level of the document
    add_as_inner_object: bool = True

    model_config = ConfigDict(extra="forbid")


@FILTERS.register
class JsonFilter(FilterPlugin):
    plugin_name = "json"
    settings_model = JsonFilterSettings

    def process(self, stream: Optional[BinaryIO], doc: Document, context: RoutingContext) -> None:
        if stream is None:
            return

        try:
            parsed = json.loads(stream.read().decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PluginError(f"Filter '{self.id}': {context.path} is not valid JSON: {exc}") from exc

        if not isinstance(parsed, dict):
            parsed = {"value": parsed}

        context.mime_type = context.mime_type or "application/json"
        if self.settings.add_as_inner_object:  # type: ignore[attr-defined]
            doc.object = parsed
        else:
            doc.extra = deep_merge(doc.extra, parsed)


__all__ = ["JsonFilter", "JsonFilterSettings"]
