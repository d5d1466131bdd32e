# fscrawl/pipeline/filters/none.py
from __future__ import annotations

from typing import BinaryIO, Optional

from fscrawl.pipeline.context import Document, RoutingContext
from fscrawl.pipeline.plugins import FilterPlugin
from fscrawl.registry import FILTERS


@FILTERS.register
class NoneFilter(FilterPlugin):
    """Passes documents through untouched; metadata only."""

    plugin_name = "none"
    consumes_stream = False

    def process(self, stream: Optional[BinaryIO], doc: Document, context: RoutingContext) -> None:
        return None
