# fscrawl/pipeline/router.py
"""
Pipeline router.

    process(stream, doc, context)
        1. filters, in configured order, each gated by its `when` predicate;
           the first applied filter that consumes the stream leaves None
           for every later filter
        2. outputs, in configured order, each gated by its `when` predicate
           against the context as mutated by the filters; dispatch is
           sequential in the calling thread

A ConditionEvaluationError or a PluginError aborts the current item and
propagates to the caller. Anything else a plugin raises is wrapped in a
PluginError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, Callable, List, Optional, Sequence

from fscrawl.exceptions import FscrawlError, PluginError
from fscrawl.logging.logger import get_logger
from fscrawl.logging.tags import PIPELINE
from fscrawl.pipeline.context import Document, RoutingContext
from fscrawl.pipeline.plugins import FilterPlugin, OutputPlugin

logger = get_logger(__name__)


def generate_doc_id(doc: Document, context: RoutingContext) -> str:
    """Explicit document id, else the path with separators replaced by '_', else the filename."""
    if doc.id:
        return doc.id
    if context.path:
        return context.path.replace("/", "_").replace("\\", "_")
    if context.filename:
        return context.filename
    raise PluginError("Cannot derive a document id: no id, path or filename")


@dataclass
class RouteResult:
    filters_applied: List[str]
    outputs: List[str]
    rejected: bool = False

    @property
    def dispatched(self) -> bool:
        return bool(self.outputs)


class PipelineRouter:
    def __init__(self, filters: Sequence[FilterPlugin] = (), outputs: Sequence[OutputPlugin] = ()):
        self.filters = list(filters)
        self.outputs = list(outputs)

    def start(self) -> None:
        for output in self.outputs:
            output.start()
        logger.info(
            f"{PIPELINE} Started with filters {[f.id for f in self.filters]} "
            f"and outputs {[o.id for o in self.outputs]}"
        )

    def process(
        self,
        stream: Optional[BinaryIO],
        doc: Document,
        context: RoutingContext,
        *,
        gate: Optional[Callable[[Document], bool]] = None,
    ) -> RouteResult:
        """
        Route one item. `gate`, when given, is checked after the filters;
        a False answer stops the item before any output sees it.
        """
        applied: List[str] = []
        for plugin in self.filters:
            if not plugin.should_apply(context):
                continue
            logger.debug(f"{PIPELINE} Filter '{plugin.id}' on {context.path}")
            self._run_filter(plugin, stream, doc, context)
            applied.append(plugin.id)
            if plugin.consumes_stream:
                stream = None

        if gate is not None and not gate(doc):
            logger.debug(f"{PIPELINE} {context.path} rejected after filters")
            return RouteResult(applied, [], rejected=True)

        dispatched: List[str] = []
        for output in self.outputs:
            if not output.should_apply(context):
                continue
            index = output.index or context.target_index
            if not index:
                raise PluginError(f"Output '{output.id}' has no target index for {context.path}")
            doc_id = generate_doc_id(doc, context)
            self._run_output(output, index, doc_id, doc, context)
            dispatched.append(output.id)

        if not dispatched:
            logger.debug(f"{PIPELINE} No output matched {context.path}")
        return RouteResult(applied, dispatched)

    def delete(self, index: str, id: str) -> None:
        """Remove a document from every output."""
        for output in self.outputs:
            try:
                output.delete(output.index or index, id)
            except FscrawlError:
                raise
            except Exception as exc:
                raise PluginError(f"Output '{output.id}' failed to delete {index}/{id}: {exc}") from exc

    def flush(self) -> None:
        for output in self.outputs:
            output.flush()

    def stop(self) -> None:
        """Flush and stop every output. Errors are logged, not raised."""
        for output in self.outputs:
            try:
                output.flush()
                output.stop()
            except Exception as exc:
                logger.error(f"{PIPELINE} Failed to stop output '{output.id}': {exc}")
                logger.debug(f"{PIPELINE} Stop failure", exc_info=True)
        for plugin in self.filters:
            try:
                plugin.stop()
            except Exception as exc:
                logger.error(f"{PIPELINE} Failed to stop filter '{plugin.id}': {exc}")

    @staticmethod
    def _run_filter(
        plugin: FilterPlugin, stream: Optional[BinaryIO], doc: Document, context: RoutingContext
    ) -> None:
        try:
            plugin.process(stream, doc, context)
        except FscrawlError:
            raise
        except Exception as exc:
            raise PluginError(f"Filter '{plugin.id}' failed on {context.path}: {exc}") from exc

    @staticmethod
    def _run_output(
        output: OutputPlugin, index: str, doc_id: str, doc: Document, context: RoutingContext
    ) -> None:
        try:
            output.index_document(index, doc_id, doc.to_dict(), context)
        except FscrawlError:
            raise
        except Exception as exc:
            raise PluginError(f"Output '{output.id}' failed on {context.path}: {exc}") from exc


__all__ = ["PipelineRouter", "RouteResult", "generate_doc_id"]
