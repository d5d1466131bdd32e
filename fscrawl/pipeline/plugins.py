# fscrawl/pipeline/plugins.py
"""
Base classes for pipeline plugins.

Filters transform a Document (and its RoutingContext) in configured order.
Outputs receive the finished Document. Both are gated by an optional
`when` predicate evaluated by the ConditionEvaluator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, BinaryIO, ClassVar, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict

from fscrawl.pipeline.conditions import ConditionEvaluator, default_evaluator
from fscrawl.pipeline.context import Document, RoutingContext


class EmptySettings(BaseModel):
    model_config = ConfigDict(extra="forbid")


class PipelinePlugin:
    plugin_name: ClassVar[str] = ""
    settings_model: ClassVar[Type[BaseModel]] = EmptySettings

    def __init__(
        self,
        settings: Optional[BaseModel] = None,
        *,
        id: Optional[str] = None,
        when: Optional[str] = None,
        evaluator: Optional[ConditionEvaluator] = None,
    ):
        self.settings = settings if settings is not None else self.settings_model()
        self.id = id or self.plugin_name
        self.when = when
        self.evaluator = evaluator or default_evaluator

    def should_apply(self, context: RoutingContext) -> bool:
        return self.evaluator.evaluate(self.when, context)

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, when={self.when!r})"


class FilterPlugin(PipelinePlugin, ABC):
    # False for filters that never read the content stream
    consumes_stream: ClassVar[bool] = True

    @abstractmethod
    def process(
        self, stream: Optional[BinaryIO], doc: Document, context: RoutingContext
    ) -> None:
        ...


class OutputPlugin(PipelinePlugin, ABC):
    @property
    def index(self) -> Optional[str]:
        return getattr(self.settings, "index", None)

    @abstractmethod
    def index_document(
        self, index: str, id: str, document: Dict[str, Any], context: RoutingContext
    ) -> None:
        ...

    @abstractmethod
    def delete(self, index: str, id: str) -> None:
        ...

    def flush(self) -> None:
        pass


__all__ = ["EmptySettings", "PipelinePlugin", "FilterPlugin", "OutputPlugin"]
