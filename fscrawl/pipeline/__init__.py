# fscrawl/pipeline/__init__.py
from fscrawl.pipeline.conditions import ConditionEvaluator, default_evaluator
from fscrawl.pipeline.context import Document, RoutingContext

__all__ = ["ConditionEvaluator", "default_evaluator", "Document", "RoutingContext"]
