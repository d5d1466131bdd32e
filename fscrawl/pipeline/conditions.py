# fscrawl/pipeline/conditions.py
"""
Routing predicate evaluation.

Predicates are small boolean expressions evaluated against a RoutingContext:

    extension == 'pdf'
    size > 1024000 && !tags.contains('draft')
    filename.startsWith('report_') || metadata.author == 'alice'
    'important' in tags

Syntax is a safe subset of Python expressions. The C-style operators
`&&`, `||` and `!` and the literals `true`, `false` and `null` are accepted
as well and rewritten before parsing. The parsed tree is checked against a
whitelist of node types and variable names, then cached per expression text
and interpreted by a small tree walker; nothing is passed to `eval`.

Variables:
    filename, extension, path, size, sourceId, mimeType, targetIndex,
    tags (set), metadata (mapping)
plus the aliases source_id, mime_type, target_index, inputId, index.

Contract:
    - empty / None / blank  -> True
    - "true" / "false" (any case) -> short-circuit, nothing compiled
    - non-boolean result -> warning, coerced to `result is not None`
    - any compile or runtime failure -> ConditionEvaluationError
"""

from __future__ import annotations

import ast
import operator
import re
import threading
from typing import Any, Callable, Dict, Optional

from fscrawl.exceptions import ConditionEvaluationError
from fscrawl.logging.logger import get_logger
from fscrawl.logging.tags import CONDITION
from fscrawl.pipeline.context import RoutingContext

logger = get_logger(__name__)

VARIABLES = frozenset(
    {
        "filename",
        "extension",
        "path",
        "size",
        "sourceId",
        "mimeType",
        "targetIndex",
        "tags",
        "metadata",
        "source_id",
        "mime_type",
        "target_index",
        "inputId",
        "index",
    }
)

_LITERALS = {"true": "True", "false": "False", "null": "None"}
_LITERAL_RE = re.compile(r"\b(true|false|null)\b")


def _length(value: Any) -> int:
    return 0 if value is None else len(value)


def _str(value: Any) -> str:
    return "" if value is None else str(value)


METHODS: Dict[str, Callable[..., Any]] = {
    "startsWith": lambda s, p: _str(s).startswith(p),
    "endsWith": lambda s, p: _str(s).endswith(p),
    "startswith": lambda s, p: _str(s).startswith(p),
    "endswith": lambda s, p: _str(s).endswith(p),
    "contains": lambda c, x: c is not None and x in c,
    "containsKey": lambda m, k: isinstance(m, dict) and k in m,
    "equals": lambda a, b: a == b,
    "equalsIgnoreCase": lambda a, b: _str(a).lower() == _str(b).lower(),
    "toLowerCase": lambda s: _str(s).lower(),
    "toUpperCase": lambda s: _str(s).upper(),
    "lower": lambda s: _str(s).lower(),
    "upper": lambda s: _str(s).upper(),
    "trim": lambda s: _str(s).strip(),
    "strip": lambda s: _str(s).strip(),
    "isEmpty": lambda c: _length(c) == 0,
    "length": _length,
    "size": _length,
    "matches": lambda s, pattern: re.fullmatch(pattern, _str(s)) is not None,
    "get": lambda m, k, default=None: m.get(k, default) if isinstance(m, dict) else default,
}

FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "len": _length,
    "lower": lambda s: _str(s).lower(),
    "upper": lambda s: _str(s).upper(),
    "str": _str,
    "int": int,
}

_BINOPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_CMPOPS: Dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_ALLOWED_NODES = (
    ast.Expression,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.UnaryOp,
    ast.Not,
    ast.USub,
    ast.UAdd,
    ast.BinOp,
    ast.Compare,
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.Attribute,
    ast.Subscript,
    ast.Call,
    ast.List,
    ast.Tuple,
    ast.Set,
    *_BINOPS.keys(),
    *_CMPOPS.keys(),
)


# =============================================================================
# Source rewriting
# =============================================================================


def _rewrite_segment(segment: str) -> str:
    segment = segment.replace("&&", " and ").replace("||", " or ")
    segment = re.sub(r"!(?!=)", " not ", segment)
    return _LITERAL_RE.sub(lambda m: _LITERALS[m.group(1)], segment)


def normalize_expression(expression: str) -> str:
    """Rewrite C-style operators and literals outside of string literals."""
    out: list[str] = []
    buf: list[str] = []
    quote: Optional[str] = None
    i = 0
    while i < len(expression):
        char = expression[i]
        if quote is None:
            if char in ("'", '"'):
                out.append(_rewrite_segment("".join(buf)))
                buf = [char]
                quote = char
            else:
                buf.append(char)
        else:
            buf.append(char)
            if char == "\\" and i + 1 < len(expression):
                buf.append(expression[i + 1])
                i += 1
            elif char == quote:
                out.append("".join(buf))
                buf = []
                quote = None
        i += 1

    tail = "".join(buf)
    out.append(tail if quote is not None else _rewrite_segment(tail))
    return "".join(out).strip()


# =============================================================================
# Compilation
# =============================================================================


def _check(tree: ast.AST) -> None:
    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise ValueError(f"unsupported syntax: {type(node).__name__}")
        if isinstance(node, ast.Name) and node.id not in VARIABLES and node.id not in FUNCTIONS:
            raise ValueError(f"unknown variable: {node.id}")
        if isinstance(node, ast.Call):
            if node.keywords:
                raise ValueError("keyword arguments are not supported")
            func = node.func
            if isinstance(func, ast.Attribute):
                if func.attr not in METHODS:
                    raise ValueError(f"unknown method: {func.attr}")
            elif isinstance(func, ast.Name):
                if func.id not in FUNCTIONS:
                    raise ValueError(f"unknown function: {func.id}")
            else:
                raise ValueError("unsupported call target")
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise ValueError(f"private attribute access: {node.attr}")


def compile_expression(expression: str) -> ast.Expression:
    source = normalize_expression(expression)
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as exc:
        raise ConditionEvaluationError(expression, f"syntax error: {exc.msg}") from exc
    try:
        _check(tree)
    except ValueError as exc:
        raise ConditionEvaluationError(expression, str(exc)) from exc
    return tree


# =============================================================================
# Interpretation
# =============================================================================


def _eval(node: ast.AST, env: Dict[str, Any]) -> Any:
    if isinstance(node, ast.Expression):
        return _eval(node.body, env)

    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, ast.Name):
        if node.id in env:
            return env[node.id]
        raise NameError(node.id)

    if isinstance(node, ast.BoolOp):
        result: Any = None
        if isinstance(node.op, ast.And):
            for value in node.values:
                result = _eval(value, env)
                if not result:
                    return result
            return result
        for value in node.values:
            result = _eval(value, env)
            if result:
                return result
        return result

    if isinstance(node, ast.UnaryOp):
        operand = _eval(node.operand, env)
        if isinstance(node.op, ast.Not):
            return not operand
        if isinstance(node.op, ast.USub):
            return -operand
        return +operand

    if isinstance(node, ast.BinOp):
        return _BINOPS[type(node.op)](_eval(node.left, env), _eval(node.right, env))

    if isinstance(node, ast.Compare):
        left = _eval(node.left, env)
        for op, comparator in zip(node.ops, node.comparators):
            right = _eval(comparator, env)
            if not _CMPOPS[type(op)](left, right):
                return False
            left = right
        return True

    if isinstance(node, ast.Attribute):
        target = _eval(node.value, env)
        if isinstance(target, dict):
            return target.get(node.attr)
        raise TypeError(f"cannot read attribute {node.attr!r} of {type(target).__name__}")

    if isinstance(node, ast.Subscript):
        target = _eval(node.value, env)
        key = _eval(node.slice, env)
        if isinstance(target, dict):
            return target.get(key)
        return target[key]

    if isinstance(node, ast.Call):
        args = [_eval(a, env) for a in node.args]
        if isinstance(node.func, ast.Attribute):
            target = _eval(node.func.value, env)
            return METHODS[node.func.attr](target, *args)
        return FUNCTIONS[node.func.id](*args)

    if isinstance(node, ast.List):
        return [_eval(e, env) for e in node.elts]
    if isinstance(node, ast.Tuple):
        return tuple(_eval(e, env) for e in node.elts)
    if isinstance(node, ast.Set):
        return {_eval(e, env) for e in node.elts}

    raise TypeError(f"unsupported node {type(node).__name__}")


class ConditionEvaluator:
    """Compiles, caches and evaluates routing predicates. Thread-safe."""

    def __init__(self) -> None:
        self._cache: Dict[str, ast.Expression] = {}
        self._lock = threading.Lock()

    def _compiled(self, expression: str) -> ast.Expression:
        with self._lock:
            compiled = self._cache.get(expression)
        if compiled is not None:
            return compiled

        compiled = compile_expression(expression)
        with self._lock:
            self._cache.setdefault(expression, compiled)
        logger.debug(f"{CONDITION} Compiled {expression!r}")
        return compiled

    def evaluate(self, expression: Optional[str], context: RoutingContext) -> bool:
        if expression is None:
            return True
        expression = expression.strip()
        if not expression:
            return True

        lowered = expression.lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False

        compiled = self._compiled(expression)
        try:
            result = _eval(compiled, context.to_variables())
        except ConditionEvaluationError:
            raise
        except Exception as exc:
            raise ConditionEvaluationError(expression, f"{type(exc).__name__}: {exc}") from exc

        if isinstance(result, bool):
            return result

        logger.warning(
            f"{CONDITION} Expression {expression!r} returned non-boolean "
            f"{type(result).__name__}; treating as {result is not None}"
        )
        return result is not None

    def is_valid(self, expression: Optional[str]) -> bool:
        if expression is None or not expression.strip():
            return True
        if expression.strip().lower() in ("true", "false"):
            return True
        try:
            self._compiled(expression.strip())
        except ConditionEvaluationError as exc:
            logger.debug(f"{CONDITION} Invalid expression: {exc}")
            return False
        return True

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def cache_size(self) -> int:
        with self._lock:
            return len(self._cache)


default_evaluator = ConditionEvaluator()


__all__ = [
    "VARIABLES",
    "METHODS",
    "ConditionEvaluator",
    "compile_expression",
    "normalize_expression",
    "default_evaluator",
]
