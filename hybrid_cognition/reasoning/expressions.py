#!/usr/bin/env python3
"""
Rule Condition Expressions
==========================
Small closed expression language for function-type rule conditions.

Expressions are trees of the node classes below. Text such as

    message.startswith("hello") and len(goal) > 3

is translated node by node from Python's own parser; only the shapes listed
in parse_expression() are accepted and nothing is ever executed.
"""

import ast
import logging
from dataclasses import dataclass
from typing import Any, Callable, Tuple, Union

from ..exceptions import ExpressionError

logger = logging.getLogger(__name__)

FactLookup = Callable[[str], Any]


# ============================================================================
# NODES
# ============================================================================

@dataclass(frozen=True)
class Literal:
    value: Union[str, int, float, bool, None]


@dataclass(frozen=True)
class FactRef:
    """Value of a fact (None when absent)"""
    key: str


@dataclass(frozen=True)
class Length:
    operand: "Expression"


@dataclass(frozen=True)
class Compare:
    op: str  # one of COMPARE_OPS
    left: "Expression"
    right: "Expression"


@dataclass(frozen=True)
class Contains:
    container: "Expression"
    item: "Expression"


@dataclass(frozen=True)
class StartsWith:
    operand: "Expression"
    prefix: "Expression"


@dataclass(frozen=True)
class EndsWith:
    operand: "Expression"
    suffix: "Expression"


@dataclass(frozen=True)
class And:
    operands: Tuple["Expression", ...]


@dataclass(frozen=True)
class Or:
    operands: Tuple["Expression", ...]


@dataclass(frozen=True)
class Not:
    operand: "Expression"


Expression = Union[Literal, FactRef, Length, Compare, Contains, StartsWith, EndsWith, And, Or, Not]

COMPARE_OPS = ("==", "!=", "<", "<=", ">", ">=")


# ============================================================================
# EVALUATION
# ============================================================================

def evaluate(expr: Expression, lookup: FactLookup) -> Any:
    """Evaluate an expression tree against a fact lookup function"""
    if isinstance(expr, Literal):
        return expr.value
    elif isinstance(expr, FactRef):
        return lookup(expr.key)
    elif isinstance(expr, Length):
        value = evaluate(expr.operand, lookup)
        return len(value) if isinstance(value, (str, list, tuple, dict)) else 0
    elif isinstance(expr, Compare):
        return _compare(expr.op, evaluate(expr.left, lookup), evaluate(expr.right, lookup))
    elif isinstance(expr, Contains):
        container = evaluate(expr.container, lookup)
        item = evaluate(expr.item, lookup)
        if isinstance(container, str):
            return isinstance(item, str) and item in container
        if isinstance(container, (list, tuple, set, dict)):
            return item in container
        return False
    elif isinstance(expr, StartsWith):
        value = evaluate(expr.operand, lookup)
        prefix = evaluate(expr.prefix, lookup)
        return isinstance(value, str) and isinstance(prefix, str) and value.startswith(prefix)
    elif isinstance(expr, EndsWith):
        value = evaluate(expr.operand, lookup)
        suffix = evaluate(expr.suffix, lookup)
        return isinstance(value, str) and isinstance(suffix, str) and value.endswith(suffix)
    elif isinstance(expr, And):
        return all(bool(evaluate(op, lookup)) for op in expr.operands)
    elif isinstance(expr, Or):
        return any(bool(evaluate(op, lookup)) for op in expr.operands)
    elif isinstance(expr, Not):
        return not bool(evaluate(expr.operand, lookup))
    raise TypeError(f"Unsupported expression node: {type(expr).__name__}")


def holds(expr: Expression, lookup: FactLookup) -> bool:
    return bool(evaluate(expr, lookup))


def _compare(op: str, left: Any, right: Any) -> bool:
    if op == "==":
        return left == right
    if op == "!=":
        return left != right
    # Ordering only between numbers or between strings
    numeric = (int, float)
    comparable = (
        (isinstance(left, numeric) and isinstance(right, numeric)
         and not isinstance(left, bool) and not isinstance(right, bool))
        or (isinstance(left, str) and isinstance(right, str))
    )
    if not comparable:
        return False
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    if op == ">=":
        return left >= right
    raise ExpressionError(f"Unknown comparison operator '{op}'")


# ============================================================================
# PARSING
# ============================================================================

_AST_COMPARE = {
    ast.Eq: "==",
    ast.NotEq: "!=",
    ast.Lt: "<",
    ast.LtE: "<=",
    ast.Gt: ">",
    ast.GtE: ">=",
}


def parse_expression(text: str) -> Expression:
    """
    Translate expression text into an Expression tree.

    Accepted shapes:
      - names (fact lookups) and fact("dotted.key")
      - str / int / float / bool / None constants
      - comparisons ==, !=, <, <=, >, >=, in, not in (chains allowed)
      - and / or / not
      - len(x), x.startswith(y), x.endswith(y), x.includes(y)

    Anything else raises ExpressionError.
    """
    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError as e:
        raise ExpressionError(f"Invalid expression {text!r}: {e.msg}") from e
    return _convert(tree.body, text)


def _convert(node: ast.AST, source: str) -> Expression:
    if isinstance(node, ast.Constant):
        if isinstance(node.value, (str, int, float, bool)) or node.value is None:
            return Literal(node.value)
        raise ExpressionError(f"Unsupported constant in {source!r}")

    if isinstance(node, ast.Name):
        if node.id in ("True", "False", "None"):
            return Literal({"True": True, "False": False, "None": None}[node.id])
        return FactRef(node.id)

    if isinstance(node, ast.BoolOp):
        operands = tuple(_convert(v, source) for v in node.values)
        if isinstance(node.op, ast.And):
            return And(operands)
        return Or(operands)

    if isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.Not):
        return Not(_convert(node.operand, source))

    if isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.USub) and isinstance(node.operand, ast.Constant):
        if isinstance(node.operand.value, (int, float)) and not isinstance(node.operand.value, bool):
            return Literal(-node.operand.value)

    if isinstance(node, ast.Compare):
        parts = []
        left = _convert(node.left, source)
        for op, comparator in zip(node.ops, node.comparators):
            right = _convert(comparator, source)
            if isinstance(op, ast.In):
                parts.append(Contains(right, left))
            elif isinstance(op, ast.NotIn):
                parts.append(Not(Contains(right, left)))
            elif type(op) in _AST_COMPARE:
                parts.append(Compare(_AST_COMPARE[type(op)], left, right))
            else:
                raise ExpressionError(f"Unsupported comparison in {source!r}")
            left = right
        return parts[0] if len(parts) == 1 else And(tuple(parts))

    if isinstance(node, ast.Call) and not node.keywords:
        return _convert_call(node, source)

    raise ExpressionError(f"Unsupported syntax '{type(node).__name__}' in {source!r}")


def _convert_call(node: ast.Call, source: str) -> Expression:
    if len(node.args) != 1:
        raise ExpressionError(f"Calls take exactly one argument in {source!r}")
    arg = node.args[0]

    if isinstance(node.func, ast.Name):
        if node.func.id == "len":
            return Length(_convert(arg, source))
        if node.func.id == "fact" and isinstance(arg, ast.Constant) and isinstance(arg.value, str):
            return FactRef(arg.value)
        raise ExpressionError(f"Unknown function '{node.func.id}' in {source!r}")

    if isinstance(node.func, ast.Attribute):
        target = _convert(node.func.value, source)
        method = node.func.attr
        if method == "startswith":
            return StartsWith(target, _convert(arg, source))
        if method == "endswith":
            return EndsWith(target, _convert(arg, source))
        if method in ("includes", "contains"):
            return Contains(target, _convert(arg, source))
        raise ExpressionError(f"Unknown method '{method}' in {source!r}")

    raise ExpressionError(f"Unsupported call in {source!r}")
