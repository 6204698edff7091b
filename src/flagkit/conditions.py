"""Single-condition evaluation."""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

from .models import EvaluationContext
from .targeting import Condition, ConditionOperator

_MISSING = object()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equals(actual: Any, expected: Any) -> bool:
    # bool is an int subclass; True must not equal 1.
    if isinstance(actual, bool) or isinstance(expected, bool):
        return type(actual) is type(expected) and actual == expected
    return actual == expected


def _contains(actual: Any, expected: Any) -> bool:
    return any(_strict_equals(actual, item) for item in expected)


def _both_strings(op: Callable[[str, str], bool]) -> Callable[[Any, Any], bool]:
    def apply(actual: Any, expected: Any) -> bool:
        if isinstance(actual, str) and isinstance(expected, str):
            return op(actual, expected)
        return False

    return apply


def _both_numbers(op: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def apply(actual: Any, expected: Any) -> bool:
        if _is_number(actual) and _is_number(expected):
            return op(actual, expected)
        return False

    return apply


def _list_value(negate: bool) -> Callable[[Any, Any], bool]:
    def apply(actual: Any, expected: Any) -> bool:
        if not isinstance(expected, list):
            return False
        return _contains(actual, expected) != negate

    return apply


def _regex(negate: bool) -> Callable[[Any, Any], bool]:
    def apply(actual: Any, expected: Any) -> bool:
        if not (isinstance(actual, str) and isinstance(expected, str)):
            return False
        try:
            pattern = re.compile(expected)
        except re.error:
            return False
        return (pattern.search(actual) is not None) != negate

    return apply


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS: _strict_equals,
    ConditionOperator.NOT_EQUALS: lambda a, e: not _strict_equals(a, e),
    ConditionOperator.CONTAINS: _both_strings(lambda a, e: e in a),
    ConditionOperator.NOT_CONTAINS: _both_strings(lambda a, e: e not in a),
    ConditionOperator.IN: _list_value(negate=False),
    ConditionOperator.NOT_IN: _list_value(negate=True),
    ConditionOperator.GREATER_THAN: _both_numbers(lambda a, e: a > e),
    ConditionOperator.LESS_THAN: _both_numbers(lambda a, e: a < e),
    ConditionOperator.GREATER_THAN_OR_EQUAL: _both_numbers(lambda a, e: a >= e),
    ConditionOperator.LESS_THAN_OR_EQUAL: _both_numbers(lambda a, e: a <= e),
    ConditionOperator.MATCHES: _regex(negate=False),
    ConditionOperator.NOT_MATCHES: _regex(negate=True),
    ConditionOperator.STARTS_WITH: _both_strings(lambda a, e: a.startswith(e)),
    ConditionOperator.ENDS_WITH: _both_strings(lambda a, e: a.endswith(e)),
}


def resolve_attribute(attribute: str, context: EvaluationContext) -> Any:
    """Look up the value a condition tests, or ``_MISSING``."""
    if attribute == "userId":
        return _MISSING if context.user_id is None else context.user_id
    if attribute == "sessionId":
        return _MISSING if context.session_id is None else context.session_id
    return context.attributes.get(attribute, _MISSING)


def evaluate_condition(condition: Condition, context: EvaluationContext) -> bool:
    """Test one condition against a context.

    An attribute absent from the context never matches, whatever the
    operator. Operand type mismatches, invalid patterns and unknown
    operators all evaluate to ``False``.
    """
    actual = resolve_attribute(condition.attribute, context)
    if actual is _MISSING:
        return False
    op = _OPERATORS.get(condition.operator)
    if op is None:
        return False
    return op(actual, condition.value)
