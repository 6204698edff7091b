"""Targeting rule matching."""

from __future__ import annotations

from .conditions import evaluate_condition
from .models import EvaluationContext
from .targeting import ConditionLogic, TargetingRule


def evaluate_rule(rule: TargetingRule, context: EvaluationContext) -> bool:
    """Return whether the rule's conditions match the context.

    A rule without conditions always matches.
    """
    if not rule.conditions:
        return True
    results = [evaluate_condition(condition, context) for condition in rule.conditions]
    if rule.condition_logic == ConditionLogic.AND:
        return all(results)
    return any(results)
