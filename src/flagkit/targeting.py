"""Targeting configuration types and their load-time validation.

Stored targeting data is loosely typed JSON. It is validated here, once,
when a configuration record is loaded; rules that do not validate are
dropped with a warning so the evaluator only ever sees well-formed rules.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .exceptions import FlagKitError, FlagKitErrorCodes

logger = structlog.stdlib.get_logger(__name__)


class ConditionOperator(StrEnum):
    """Operators a condition can apply."""

    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    IN = "in"
    NOT_IN = "notIn"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    GREATER_THAN_OR_EQUAL = "greaterThanOrEqual"
    LESS_THAN_OR_EQUAL = "lessThanOrEqual"
    MATCHES = "matches"
    NOT_MATCHES = "notMatches"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"


class ConditionLogic(StrEnum):
    """How the conditions of a rule are combined."""

    AND = "AND"
    OR = "OR"


class _TargetingModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


class Condition(_TargetingModel):
    """Single attribute test.

    ``operator`` is kept as the stored string: an operator this version does
    not know is not malformed data, it simply never matches.
    """

    attribute: str = Field(min_length=1)
    operator: str
    value: Any

    @field_validator("value")
    @classmethod
    def _check_value(cls, value: Any) -> Any:
        if _is_scalar(value):
            return value
        if isinstance(value, list) and all(_is_scalar(v) for v in value):
            return value
        raise ValueError("condition value must be a scalar or a list of scalars")


class TargetingRule(_TargetingModel):
    """Ordered condition set mapped to a variation."""

    id: str = Field(min_length=1)
    description: str | None = None
    conditions: list[Condition] = Field(default_factory=list)
    condition_logic: ConditionLogic = ConditionLogic.AND
    variation_key: str
    rollout_percentage: float | None = Field(default=None, ge=0, le=100)


def parse_targeting_rules(raw: Any) -> list[TargetingRule]:
    """Convert stored targeting data into validated rules.

    ``raw`` may be a list of rule mappings or its JSON text. Anything that
    is not a list yields no rules; individual rules that fail validation, or
    repeat an earlier rule id, are dropped. Never raises.
    """
    if raw is None:
        return []
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("targeting rules are not valid JSON, ignoring them")
            return []
    if not isinstance(raw, list):
        logger.warning("targeting rules are not a list, ignoring them", kind=type(raw).__name__)
        return []

    rules: list[TargetingRule] = []
    seen: set[str] = set()
    for index, item in enumerate(raw):
        try:
            rule = TargetingRule.model_validate(item)
        except ValidationError as e:
            logger.warning(
                "dropping malformed targeting rule",
                index=index,
                errors=e.error_count(),
            )
            continue
        if rule.id in seen:
            logger.warning("dropping targeting rule with duplicate id", rule_id=rule.id)
            continue
        seen.add(rule.id)
        rules.append(rule)
    return rules


class EnvironmentFlagConfig(_TargetingModel):
    """Configuration of one flag in one environment."""

    enabled: bool = False
    default_variation_key: str | None = None
    fallback_variation_key: str | None = None
    targeting_rules: list[TargetingRule] = Field(default_factory=list)
    rollout_percentage: float | None = Field(default=None, ge=0, le=100)

    @field_validator("targeting_rules", mode="before")
    @classmethod
    def _parse_rules(cls, value: Any) -> list[TargetingRule]:
        if isinstance(value, list) and all(isinstance(r, TargetingRule) for r in value):
            return value
        return parse_targeting_rules(value)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> EnvironmentFlagConfig:
        """Validate a stored configuration record.

        Malformed targeting rules are dropped; any other invalid field raises
        ``FlagKitError(CONFIG_ERROR)``.
        """
        try:
            return cls.model_validate(dict(record))
        except ValidationError as e:
            raise FlagKitError(
                code=FlagKitErrorCodes.CONFIG_ERROR,
                message=f"Invalid environment flag config: {e}",
                cause=e,
            ) from e
