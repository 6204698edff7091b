"""Flag evaluation: configuration + context -> FlagEvaluationResult."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from .bucketing import is_in_rollout
from .exceptions import FlagKitError, FlagKitErrorCodes
from .models import EvaluationContext, EvaluationReason, FlagEvaluationResult, FlagType, Variation
from .rules import evaluate_rule
from .targeting import EnvironmentFlagConfig

logger = structlog.stdlib.get_logger(__name__)

TRUE_KEY = "true"
FALSE_KEY = "false"


@dataclass(frozen=True)
class _Decision:
    variation_key: str
    reason: str
    sentinel: str


def resolve_variation(variations: Sequence[Variation], *candidates: str | None) -> Variation | None:
    """Pick the first candidate key present in ``variations``.

    Falls back to the first variation when no candidate exists, and to
    ``None`` only when the flag has no variations at all.
    """
    by_key: dict[str, Variation] = {}
    for variation in variations:
        by_key.setdefault(variation.key, variation)
    for key in candidates:
        if key is not None and key in by_key:
            return by_key[key]
    return variations[0] if variations else None


def _matches_type(value: Any, flag_type: FlagType) -> bool:
    if flag_type == FlagType.BOOLEAN:
        return isinstance(value, bool)
    if flag_type == FlagType.NUMBER:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if flag_type == FlagType.STRING:
        return isinstance(value, str)
    return True


def decode_variation_value(raw: Any, flag_type: FlagType = FlagType.JSON) -> Any:
    """Decode a stored variation value into the flag's declared type.

    Raises:
        FlagKitError: INVALID_VARIATION when the stored text is not JSON, or
            decodes to a value of the wrong type. STRING flags accept plain
            text as-is.
    """
    if not isinstance(raw, (str, bytes)):
        value = raw
    else:
        try:
            value = json.loads(raw)
        except ValueError as e:
            if flag_type == FlagType.STRING:
                return raw if isinstance(raw, str) else raw.decode()
            raise FlagKitError(
                code=FlagKitErrorCodes.INVALID_VARIATION,
                message=f"Variation value is not valid JSON: {raw!r}",
                cause=e,
            ) from e
    if _matches_type(value, flag_type):
        return value
    if flag_type == FlagType.STRING and isinstance(raw, str):
        return raw
    raise FlagKitError(
        code=FlagKitErrorCodes.INVALID_VARIATION,
        message=f"Variation value {value!r} is not of type {flag_type}",
    )


class FlagEvaluator:
    """Evaluates one flag for one context.

    Holds no state: a single instance can serve any number of concurrent
    evaluations.
    """

    def evaluate(
        self,
        config: EnvironmentFlagConfig | None,
        flag_key: str,
        variations: Sequence[Variation],
        context: EvaluationContext | None = None,
        flag_type: FlagType = FlagType.JSON,
    ) -> FlagEvaluationResult:
        context = context or EvaluationContext()

        if config is None:
            return self._build(
                flag_key,
                variations,
                flag_type,
                _Decision(FALSE_KEY, EvaluationReason.NO_CONFIG, FALSE_KEY),
                enabled=False,
                candidates=(FALSE_KEY,),
            )

        if not config.enabled:
            return self._build(
                flag_key,
                variations,
                flag_type,
                _Decision(
                    config.fallback_variation_key or FALSE_KEY,
                    EvaluationReason.DISABLED,
                    FALSE_KEY,
                ),
                enabled=False,
                candidates=(config.fallback_variation_key, FALSE_KEY),
            )

        decision = self._decide(config, flag_key, context)
        return self._build(
            flag_key,
            variations,
            flag_type,
            decision,
            enabled=True,
            candidates=(decision.variation_key, config.default_variation_key, TRUE_KEY),
        )

    def _decide(
        self,
        config: EnvironmentFlagConfig,
        flag_key: str,
        context: EvaluationContext,
    ) -> _Decision:
        for rule in config.targeting_rules:
            if not evaluate_rule(rule, context):
                continue
            pct = rule.rollout_percentage
            if pct is None or pct >= 100:
                return _Decision(rule.variation_key, EvaluationReason.targeting_rule(rule.id), TRUE_KEY)
            if is_in_rollout(flag_key, context.user_id, pct):
                return _Decision(
                    rule.variation_key,
                    EvaluationReason.targeting_rule(rule.id, rollout=True),
                    TRUE_KEY,
                )
            # Matched but bucketed out: the next rule gets its chance.

        default_key = config.default_variation_key
        pct = config.rollout_percentage
        if pct is not None and pct > 0:
            if is_in_rollout(flag_key, context.user_id, pct):
                return _Decision(default_key or TRUE_KEY, EvaluationReason.ROLLOUT_INCLUDED, TRUE_KEY)
            return _Decision(default_key or FALSE_KEY, EvaluationReason.ROLLOUT_NOT_INCLUDED, FALSE_KEY)

        return _Decision(default_key or TRUE_KEY, EvaluationReason.DEFAULT, TRUE_KEY)

    def _build(
        self,
        flag_key: str,
        variations: Sequence[Variation],
        flag_type: FlagType,
        decision: _Decision,
        *,
        enabled: bool,
        candidates: tuple[str | None, ...],
    ) -> FlagEvaluationResult:
        variation = resolve_variation(variations, *candidates)
        if variation is None:
            logger.warning("flag has no variations", flag_key=flag_key, reason=decision.reason)
            return FlagEvaluationResult(
                flag_key=flag_key,
                value=decision.sentinel == TRUE_KEY,
                variation_key=decision.sentinel,
                enabled=enabled,
                reason=EvaluationReason.ERROR,
                error=f"{FlagKitErrorCodes.NO_VARIATIONS}: flag {flag_key!r} has no variations",
            )
        try:
            value = decode_variation_value(variation.value, flag_type)
        except FlagKitError as e:
            logger.warning(
                "variation value cannot be decoded",
                flag_key=flag_key,
                variation_key=variation.key,
                error=str(e),
            )
            return FlagEvaluationResult(
                flag_key=flag_key,
                value=decision.sentinel == TRUE_KEY,
                variation_key=variation.key,
                enabled=enabled,
                reason=EvaluationReason.ERROR,
                error=str(e),
            )
        return FlagEvaluationResult(
            flag_key=flag_key,
            value=value,
            variation_key=variation.key,
            enabled=enabled,
            reason=decision.reason,
        )
