"""FlagEvaluator tests."""

from typing import Any

import pytest
from flagkit import (
    Condition,
    EnvironmentFlagConfig,
    EvaluationContext,
    FlagEvaluator,
    FlagKitError,
    FlagKitErrorCodes,
    FlagType,
    TargetingRule,
    Variation,
    decode_variation_value,
    resolve_variation,
)

BOOL_VARIATIONS = [Variation(key="true", value="true"), Variation(key="false", value="false")]
COLOR_VARIATIONS = [
    Variation(key="red", value='"red"'),
    Variation(key="blue", value='"blue"'),
    Variation(key="green", value="green"),
]

# "new-checkout:user-123" hashes to bucket 58.
FLAG = "new-checkout"
USER = EvaluationContext(user_id="user-123")


def make_config(**kwargs: Any) -> EnvironmentFlagConfig:
    kwargs.setdefault("enabled", True)
    return EnvironmentFlagConfig(**kwargs)


def user_rule(rule_id: str, user_id: str, variation_key: str, rollout: float | None = None) -> TargetingRule:
    return TargetingRule(
        id=rule_id,
        conditions=[Condition(attribute="userId", operator="equals", value=user_id)],
        variation_key=variation_key,
        rollout_percentage=rollout,
    )


@pytest.fixture
def evaluator() -> FlagEvaluator:
    return FlagEvaluator()


def test_no_config(evaluator: FlagEvaluator) -> None:
    result = evaluator.evaluate(None, FLAG, BOOL_VARIATIONS, USER)
    assert result.reason == "NO_CONFIG"
    assert result.enabled is False
    assert result.variation_key == "false"
    assert result.value is False


def test_no_config_without_false_variation_uses_first(evaluator: FlagEvaluator) -> None:
    result = evaluator.evaluate(None, FLAG, COLOR_VARIATIONS, USER, FlagType.STRING)
    assert result.reason == "NO_CONFIG"
    assert result.variation_key == "red"
    assert result.value == "red"


def test_disabled(evaluator: FlagEvaluator) -> None:
    config = make_config(enabled=False, fallback_variation_key="false")
    result = evaluator.evaluate(config, FLAG, BOOL_VARIATIONS, USER)
    assert result.reason == "DISABLED"
    assert result.enabled is False
    assert result.variation_key == "false"


def test_disabled_ignores_rules(evaluator: FlagEvaluator) -> None:
    config = make_config(
        enabled=False,
        fallback_variation_key="red",
        targeting_rules=[user_rule("r1", "user-123", "blue")],
    )
    result = evaluator.evaluate(config, FLAG, COLOR_VARIATIONS, USER, FlagType.STRING)
    assert result.reason == "DISABLED"
    assert result.variation_key == "red"


def test_disabled_with_unknown_fallback_uses_false_sentinel(evaluator: FlagEvaluator) -> None:
    config = make_config(enabled=False, fallback_variation_key="gone")
    result = evaluator.evaluate(config, FLAG, BOOL_VARIATIONS, USER)
    assert result.variation_key == "false"
    assert result.value is False


def test_targeting_rule_match(evaluator: FlagEvaluator) -> None:
    config = make_config(
        default_variation_key="false",
        targeting_rules=[user_rule("vip", "user-123", "true")],
    )
    result = evaluator.evaluate(config, FLAG, BOOL_VARIATIONS, USER)
    assert result.reason == "TARGETING_RULE:vip"
    assert result.variation_key == "true"
    assert result.value is True
    assert result.enabled is True


def test_first_matching_rule_wins(evaluator: FlagEvaluator) -> None:
    config = make_config(
        targeting_rules=[
            TargetingRule(id="R1", variation_key="red"),
            user_rule("R2", "user-123", "blue"),
        ],
    )
    for ctx in [USER, EvaluationContext(), EvaluationContext(attributes={"country": "JP"})]:
        result = evaluator.evaluate(config, FLAG, COLOR_VARIATIONS, ctx, FlagType.STRING)
        assert result.reason == "TARGETING_RULE:R1"
        assert result.variation_key == "red"


def test_rule_rollout_including_user(evaluator: FlagEvaluator) -> None:
    config = make_config(targeting_rules=[user_rule("r1", "user-123", "blue", rollout=59)])
    result = evaluator.evaluate(config, FLAG, COLOR_VARIATIONS, USER, FlagType.STRING)
    assert result.reason == "TARGETING_RULE:r1:ROLLOUT"
    assert result.value == "blue"


def test_rule_rollout_excluding_user_falls_through(evaluator: FlagEvaluator) -> None:
    config = make_config(
        default_variation_key="red",
        targeting_rules=[
            user_rule("r1", "user-123", "blue", rollout=58),
            TargetingRule(id="r2", variation_key="green"),
        ],
    )
    result = evaluator.evaluate(config, FLAG, COLOR_VARIATIONS, USER, FlagType.STRING)
    assert result.reason == "TARGETING_RULE:r2"
    assert result.value == "green"


def test_rule_rollout_of_100_has_no_suffix(evaluator: FlagEvaluator) -> None:
    config = make_config(targeting_rules=[user_rule("r1", "user-123", "blue", rollout=100)])
    result = evaluator.evaluate(config, FLAG, COLOR_VARIATIONS, USER, FlagType.STRING)
    assert result.reason == "TARGETING_RULE:r1"


def test_rule_rollout_without_user_id_falls_through(evaluator: FlagEvaluator) -> None:
    config = make_config(
        default_variation_key="red",
        targeting_rules=[TargetingRule(id="r1", variation_key="blue", rollout_percentage=99)],
    )
    result = evaluator.evaluate(config, FLAG, COLOR_VARIATIONS, EvaluationContext(), FlagType.STRING)
    assert result.reason == "DEFAULT"
    assert result.variation_key == "red"


def test_global_rollout_included(evaluator: FlagEvaluator) -> None:
    config = make_config(rollout_percentage=59)
    result = evaluator.evaluate(config, FLAG, BOOL_VARIATIONS, USER)
    assert result.reason == "ROLLOUT_INCLUDED"
    assert result.variation_key == "true"
    assert result.value is True


def test_global_rollout_not_included_keeps_enabled(evaluator: FlagEvaluator) -> None:
    config = make_config(rollout_percentage=58)
    result = evaluator.evaluate(config, FLAG, BOOL_VARIATIONS, USER)
    assert result.reason == "ROLLOUT_NOT_INCLUDED"
    assert result.variation_key == "false"
    assert result.value is False
    assert result.enabled is True


def test_global_rollout_uses_default_variation(evaluator: FlagEvaluator) -> None:
    config = make_config(default_variation_key="blue", rollout_percentage=58)
    result = evaluator.evaluate(config, FLAG, COLOR_VARIATIONS, USER, FlagType.STRING)
    assert result.reason == "ROLLOUT_NOT_INCLUDED"
    assert result.variation_key == "blue"


def test_global_rollout_without_user_is_not_included(evaluator: FlagEvaluator) -> None:
    config = make_config(rollout_percentage=99)
    result = evaluator.evaluate(config, FLAG, BOOL_VARIATIONS, None)
    assert result.reason == "ROLLOUT_NOT_INCLUDED"


def test_zero_global_rollout_is_default(evaluator: FlagEvaluator) -> None:
    config = make_config(rollout_percentage=0)
    result = evaluator.evaluate(config, FLAG, BOOL_VARIATIONS, USER)
    assert result.reason == "DEFAULT"
    assert result.value is True


def test_default_variation_key(evaluator: FlagEvaluator) -> None:
    config = make_config(default_variation_key="blue")
    result = evaluator.evaluate(config, FLAG, COLOR_VARIATIONS, USER, FlagType.STRING)
    assert result.reason == "DEFAULT"
    assert result.value == "blue"


def test_rule_with_unknown_variation_falls_back_to_default(evaluator: FlagEvaluator) -> None:
    config = make_config(
        default_variation_key="blue",
        targeting_rules=[TargetingRule(id="r1", variation_key="purple")],
    )
    result = evaluator.evaluate(config, FLAG, COLOR_VARIATIONS, USER, FlagType.STRING)
    assert result.reason == "TARGETING_RULE:r1"
    assert result.variation_key == "blue"


def test_plain_text_string_variation(evaluator: FlagEvaluator) -> None:
    config = make_config(default_variation_key="green")
    result = evaluator.evaluate(config, FLAG, COLOR_VARIATIONS, USER, FlagType.STRING)
    assert result.value == "green"


def test_json_variation(evaluator: FlagEvaluator) -> None:
    variations = [Variation(key="layout", value='{"columns": 3, "theme": "dark"}')]
    result = evaluator.evaluate(make_config(), "layout", variations, USER, FlagType.JSON)
    assert result.value == {"columns": 3, "theme": "dark"}


def test_zero_variations_is_reported_not_raised(evaluator: FlagEvaluator) -> None:
    result = evaluator.evaluate(make_config(), FLAG, [], USER)
    assert result.reason == "ERROR"
    assert result.error is not None
    assert FlagKitErrorCodes.NO_VARIATIONS in result.error
    assert result.value is True


def test_undecodable_variation_is_reported(evaluator: FlagEvaluator) -> None:
    variations = [Variation(key="true", value="yes please")]
    result = evaluator.evaluate(make_config(), FLAG, variations, USER, FlagType.BOOLEAN)
    assert result.reason == "ERROR"
    assert result.variation_key == "true"
    assert result.error is not None


def test_resolve_variation_chain() -> None:
    variations = [
        Variation(key="first", value="1"),
        Variation(key="true", value="true"),
        Variation(key="default", value="2"),
    ]
    assert resolve_variation(variations, "default", None, "true").key == "default"
    assert resolve_variation(variations, "missing", "default", "true").key == "default"
    assert resolve_variation(variations, "missing", None, "true").key == "true"
    assert resolve_variation(variations, "missing", "gone").key == "first"
    assert resolve_variation([], "true") is None


@pytest.mark.parametrize(
    ("raw", "flag_type", "expected"),
    [
        ("true", FlagType.BOOLEAN, True),
        ("42", FlagType.NUMBER, 42),
        ("1.5", FlagType.NUMBER, 1.5),
        ('"hello"', FlagType.STRING, "hello"),
        ("hello", FlagType.STRING, "hello"),
        ("123", FlagType.STRING, "123"),
        ("[1, 2]", FlagType.JSON, [1, 2]),
        ("null", FlagType.JSON, None),
    ],
)
def test_decode_variation_value(raw: str, flag_type: FlagType, expected: object) -> None:
    assert decode_variation_value(raw, flag_type) == expected


@pytest.mark.parametrize(
    ("raw", "flag_type"),
    [("1", FlagType.BOOLEAN), ("true", FlagType.NUMBER), ("{oops", FlagType.JSON)],
)
def test_decode_variation_value_rejects_wrong_type(raw: str, flag_type: FlagType) -> None:
    with pytest.raises(FlagKitError) as exc_info:
        decode_variation_value(raw, flag_type)
    assert exc_info.value.code == FlagKitErrorCodes.INVALID_VARIATION
