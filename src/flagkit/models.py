"""flagkit data models."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

Scalar = str | int | float | bool


class FlagType(StrEnum):
    """Declared value type of a flag."""

    BOOLEAN = "BOOLEAN"
    STRING = "STRING"
    NUMBER = "NUMBER"
    JSON = "JSON"


class FlagStatus(StrEnum):
    """Lifecycle status of a flag."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ARCHIVED = "ARCHIVED"


class SdkKeyType(StrEnum):
    """Kind of SDK key an environment is looked up by."""

    CLIENT = "client"
    SERVER = "server"


class EvaluationReason:
    """Reason codes reported with every evaluation."""

    DEFAULT: str = "DEFAULT"
    ROLLOUT_INCLUDED: str = "ROLLOUT_INCLUDED"
    ROLLOUT_NOT_INCLUDED: str = "ROLLOUT_NOT_INCLUDED"
    DISABLED: str = "DISABLED"
    NO_CONFIG: str = "NO_CONFIG"
    ERROR: str = "ERROR"

    @staticmethod
    def targeting_rule(rule_id: str, rollout: bool = False) -> str:
        reason = f"TARGETING_RULE:{rule_id}"
        return f"{reason}:ROLLOUT" if rollout else reason


@dataclass(frozen=True)
class EvaluationContext:
    """Identity and attributes of the caller a flag is evaluated for."""

    user_id: str | None = None
    session_id: str | None = None
    attributes: Mapping[str, Scalar] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.user_id is not None:
            data["userId"] = self.user_id
        if self.session_id is not None:
            data["sessionId"] = self.session_id
        if self.attributes:
            data["attributes"] = dict(self.attributes)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> EvaluationContext:
        if not data:
            return cls()
        return cls(
            user_id=data.get("userId"),
            session_id=data.get("sessionId"),
            attributes=dict(data.get("attributes") or {}),
        )


@dataclass(frozen=True)
class Variation:
    """One possible value of a flag, kept in its serialized (JSON text) form."""

    key: str
    value: str
    name: str = ""


@dataclass
class Environment:
    """Environment an SDK key resolves to."""

    id: str
    name: str
    key: str
    project_id: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "key": self.key}


@dataclass
class FlagRecord:
    """Flag as supplied by the persistence layer for one environment.

    ``env_config`` is the raw stored configuration of the flag in that
    environment, or ``None`` when the flag has never been configured there.
    """

    id: str
    key: str
    flag_type: FlagType = FlagType.BOOLEAN
    status: FlagStatus = FlagStatus.ACTIVE
    variations: list[Variation] = field(default_factory=list)
    env_config: Mapping[str, Any] | None = None


@dataclass
class FlagEvaluationResult:
    """Evaluated value of one flag."""

    flag_key: str
    value: Any
    variation_key: str
    enabled: bool
    reason: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "flagKey": self.flag_key,
            "value": self.value,
            "variationKey": self.variation_key,
            "enabled": self.enabled,
            "reason": self.reason,
        }
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FlagEvaluationResult:
        """Build a result from its wire form (``key`` is accepted for ``flagKey``)."""
        flag_key = data.get("flagKey", data.get("key"))
        if not isinstance(flag_key, str) or not flag_key:
            raise ValueError("evaluation result has no flagKey")
        return cls(
            flag_key=flag_key,
            value=data.get("value"),
            variation_key=str(data.get("variationKey", "")),
            enabled=bool(data.get("enabled", False)),
            reason=str(data.get("reason", "")),
            error=data.get("error"),
        )


@dataclass
class FlagSnapshot:
    """Every evaluated flag of an environment at one point in time."""

    flags: dict[str, FlagEvaluationResult]
    environment: Environment

    def to_dict(self) -> dict[str, Any]:
        return {
            "flags": {key: result.to_dict() for key, result in self.flags.items()},
            "environment": self.environment.to_dict(),
        }
