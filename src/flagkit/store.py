"""Collaborator protocols of the evaluation service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

from .models import Environment, FlagRecord, SdkKeyType


class FlagStoreProtocol(Protocol):
    """Read access to environments and flags, owned by the persistence layer."""

    async def get_environment_by_sdk_key(
        self, sdk_key: str, key_type: SdkKeyType
    ) -> Environment | None: ...

    async def list_active_flags(self, environment: Environment) -> list[FlagRecord]: ...

    async def get_active_flag(
        self, environment: Environment, flag_key: str
    ) -> FlagRecord | None: ...


@dataclass
class EvaluationEvent:
    """One evaluation, as reported to the analytics sink."""

    flag_id: str
    flag_key: str
    environment_id: str
    variation_key: str
    reason: str
    user_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AnalyticsSinkProtocol(Protocol):
    """Destination of evaluation events."""

    async def record_evaluation(self, event: EvaluationEvent) -> None: ...
