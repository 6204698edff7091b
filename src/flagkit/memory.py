"""In-memory collaborators for tests and local development."""

from __future__ import annotations

from .models import Environment, FlagRecord, FlagStatus, SdkKeyType
from .store import EvaluationEvent


class InMemoryFlagStore:
    """In-memory flag store for testing."""

    def __init__(self) -> None:
        self._environments: dict[tuple[SdkKeyType, str], Environment] = {}
        self._flags: dict[str, dict[str, FlagRecord]] = {}

    def add_environment(
        self,
        environment: Environment,
        client_sdk_key: str | None = None,
        server_sdk_key: str | None = None,
    ) -> None:
        """Register an environment under its SDK keys."""
        if client_sdk_key:
            self._environments[(SdkKeyType.CLIENT, client_sdk_key)] = environment
        if server_sdk_key:
            self._environments[(SdkKeyType.SERVER, server_sdk_key)] = environment
        self._flags.setdefault(environment.id, {})

    def set_flag(self, environment: Environment, flag: FlagRecord) -> None:
        """Store a flag (with its config for this environment)."""
        self._flags.setdefault(environment.id, {})[flag.key] = flag

    async def get_environment_by_sdk_key(
        self, sdk_key: str, key_type: SdkKeyType
    ) -> Environment | None:
        return self._environments.get((SdkKeyType(key_type), sdk_key))

    async def list_active_flags(self, environment: Environment) -> list[FlagRecord]:
        flags = self._flags.get(environment.id, {})
        return [f for f in flags.values() if f.status == FlagStatus.ACTIVE]

    async def get_active_flag(
        self, environment: Environment, flag_key: str
    ) -> FlagRecord | None:
        flag = self._flags.get(environment.id, {}).get(flag_key)
        if flag is None or flag.status != FlagStatus.ACTIVE:
            return None
        return flag


class InMemoryAnalyticsSink:
    """Collects evaluation events in a list."""

    def __init__(self) -> None:
        self._events: list[EvaluationEvent] = []

    async def record_evaluation(self, event: EvaluationEvent) -> None:
        self._events.append(event)

    def get_events(self) -> list[EvaluationEvent]:
        return list(self._events)
