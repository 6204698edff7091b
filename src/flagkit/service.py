"""Server-side evaluation entry points."""

from __future__ import annotations

import asyncio

import structlog

from .evaluator import FALSE_KEY, FlagEvaluator
from .exceptions import FlagKitError
from .metrics import flag_evaluations_total
from .models import (
    EvaluationContext,
    EvaluationReason,
    FlagEvaluationResult,
    FlagRecord,
    FlagSnapshot,
    SdkKeyType,
)
from .store import AnalyticsSinkProtocol, EvaluationEvent, FlagStoreProtocol
from .targeting import EnvironmentFlagConfig

logger = structlog.stdlib.get_logger(__name__)


class EvaluationService:
    """Resolves SDK keys to environments and evaluates their flags."""

    def __init__(
        self,
        store: FlagStoreProtocol,
        evaluator: FlagEvaluator | None = None,
        analytics: AnalyticsSinkProtocol | None = None,
    ) -> None:
        self._store = store
        self._evaluator = evaluator or FlagEvaluator()
        self._analytics = analytics
        self._pending: set[asyncio.Task[None]] = set()

    async def evaluate_flag(
        self,
        sdk_key: str,
        key_type: SdkKeyType,
        flag_key: str,
        context: EvaluationContext | None = None,
    ) -> FlagEvaluationResult | None:
        """Evaluate one active flag.

        Returns ``None`` when the SDK key is unknown or the environment has
        no active flag with that key.
        """
        environment = await self._store.get_environment_by_sdk_key(sdk_key, key_type)
        if environment is None:
            return None
        record = await self._store.get_active_flag(environment, flag_key)
        if record is None:
            return None

        result = self._evaluate_record(record, context)
        self._track(EvaluationEvent(
            flag_id=record.id,
            flag_key=record.key,
            environment_id=environment.id,
            variation_key=result.variation_key,
            reason=result.reason,
            user_id=context.user_id if context else None,
        ))
        return result

    async def get_all_flags(
        self,
        sdk_key: str,
        key_type: SdkKeyType,
        context: EvaluationContext | None = None,
    ) -> FlagSnapshot | None:
        """Evaluate every active flag of the environment behind ``sdk_key``."""
        environment = await self._store.get_environment_by_sdk_key(sdk_key, key_type)
        if environment is None:
            return None
        records = await self._store.list_active_flags(environment)
        flags = {record.key: self._evaluate_record(record, context) for record in records}
        logger.debug("snapshot evaluated", environment=environment.key, flags=len(flags))
        return FlagSnapshot(flags=flags, environment=environment)

    async def drain(self) -> None:
        """Wait for analytics recordings still in flight."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _evaluate_record(
        self, record: FlagRecord, context: EvaluationContext | None
    ) -> FlagEvaluationResult:
        try:
            config = (
                None
                if record.env_config is None
                else EnvironmentFlagConfig.from_record(record.env_config)
            )
        except FlagKitError as e:
            logger.warning("unusable flag config", flag_key=record.key, error=str(e))
            result = FlagEvaluationResult(
                flag_key=record.key,
                value=False,
                variation_key=FALSE_KEY,
                enabled=False,
                reason=EvaluationReason.ERROR,
                error=str(e),
            )
        else:
            result = self._evaluator.evaluate(
                config, record.key, record.variations, context, record.flag_type
            )
        flag_evaluations_total.add(1, {"reason": result.reason.split(":", 1)[0]})
        return result

    def _track(self, event: EvaluationEvent) -> None:
        if self._analytics is None:
            return
        task = asyncio.create_task(self._record(self._analytics, event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _record(self, sink: AnalyticsSinkProtocol, event: EvaluationEvent) -> None:
        try:
            await sink.record_evaluation(event)
        except Exception as e:
            logger.warning(
                "failed to record evaluation",
                flag_key=event.flag_key,
                error=str(e),
            )
