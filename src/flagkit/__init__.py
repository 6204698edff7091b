"""flagkit: feature flag evaluation engine and client runtime."""

from .bucketing import hash_to_percentage, is_in_rollout
from .conditions import evaluate_condition
from .config import ClientConfig, LogSection, deep_merge, load_config
from .evaluator import FlagEvaluator, decode_variation_value, resolve_variation
from .events import (
    ConnectionEvent,
    ErrorEvent,
    EventChannel,
    EventEmitter,
    ReadyEvent,
    RuntimeEvent,
    Subscription,
    UpdateEvent,
)
from .exceptions import FlagKitError, FlagKitErrorCodes
from .logger import configure_logging, configure_logging_from_config
from .memory import InMemoryAnalyticsSink, InMemoryFlagStore
from .models import (
    Environment,
    EvaluationContext,
    EvaluationReason,
    FlagEvaluationResult,
    FlagRecord,
    FlagSnapshot,
    FlagStatus,
    FlagType,
    SdkKeyType,
    Variation,
)
from .rules import evaluate_rule
from .runtime import ClientRuntime, RuntimeState, SnapshotFetcher
from .service import EvaluationService
from .store import AnalyticsSinkProtocol, EvaluationEvent, FlagStoreProtocol
from .stream import AiohttpWsClient, InMemoryWsClient, WsClient, WsError, WsMessage
from .targeting import (
    Condition,
    ConditionLogic,
    ConditionOperator,
    EnvironmentFlagConfig,
    TargetingRule,
    parse_targeting_rules,
)
from .transport import (
    HttpSnapshotClient,
    build_error_payload,
    build_snapshot_payload,
    parse_snapshot_payload,
)

__version__ = "0.1.0"

__all__ = [
    "AiohttpWsClient",
    "AnalyticsSinkProtocol",
    "ClientConfig",
    "ClientRuntime",
    "Condition",
    "ConditionLogic",
    "ConditionOperator",
    "ConnectionEvent",
    "Environment",
    "EnvironmentFlagConfig",
    "ErrorEvent",
    "EvaluationContext",
    "EvaluationEvent",
    "EvaluationReason",
    "EvaluationService",
    "EventChannel",
    "EventEmitter",
    "FlagEvaluationResult",
    "FlagEvaluator",
    "FlagKitError",
    "FlagKitErrorCodes",
    "FlagRecord",
    "FlagSnapshot",
    "FlagStatus",
    "FlagStoreProtocol",
    "FlagType",
    "HttpSnapshotClient",
    "InMemoryAnalyticsSink",
    "InMemoryFlagStore",
    "InMemoryWsClient",
    "LogSection",
    "ReadyEvent",
    "RuntimeEvent",
    "RuntimeState",
    "SdkKeyType",
    "SnapshotFetcher",
    "Subscription",
    "TargetingRule",
    "UpdateEvent",
    "Variation",
    "WsClient",
    "WsError",
    "WsMessage",
    "build_error_payload",
    "build_snapshot_payload",
    "configure_logging",
    "configure_logging_from_config",
    "decode_variation_value",
    "deep_merge",
    "evaluate_condition",
    "evaluate_rule",
    "hash_to_percentage",
    "is_in_rollout",
    "load_config",
    "parse_snapshot_payload",
    "resolve_variation",
]
