"""Client runtime configuration (pydantic models + YAML loading)."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from .exceptions import FlagKitError, FlagKitErrorCodes
from .models import SdkKeyType


class LogSection(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"


class ClientConfig(BaseModel):
    """ClientRuntime settings.

    Intervals and delays are in seconds. ``polling_interval = 0`` disables
    polling.
    """

    sdk_key: str = Field(min_length=1)
    key_type: SdkKeyType = SdkKeyType.CLIENT
    api_url: str = "http://localhost:3001"
    stream_url: str = "ws://localhost:3001"
    polling_interval: float = Field(default=30.0, ge=0)
    enable_streaming: bool = False
    reconnect_delay: float = Field(default=5.0, gt=0)
    timeout_seconds: float = Field(default=10.0, gt=0)
    sdk_version: str = "0.1.0"
    log: LogSection = Field(default_factory=LogSection)


def deep_merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Overlay per-environment settings on the base settings.

    Nested sections (``log``) are merged key by key; any other overlay value,
    lists included, replaces the base value. Neither input is modified.
    """
    merged = {**base}
    for name, overlay_value in overlay.items():
        base_value = merged.get(name)
        if isinstance(base_value, Mapping) and isinstance(overlay_value, Mapping):
            overlay_value = deep_merge(base_value, overlay_value)
        merged[name] = overlay_value
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise FlagKitError(
            code=FlagKitErrorCodes.READ_FILE,
            message=f"Failed to read config file: {path}",
            cause=e,
        ) from e
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise FlagKitError(
            code=FlagKitErrorCodes.PARSE_YAML,
            message=f"Failed to parse YAML: {path}",
            cause=e,
        ) from e
    if not isinstance(data, dict):
        raise FlagKitError(
            code=FlagKitErrorCodes.PARSE_YAML,
            message=f"Config file must contain a mapping: {path}",
        )
    return data


def load_config(base_path: Path, env_path: Path | None = None) -> ClientConfig:
    """Load a ClientConfig from YAML.

    base_path: base settings file (required)
    env_path: per-environment overlay (optional); merged over the base when it exists.
    """
    data = _read_yaml(base_path)
    if env_path is not None and env_path.exists():
        data = deep_merge(data, _read_yaml(env_path))
    try:
        return ClientConfig.model_validate(data)
    except ValidationError as e:
        raise FlagKitError(
            code=FlagKitErrorCodes.CONFIG_ERROR,
            message=f"Config validation failed: {e}",
            cause=e,
        ) from e
