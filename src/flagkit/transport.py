"""Snapshot HTTP transport and wire helpers."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from .config import ClientConfig
from .exceptions import FlagKitError, FlagKitErrorCodes
from .models import EvaluationContext, FlagEvaluationResult, FlagSnapshot

SDK_VERSION_HEADER = "X-FlagKit-SDK-Version"


def build_snapshot_payload(snapshot: FlagSnapshot) -> dict[str, Any]:
    """Wrap a snapshot in the success envelope served to SDKs."""
    return {"success": True, "data": snapshot.to_dict()}


def build_error_payload(code: str, message: str) -> dict[str, Any]:
    """Failure envelope served to SDKs."""
    return {"success": False, "error": {"code": code, "message": message}}


def _unwrap(payload: Any, context: str) -> Any:
    if not isinstance(payload, Mapping):
        raise FlagKitError(
            code=FlagKitErrorCodes.INVALID_PAYLOAD,
            message=f"{context}: response is not a JSON object",
        )
    if not payload.get("success") or "data" not in payload:
        error = payload.get("error")
        message = error.get("message") if isinstance(error, Mapping) else None
        code = error.get("code") if isinstance(error, Mapping) else None
        raise FlagKitError(
            code=FlagKitErrorCodes.INVALID_SDK_KEY
            if code == FlagKitErrorCodes.INVALID_SDK_KEY
            else FlagKitErrorCodes.INVALID_PAYLOAD,
            message=f"{context}: {message or 'request was not successful'}",
        )
    return payload["data"]


def parse_snapshot_payload(payload: Any) -> dict[str, FlagEvaluationResult]:
    """Parse a snapshot envelope into a flag map.

    ``data.flags`` may be a mapping keyed by flag key or a list of results.

    Raises:
        FlagKitError: INVALID_PAYLOAD for anything malformed.
    """
    data = _unwrap(payload, "fetch_snapshot")
    flags = data.get("flags") if isinstance(data, Mapping) else None
    if isinstance(flags, Mapping):
        entries: list[Any] = [
            {"flagKey": key, **item} if isinstance(item, Mapping) else item
            for key, item in flags.items()
        ]
    elif isinstance(flags, list):
        entries = flags
    else:
        raise FlagKitError(
            code=FlagKitErrorCodes.INVALID_PAYLOAD,
            message="fetch_snapshot: payload has no flags",
        )

    result: dict[str, FlagEvaluationResult] = {}
    for entry in entries:
        if not isinstance(entry, Mapping):
            raise FlagKitError(
                code=FlagKitErrorCodes.INVALID_PAYLOAD,
                message="fetch_snapshot: flag entry is not an object",
            )
        try:
            evaluation = FlagEvaluationResult.from_dict(entry)
        except ValueError as e:
            raise FlagKitError(
                code=FlagKitErrorCodes.INVALID_PAYLOAD,
                message=f"fetch_snapshot: {e}",
                cause=e,
            ) from e
        result[evaluation.flag_key] = evaluation
    return result


class HttpSnapshotClient:
    """httpx client for the SDK snapshot and evaluate endpoints."""

    def __init__(self, config: ClientConfig) -> None:
        self._config = config
        self._headers = {
            "Content-Type": "application/json",
            SDK_VERSION_HEADER: config.sdk_version,
        }
        self._base_path = f"/sdk/v1/{config.key_type}/{config.sdk_key}"

    def _make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._config.api_url,
            headers=self._headers,
            timeout=self._config.timeout_seconds,
        )

    def _handle_error(self, resp: httpx.Response, context: str) -> None:
        if resp.status_code == 401:
            raise FlagKitError(
                code=FlagKitErrorCodes.INVALID_SDK_KEY,
                message=f"{context}: SDK key was rejected",
            )
        if resp.status_code >= 400:
            raise FlagKitError(
                code=FlagKitErrorCodes.HTTP_ERROR,
                message=f"{context}: HTTP {resp.status_code}: {resp.text}",
            )

    async def fetch_snapshot(
        self, context: EvaluationContext | None = None
    ) -> dict[str, FlagEvaluationResult]:
        """Fetch every evaluated flag for the configured SDK key."""
        path = f"{self._base_path}/flags"
        try:
            async with self._make_client() as client:
                if context is None:
                    resp = await client.get(path)
                else:
                    resp = await client.post(path, json={"context": context.to_dict()})
            self._handle_error(resp, "fetch_snapshot")
            payload = resp.json()
        except FlagKitError:
            raise
        except ValueError as e:
            raise FlagKitError(
                code=FlagKitErrorCodes.INVALID_PAYLOAD,
                message=f"fetch_snapshot: response is not JSON: {e}",
                cause=e,
            ) from e
        except Exception as e:
            raise FlagKitError(
                code=FlagKitErrorCodes.HTTP_ERROR,
                message=f"Failed to fetch flag snapshot: {e}",
                cause=e,
            ) from e
        return parse_snapshot_payload(payload)

    async def evaluate(
        self, flag_key: str, context: EvaluationContext | None = None
    ) -> FlagEvaluationResult:
        """Evaluate a single flag server-side."""
        body: dict[str, Any] = {"flagKey": flag_key}
        if context is not None:
            body["context"] = context.to_dict()
        try:
            async with self._make_client() as client:
                resp = await client.post(f"{self._base_path}/evaluate", json=body)
            self._handle_error(resp, f"evaluate({flag_key})")
            data = _unwrap(resp.json(), f"evaluate({flag_key})")
            return FlagEvaluationResult.from_dict(data)
        except FlagKitError:
            raise
        except Exception as e:
            raise FlagKitError(
                code=FlagKitErrorCodes.HTTP_ERROR,
                message=f"Failed to evaluate flag {flag_key}: {e}",
                cause=e,
            ) from e
