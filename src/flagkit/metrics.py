"""OpenTelemetry instruments."""

from __future__ import annotations

from opentelemetry import metrics

_meter = metrics.get_meter("flagkit", version="0.1.0")

flag_evaluations_total = _meter.create_counter(
    name="flagkit_evaluations_total",
    description="Total number of flag evaluations, by reason",
    unit="1",
)

snapshot_fetch_errors_total = _meter.create_counter(
    name="flagkit_snapshot_fetch_errors_total",
    description="Total number of failed snapshot fetches",
    unit="1",
)

stream_messages_total = _meter.create_counter(
    name="flagkit_stream_messages_total",
    description="Total number of push messages received, by type",
    unit="1",
)
