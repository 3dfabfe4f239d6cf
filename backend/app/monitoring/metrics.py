"""Metric definitions for the realtime room engine."""

from __future__ import annotations

from .registry import registry


realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime events processed by the websocket layer and room engine.",
    label_names=("topic", "direction", "action"),
)

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of active websocket connections handled locally.",
    label_names=("scope",),
)

realtime_rooms = registry.gauge(
    "realtime_active_rooms",
    "Number of live rooms held in memory.",
)

realtime_payloads_truncated_total = registry.counter(
    "realtime_payloads_truncated_total",
    "Inline attachment or audio payloads truncated for exceeding the size limit.",
    label_names=("kind",),
)

realtime_signals_dropped_total = registry.counter(
    "realtime_signals_dropped_total",
    "Signalling payloads dropped because the target was not connected.",
    label_names=("kind",),
)

realtime_errors_total = registry.counter(
    "realtime_errors_total",
    "Events rejected with an error reply, by error code.",
    label_names=("code",),
)
