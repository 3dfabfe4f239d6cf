"""Point-to-point forwarding of WebRTC negotiation payloads.

Offers, answers and ICE candidates only matter to the peer currently
negotiating with the sender, so they bypass room fan-out entirely: the target
is resolved through the connection registry and the payload is delivered to
that single socket. Nothing is queued or retried; an unknown target means the
payload is dropped.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from app.monitoring.metrics import realtime_events_total, realtime_signals_dropped_total

from ..realtime.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

# Outgoing field name carrying the payload for each signal kind.
SIGNAL_FIELDS: Dict[str, str] = {
    "offer": "offer",
    "answer": "answer",
    "iceCandidate": "candidate",
}


def build_signal_envelope(
    kind: str,
    payload: Any,
    *,
    sender_id: str,
    sender_name: str | None = None,
) -> Dict[str, Any]:
    """Normalise an outgoing signalling payload."""

    if kind not in SIGNAL_FIELDS:
        raise ValueError(f"Unsupported signal kind: {kind}")
    return {
        "type": kind,
        "from": sender_id,
        "fromName": sender_name,
        SIGNAL_FIELDS[kind]: payload,
    }


class SignalingRelay:
    """Stateless forwarder resolving targets through the registry."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    def resolve_target(self, target: Any) -> str | None:
        """Return the connection id for *target*.

        Connection ids take precedence; a display name registered in the
        global index is accepted as a fallback.
        """

        if not isinstance(target, str) or not target:
            return None
        if target in self._registry:
            return target
        return self._registry.resolve(target)

    async def relay(self, sender_id: str, target: Any, kind: str, payload: Any) -> bool:
        target_id = self.resolve_target(target)
        if target_id is None:
            logger.debug("Dropping %s from %s: target %r is not connected", kind, sender_id, target)
            realtime_signals_dropped_total.labels(kind).inc()
            return False
        envelope = build_signal_envelope(
            kind,
            payload,
            sender_id=sender_id,
            sender_name=self._registry.name_of(sender_id),
        )
        delivered = await self._registry.send(target_id, envelope)
        if delivered:
            realtime_events_total.labels("signal", "out", kind).inc()
        else:
            realtime_signals_dropped_total.labels(kind).inc()
        return delivered


__all__ = ["SIGNAL_FIELDS", "SignalingRelay", "build_signal_envelope"]
