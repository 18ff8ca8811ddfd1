"""In-memory audit trail of dispatch events."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, cast

from agentspec.ids import IdKind, new_id

SENSITIVE_KEYS = {
    "access_token",
    "refresh_token",
    "password",
    "api_key",
    "authorization",
    "secret",
    "token",
}


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _redact_value(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: "[REDACTED]" if str(key).lower() in SENSITIVE_KEYS else _redact_value(nested)
            for key, nested in value.items()
        }
    if isinstance(value, list):
        return [_redact_value(item) for item in value]
    return value


def redact_payload(payload: dict[str, Any]) -> dict[str, Any]:
    return cast(dict[str, Any], _redact_value(payload))


@dataclass(slots=True)
class AuditEvent:
    trace_id: str
    span_id: str
    parent_span_id: str | None
    event_type: str
    component: str
    actor_id: str
    payload: dict[str, Any]
    id: str = field(default_factory=lambda: new_id(IdKind.EVENT))
    created_at: str = field(default_factory=now_iso)


class AuditTrail:
    def __init__(self) -> None:
        self._events: list[AuditEvent] = []

    def emit(
        self,
        *,
        trace_id: str,
        span_id: str,
        parent_span_id: str | None,
        event_type: str,
        component: str,
        actor_id: str,
        payload: dict[str, Any],
    ) -> AuditEvent:
        event = AuditEvent(
            trace_id=trace_id,
            span_id=span_id,
            parent_span_id=parent_span_id,
            event_type=event_type,
            component=component,
            actor_id=actor_id,
            payload=redact_payload(payload),
        )
        self._events.append(event)
        return event

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    def of_type(self, event_type: str) -> list[AuditEvent]:
        return [event for event in self._events if event.event_type == event_type]

    def for_trace(self, trace_id: str) -> list[AuditEvent]:
        return [event for event in self._events if event.trace_id == trace_id]
