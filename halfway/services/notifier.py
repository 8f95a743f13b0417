# Outbound match events, relayed to users by the real-time transport.
# Delivery is best effort: MatchLifecycle logs failures and keeps its state.

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Tuple

import httpx
from loguru import logger

if TYPE_CHECKING:
    from halfway.services.match_lifecycle import MatchRecord

MATCH_REQUESTED = "matchRequested"
MATCH_ACCEPTED = "matchAccepted"
MATCH_REJECTED = "matchRejected"
BOTH_CONFIRMED = "bothConfirmed"
MATCH_CANCELLED = "matchCancelled"


class MatchNotifier(Protocol):
    def notify_match_requested(self, record: MatchRecord) -> None: ...

    def notify_match_accepted(self, record: MatchRecord) -> None: ...

    def notify_match_rejected(self, record: MatchRecord) -> None: ...

    def notify_both_confirmed(self, record: MatchRecord) -> None: ...

    def notify_match_cancelled(self, record: MatchRecord) -> None: ...


class _EventNotifier:
    """Maps the notify_* calls onto a single emit(event_type, recipients, record)."""

    def emit(self, event_type: str, recipients: List[str], record: MatchRecord) -> None:
        raise NotImplementedError

    def notify_match_requested(self, record: MatchRecord) -> None:
        self.emit(MATCH_REQUESTED, [record.target_id], record)

    def notify_match_accepted(self, record: MatchRecord) -> None:
        self.emit(MATCH_ACCEPTED, [record.requester_id], record)

    def notify_match_rejected(self, record: MatchRecord) -> None:
        self.emit(MATCH_REJECTED, [record.requester_id], record)

    def notify_both_confirmed(self, record: MatchRecord) -> None:
        self.emit(BOTH_CONFIRMED, [record.requester_id, record.target_id], record)

    def notify_match_cancelled(self, record: MatchRecord) -> None:
        self.emit(MATCH_CANCELLED, [record.target_id], record)


class LoggingNotifier(_EventNotifier):
    """Default when no transport is configured."""

    def emit(self, event_type: str, recipients: List[str], record: MatchRecord) -> None:
        logger.info(f"[event] {event_type} match={record.match_id} -> {', '.join(recipients)}")


class RecordingNotifier(_EventNotifier):
    """Keeps emitted events in memory; used by tests and local tooling."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, List[str], str]] = []

    def emit(self, event_type: str, recipients: List[str], record: MatchRecord) -> None:
        self.events.append((event_type, list(recipients), record.match_id))

    def types(self) -> List[str]:
        return [event_type for event_type, _, _ in self.events]


class WebhookNotifier(_EventNotifier):
    """POSTs {"type", "recipients", "match"} to the transport's relay endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not url:
            raise ValueError("TRANSPORT_WEBHOOK_URL not set")
        self.url = url
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def emit(self, event_type: str, recipients: List[str], record: MatchRecord) -> None:
        payload: Dict[str, Any] = {
            "type": event_type,
            "recipients": recipients,
            "match": record.to_dict(),
        }
        resp = self._client.post(self.url, json=payload)
        if resp.status_code >= 400:
            raise RuntimeError(f"Transport relay failed for {event_type}: HTTP {resp.status_code}")
        logger.debug(f"Relayed {event_type} for match {record.match_id}")
