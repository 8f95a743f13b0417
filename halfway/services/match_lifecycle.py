"""
Purpose: State machine for a single match negotiation.

    pending -> accepted -> confirmed (one party arrived) -> completed
    pending -> rejected
    pending -> expired      (no answer within the request window)
    accepted|confirmed -> expired   (not both arrived within the meetup window)
    pending -> cancelled    (requester withdrew)

Records are immutable snapshots; every transition stores a new one and writes
it through to the archive under the match's own lock, so the archive sees
transitions in order. Notifications run after the lock is released and never
undo the transition.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from loguru import logger

from halfway.core.errors import (
    InvalidMatchRequest,
    InvalidStateTransition,
    MatchExpired,
    MatchNotFound,
    Unauthorized,
)
from halfway.core.match_config import MATCH_REQUEST_TTL, MEETUP_WINDOW
from halfway.services.candidates import MeetingCandidate
from halfway.services.match_archive import MatchArchive
from halfway.services.notifier import LoggingNotifier, MatchNotifier
from halfway.services.presence_registry import utcnow


class MatchState(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class MatchDecision(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"


LIVE_STATES = frozenset({MatchState.PENDING, MatchState.ACCEPTED, MatchState.CONFIRMED})
TERMINAL_STATES = frozenset(
    {MatchState.COMPLETED, MatchState.REJECTED, MatchState.EXPIRED, MatchState.CANCELLED}
)


@dataclass(frozen=True)
class MatchRecord:
    match_id: str
    requester_id: str
    target_id: str
    activity: str
    state: MatchState
    created_at: datetime
    expires_at: datetime
    selected_candidate: Optional[MeetingCandidate] = None
    responded_at: Optional[datetime] = None
    confirmed_by: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def parties(self) -> FrozenSet[str]:
        return frozenset({self.requester_id, self.target_id})

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def meetup_deadline(self) -> Optional[datetime]:
        """End of the window to meet once accepted; past it the match expires."""
        if self.responded_at is None or self.state not in (
            MatchState.ACCEPTED,
            MatchState.CONFIRMED,
            MatchState.COMPLETED,
        ):
            return None
        return self.responded_at + MEETUP_WINDOW

    def is_overdue(self, now: datetime) -> bool:
        """Live but past its window: unanswered past expires_at, or unmet past the meetup deadline."""
        if self.state == MatchState.PENDING:
            return now >= self.expires_at
        if self.state in (MatchState.ACCEPTED, MatchState.CONFIRMED):
            return now >= self.meetup_deadline
        return False

    def to_dict(self) -> Dict[str, Any]:
        candidate = self.selected_candidate
        return {
            "match_id": self.match_id,
            "requester_id": self.requester_id,
            "target_id": self.target_id,
            "activity": self.activity,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "responded_at": self.responded_at.isoformat() if self.responded_at else None,
            "confirmed_by": sorted(self.confirmed_by),
            "selected_candidate": {
                "id": candidate.id,
                "name": candidate.name,
                "address": candidate.address,
                "lat": candidate.coordinate.latitude,
                "lng": candidate.coordinate.longitude,
            }
            if candidate
            else None,
        }


class _Slot:
    """One live record plus the lock that serializes its transitions."""

    __slots__ = ("record", "lock")

    def __init__(self, record: MatchRecord):
        self.record = record
        self.lock = threading.Lock()


class MatchLifecycle:
    def __init__(
        self,
        notifier: Optional[MatchNotifier] = None,
        archive: Optional[MatchArchive] = None,
        request_ttl: timedelta = MATCH_REQUEST_TTL,
    ):
        self.notifier = notifier or LoggingNotifier()
        self.archive = archive
        self.request_ttl = request_ttl
        self._table_lock = threading.Lock()
        self._slots: Dict[str, _Slot] = {}

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create(
        self,
        requester_id: str,
        target_id: str,
        activity: str,
        now: Optional[datetime] = None,
    ) -> MatchRecord:
        if not requester_id or not target_id:
            raise InvalidMatchRequest("requester_id and target_id are required")
        if requester_id == target_id:
            raise InvalidMatchRequest("Cannot request a match with yourself")

        now = now or utcnow()

        # an overdue match between the pair must not block a new request
        for match_id in self._pair_match_ids(requester_id, target_id):
            self.expire_if_due(match_id, now)

        with self._table_lock:
            existing = self._live_between(requester_id, target_id, now)
            if existing is not None:
                logger.info(f"Reusing live match {existing.match_id} for {requester_id} <-> {target_id}")
                return existing

            record = MatchRecord(
                match_id=str(uuid.uuid4()),
                requester_id=requester_id,
                target_id=target_id,
                activity=activity,
                state=MatchState.PENDING,
                created_at=now,
                expires_at=now + self.request_ttl,
            )
            slot = _Slot(record)
            # held until the first snapshot is archived, so later transitions queue behind it
            slot.lock.acquire()
            self._slots[record.match_id] = slot

        try:
            self._write_through(record)
        finally:
            slot.lock.release()

        logger.info(f"Match {record.match_id} requested: {requester_id} -> {target_id} ({activity})")
        self._notify(record, self.notifier.notify_match_requested)
        return record

    def attach_candidate(
        self,
        match_id: str,
        candidate: MeetingCandidate,
        by: Optional[str] = None,
    ) -> MatchRecord:
        slot = self._slot(match_id)
        with slot.lock:
            record = slot.record
            if by is not None and by not in record.parties:
                raise Unauthorized(f"{by} is not a party of match {match_id}")
            if record.state != MatchState.PENDING:
                raise InvalidStateTransition(
                    f"Cannot attach a meeting point to a {record.state.value} match"
                )
            record = self._store(slot, replace(record, selected_candidate=candidate))

        return record

    def respond(
        self,
        match_id: str,
        by: str,
        decision: MatchDecision | str,
        candidate: Optional[MeetingCandidate] = None,
        now: Optional[datetime] = None,
    ) -> MatchRecord:
        try:
            decision = MatchDecision(decision)
        except ValueError:
            raise InvalidMatchRequest(f"Unknown decision: {decision}")
        now = now or utcnow()

        slot = self._slot(match_id)
        with slot.lock:
            record = slot.record
            if by != record.target_id:
                raise Unauthorized(f"Only the target of match {match_id} can respond")

            if record.state == MatchState.EXPIRED:
                raise MatchExpired(f"Match {match_id} expired at {record.expires_at.isoformat()}")

            # expiry wins over the decision, whatever it is
            just_expired = record.state == MatchState.PENDING and record.is_overdue(now)
            if just_expired:
                record = self._store(slot, replace(record, state=MatchState.EXPIRED))
            elif record.state != MatchState.PENDING:
                raise InvalidStateTransition(f"Cannot respond to a {record.state.value} match")
            elif decision == MatchDecision.ACCEPT:
                record = self._store(
                    slot,
                    replace(
                        record,
                        state=MatchState.ACCEPTED,
                        responded_at=now,
                        selected_candidate=candidate or record.selected_candidate,
                    ),
                )
                notify = self.notifier.notify_match_accepted
            else:
                record = self._store(slot, replace(record, state=MatchState.REJECTED, responded_at=now))
                notify = self.notifier.notify_match_rejected

        if just_expired:
            logger.info(f"Match {match_id} expired before a response")
            raise MatchExpired(f"Match {match_id} expired at {record.expires_at.isoformat()}")

        logger.info(f"Match {match_id} {record.state.value} by {by}")
        self._notify(record, notify)
        return record

    def confirm_arrival(self, match_id: str, by: str, now: Optional[datetime] = None) -> MatchRecord:
        now = now or utcnow()
        slot = self._slot(match_id)
        with slot.lock:
            record = slot.record
            if by not in record.parties:
                raise Unauthorized(f"{by} is not a party of match {match_id}")

            # repeat confirmation is a no-op, including after completion
            if by in record.confirmed_by:
                return record

            if record.state == MatchState.EXPIRED:
                raise MatchExpired(f"Match {match_id} has expired")

            just_expired = record.state in (MatchState.ACCEPTED, MatchState.CONFIRMED) and record.is_overdue(now)
            if just_expired:
                record = self._store(slot, replace(record, state=MatchState.EXPIRED))
            elif record.state not in (MatchState.ACCEPTED, MatchState.CONFIRMED):
                raise InvalidStateTransition(f"Cannot confirm arrival on a {record.state.value} match")
            else:
                confirmed_by = record.confirmed_by | {by}
                state = MatchState.COMPLETED if confirmed_by >= record.parties else MatchState.CONFIRMED
                record = self._store(slot, replace(record, state=state, confirmed_by=confirmed_by))

        if just_expired:
            logger.info(f"Match {match_id} expired before both parties arrived")
            raise MatchExpired(f"Match {match_id} meetup window ended at {(record.responded_at + MEETUP_WINDOW).isoformat()}")

        logger.info(f"Match {match_id} arrival confirmed by {by} ({len(record.confirmed_by)}/2)")
        if record.state == MatchState.COMPLETED:
            self._notify(record, self.notifier.notify_both_confirmed)
        return record

    def expire_if_due(self, match_id: str, now: Optional[datetime] = None) -> MatchRecord:
        """Expires a pending match past expires_at, or an accepted one past its meetup deadline."""
        now = now or utcnow()
        slot = self._slot(match_id)
        with slot.lock:
            record = slot.record
            if not record.is_overdue(now):
                return record
            record = self._store(slot, replace(record, state=MatchState.EXPIRED))

        logger.info(f"Match {match_id} expired")
        return record

    def cancel(self, match_id: str, by: str, now: Optional[datetime] = None) -> MatchRecord:
        slot = self._slot(match_id)
        with slot.lock:
            record = slot.record
            if by != record.requester_id:
                raise Unauthorized(f"Only the requester of match {match_id} can cancel it")
            if record.state == MatchState.CANCELLED:
                return record
            if record.state != MatchState.PENDING:
                raise InvalidStateTransition(f"Cannot cancel a {record.state.value} match")
            record = self._store(slot, replace(record, state=MatchState.CANCELLED))

        logger.info(f"Match {match_id} cancelled by {by}")
        self._notify(record, self.notifier.notify_match_cancelled)
        return record

    # ------------------------------------------------------------------
    # Queries / housekeeping
    # ------------------------------------------------------------------

    def get(self, match_id: str) -> MatchRecord:
        return self._slot(match_id).record

    def list_for_user(self, user_id: str) -> List[MatchRecord]:
        with self._table_lock:
            records = [slot.record for slot in self._slots.values()]
        return sorted(
            (record for record in records if user_id in record.parties),
            key=lambda record: record.created_at,
        )

    def sweep_expired(self, now: Optional[datetime] = None) -> List[MatchRecord]:
        """Runs expire_if_due over every live match; returns the ones that expired."""
        now = now or utcnow()
        with self._table_lock:
            live_ids = [
                match_id for match_id, slot in self._slots.items()
                if slot.record.state in LIVE_STATES
            ]

        expired = []
        for match_id in live_ids:
            record = self.expire_if_due(match_id, now)
            if record.state == MatchState.EXPIRED:
                expired.append(record)
        return expired

    def prune(self, before: datetime) -> int:
        """Drops terminal records created before `before`."""
        with self._table_lock:
            stale = [
                match_id for match_id, slot in self._slots.items()
                if slot.record.is_terminal and slot.record.created_at < before
            ]
            for match_id in stale:
                del self._slots[match_id]
        if stale:
            logger.debug(f"Pruned {len(stale)} closed matches")
        return len(stale)

    def reset(self) -> None:
        with self._table_lock:
            self._slots.clear()

    def __len__(self) -> int:
        with self._table_lock:
            return len(self._slots)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _slot(self, match_id: str) -> _Slot:
        with self._table_lock:
            slot = self._slots.get(match_id)
        if slot is None:
            raise MatchNotFound(f"Match {match_id} not found")
        return slot

    def _pair_match_ids(self, user_a: str, user_b: str) -> List[str]:
        pair = frozenset({user_a, user_b})
        with self._table_lock:
            return [
                match_id for match_id, slot in self._slots.items()
                if slot.record.state in LIVE_STATES and slot.record.parties == pair
            ]

    def _live_between(self, user_a: str, user_b: str, now: datetime) -> Optional[MatchRecord]:
        pair = frozenset({user_a, user_b})
        for slot in self._slots.values():
            record = slot.record
            if record.state in LIVE_STATES and record.parties == pair and not record.is_overdue(now):
                return record
        return None

    def _store(self, slot: _Slot, record: MatchRecord) -> MatchRecord:
        # caller holds slot.lock, so snapshots reach the archive in transition order
        slot.record = record
        self._write_through(record)
        return record

    def _notify(self, record: MatchRecord, notify: Callable[[MatchRecord], None]) -> None:
        try:
            notify(record)
        except Exception:
            logger.exception(f"Failed to notify {getattr(notify, '__name__', 'event')} for match {record.match_id}")

    def _write_through(self, record: MatchRecord) -> None:
        if self.archive is None:
            return
        try:
            self.archive.save(record)
        except Exception:
            logger.exception(f"Failed to archive match {record.match_id}")
