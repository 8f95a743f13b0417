"""
Purpose: Composition root for the matching engine (the "one object" callers hold).
What it does:
Owns one PresenceRegistry, one MatchLifecycle, one CandidateGenerator and one
ProximityPairDetector, and exposes the operations the UI and the real-time
transport call. Inbound transport events go through the same methods as
direct calls.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger

from halfway.core import config
from halfway.core.errors import (
    CandidateNotFound,
    InvalidMatchRequest,
    TargetUnavailable,
    Unauthorized,
)
from halfway.core.match_config import CLOSED_MATCH_RETENTION
from halfway.services.candidates import CandidateGenerator, CandidateSet
from halfway.services.geo import Coordinate
from halfway.services.match_archive import MatchArchive, SqlMatchArchive
from halfway.services.match_lifecycle import MatchDecision, MatchLifecycle, MatchRecord
from halfway.services.notifier import LoggingNotifier, MatchNotifier, WebhookNotifier
from halfway.services.place_search import HttpPlaceSearch, PlaceSearch
from halfway.services.presence_registry import PresenceRegistry, UserPresence, utcnow
from halfway.services.proximity import ProximityPair, ProximityPairDetector


@dataclass(frozen=True)
class MatchRequestResult:
    match: MatchRecord
    candidates: CandidateSet


class MatchEngine:
    def __init__(
        self,
        registry: Optional[PresenceRegistry] = None,
        lifecycle: Optional[MatchLifecycle] = None,
        generator: Optional[CandidateGenerator] = None,
        detector: Optional[ProximityPairDetector] = None,
    ):
        self.registry = registry or PresenceRegistry()
        self.lifecycle = lifecycle or MatchLifecycle()
        self.generator = generator or CandidateGenerator()
        self.detector = detector or ProximityPairDetector()

        # latest options offered per match, so responders can pick by id
        self._candidates: Dict[str, CandidateSet] = {}
        self._candidates_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------

    def report_location(
        self,
        user_id: str,
        coordinate: Coordinate,
        now: Optional[datetime] = None,
        display_name: Optional[str] = None,
        avatar_ref: Optional[str] = None,
    ) -> UserPresence:
        """Periodic self-location report: the user is online where they say they are."""
        return self.registry.upsert(
            user_id,
            coordinate,
            is_online=True,
            last_seen=now or utcnow(),
            display_name=display_name,
            avatar_ref=avatar_ref,
        )

    def go_offline(self, user_id: str, now: Optional[datetime] = None) -> Optional[UserPresence]:
        return self.registry.mark_offline(user_id, now or utcnow())

    def get_presence_snapshot(self) -> List[UserPresence]:
        return self.registry.snapshot()

    def detect_nearby_pairs(self, now: Optional[datetime] = None) -> List[ProximityPair]:
        return self.detector.detect(self.registry.active(now))

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def create_match_request(
        self,
        requester_id: str,
        target_id: str,
        activity: str,
        now: Optional[datetime] = None,
    ) -> MatchRequestResult:
        now = now or utcnow()
        if requester_id == target_id:
            raise InvalidMatchRequest("Cannot request a match with yourself")

        if not self.registry.is_available(target_id, now):
            raise TargetUnavailable(f"User {target_id} is not online")

        requester = self.registry.get(requester_id)
        if requester is None:
            raise TargetUnavailable(f"No known location for requester {requester_id}")
        target = self.registry.get(target_id)

        match = self.lifecycle.create(requester_id, target_id, activity, now)
        candidates = self.generator.generate(requester.coordinate, target.coordinate, activity)
        self._remember(match.match_id, candidates)

        return MatchRequestResult(match=match, candidates=candidates)

    def respond_to_match(
        self,
        match_id: str,
        by: str,
        decision: MatchDecision | str,
        candidate_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> MatchRecord:
        candidate = None
        if candidate_id is not None:
            offered = self._offered(match_id)
            candidate = offered.find(candidate_id) if offered else None
            if candidate is None:
                raise CandidateNotFound(f"Meeting point {candidate_id} was not offered for match {match_id}")

        return self.lifecycle.respond(match_id, by, decision, candidate=candidate, now=now)

    def confirm_arrival(self, match_id: str, by: str, now: Optional[datetime] = None) -> MatchRecord:
        return self.lifecycle.confirm_arrival(match_id, by, now)

    def cancel_match(self, match_id: str, by: str, now: Optional[datetime] = None) -> MatchRecord:
        return self.lifecycle.cancel(match_id, by, now)

    def get_match(self, match_id: str, by: Optional[str] = None) -> MatchRecord:
        record = self.lifecycle.get(match_id)
        if by is not None and by not in record.parties:
            raise Unauthorized(f"{by} is not a party of match {match_id}")
        return record

    def get_candidates(self, match_id: str, by: str) -> CandidateSet:
        """Recomputes the options from both parties' current positions."""
        record = self.get_match(match_id, by)

        requester = self.registry.get(record.requester_id)
        target = self.registry.get(record.target_id)
        if requester is None or target is None:
            offered = self._offered(match_id)
            if offered is not None:
                return offered
            missing = record.requester_id if requester is None else record.target_id
            raise TargetUnavailable(f"No known location for {missing}")

        candidates = self.generator.generate(requester.coordinate, target.coordinate, record.activity)
        self._remember(match_id, candidates)
        return candidates

    def suggest_meeting_points(self, location_a: Coordinate, location_b: Coordinate, activity: str) -> CandidateSet:
        return self.generator.generate(location_a, location_b, activity)

    # ------------------------------------------------------------------
    # Inbound real-time events
    # ------------------------------------------------------------------

    def handle_presence_event(self, event: Mapping[str, Any]) -> Optional[UserPresence]:
        """
        {userId, coordinate: {latitude, longitude}, isOnline, timestamp}
        An offline event without coordinates keeps the last known position.
        """
        user_id = event["userId"]
        timestamp = _parse_timestamp(event.get("timestamp"))

        is_online = bool(event.get("isOnline", True))
        raw = event.get("coordinate")
        if not is_online and raw is None:
            return self.registry.mark_offline(user_id, timestamp)

        if raw is None:
            raise InvalidMatchRequest(f"Presence event for {user_id} has no coordinate")
        coordinate = Coordinate(float(raw["latitude"]), float(raw["longitude"]))

        return self.registry.upsert(
            user_id,
            coordinate,
            is_online=is_online,
            last_seen=timestamp,
            display_name=event.get("displayName"),
            avatar_ref=event.get("avatarRef"),
        )

    def handle_match_event(self, event: Mapping[str, Any]) -> MatchRecord:
        """{type: respond|confirm|cancel|expire, matchId, payload: {...}}"""
        event_type = event.get("type")
        match_id = event["matchId"]
        payload = event.get("payload") or {}

        logger.debug(f"Inbound match event {event_type} for {match_id}")

        if event_type == "expire":
            return self.lifecycle.expire_if_due(match_id)

        by = payload.get("by")
        if not by:
            raise InvalidMatchRequest(f"Match event {event_type} for {match_id} has no acting user")

        if event_type == "respond":
            return self.respond_to_match(
                match_id,
                by,
                payload.get("decision"),
                candidate_id=payload.get("candidateId"),
            )
        if event_type == "confirm":
            return self.confirm_arrival(match_id, by)
        if event_type == "cancel":
            return self.cancel_match(match_id, by)

        raise InvalidMatchRequest(f"Unknown match event type: {event_type}")

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Expires overdue requests and forgets long-closed matches."""
        now = now or utcnow()
        expired = self.lifecycle.sweep_expired(now)
        pruned = self.lifecycle.prune(now - CLOSED_MATCH_RETENTION)

        with self._candidates_lock:
            for match_id in list(self._candidates):
                try:
                    self.lifecycle.get(match_id)
                except KeyError:
                    del self._candidates[match_id]
        return len(expired) + pruned

    def reset(self) -> None:
        self.registry.reset()
        self.lifecycle.reset()
        with self._candidates_lock:
            self._candidates.clear()

    def dispose(self) -> None:
        self.reset()
        self.generator.close()
        for collaborator in (self.generator.place_search, self.lifecycle.notifier):
            close = getattr(collaborator, "close", None)
            if callable(close):
                close()

    def _remember(self, match_id: str, candidates: CandidateSet) -> None:
        with self._candidates_lock:
            self._candidates[match_id] = candidates

    def _offered(self, match_id: str) -> Optional[CandidateSet]:
        with self._candidates_lock:
            return self._candidates.get(match_id)


def _parse_timestamp(value: Any) -> datetime:
    if value is None:
        return utcnow()
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def build_engine(
    place_search: Optional[PlaceSearch] = None,
    notifier: Optional[MatchNotifier] = None,
    archive: Optional[MatchArchive] = None,
) -> MatchEngine:
    """Wires collaborators from config unless they are passed in."""
    if place_search is None and config.PLACE_SEARCH_URL:
        place_search = HttpPlaceSearch(
            config.PLACE_SEARCH_URL,
            api_key=config.PLACE_SEARCH_API_KEY,
            timeout=config.PLACE_SEARCH_TIMEOUT_SECONDS,
        )
    if notifier is None:
        notifier = (
            WebhookNotifier(config.TRANSPORT_WEBHOOK_URL, timeout=config.TRANSPORT_TIMEOUT_SECONDS)
            if config.TRANSPORT_WEBHOOK_URL
            else LoggingNotifier()
        )
    if archive is None and config.DATABASE_URL:
        archive = SqlMatchArchive.from_url(config.DATABASE_URL)

    logger.info(
        f"Engine built: place_search={type(place_search).__name__ if place_search else None}, "
        f"notifier={type(notifier).__name__}, archive={type(archive).__name__ if archive else None}"
    )

    return MatchEngine(
        registry=PresenceRegistry(reject_stale_updates=config.PRESENCE_REJECT_STALE),
        lifecycle=MatchLifecycle(notifier=notifier, archive=archive),
        generator=CandidateGenerator(place_search, timeout_s=config.PLACE_SEARCH_TIMEOUT_SECONDS),
        detector=ProximityPairDetector(),
    )
