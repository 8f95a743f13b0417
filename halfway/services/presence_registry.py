"""
Purpose: Last-known location and online status of every user the engine has
heard about, fed by inbound real-time events and periodic self reports.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from loguru import logger

from halfway.core.match_config import PRESENCE_FRESHNESS
from halfway.services.geo import Coordinate


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class UserPresence:
    user_id: str
    coordinate: Coordinate
    is_online: bool
    last_seen: datetime
    display_name: str = ""
    avatar_ref: str = ""

    def is_fresh(self, now: datetime, freshness: timedelta = PRESENCE_FRESHNESS) -> bool:
        return now - self.last_seen <= freshness


class PresenceRegistry:
    """
    In-memory presence table.

    Stored values are frozen, so get()/snapshot() can hand them out without
    copying; writers swap whole entries under a single registry lock.

    With reject_stale_updates on, an update carrying an older last_seen than
    the stored entry is dropped (transports may deliver out of order). Off,
    the last update to arrive wins.
    """

    def __init__(self, freshness: timedelta = PRESENCE_FRESHNESS, reject_stale_updates: bool = True):
        self.freshness = freshness
        self.reject_stale_updates = reject_stale_updates
        self._lock = threading.RLock()
        self._presences: Dict[str, UserPresence] = {}

    # --- Mutation ---

    def upsert(
        self,
        user_id: str,
        coordinate: Coordinate,
        is_online: bool,
        last_seen: Optional[datetime] = None,
        display_name: Optional[str] = None,
        avatar_ref: Optional[str] = None,
    ) -> UserPresence:
        last_seen = last_seen or utcnow()

        with self._lock:
            current = self._presences.get(user_id)
            if current is not None and self._is_stale(current, last_seen):
                return current

            presence = UserPresence(
                user_id=user_id,
                coordinate=coordinate,
                is_online=is_online,
                last_seen=last_seen,
                display_name=display_name if display_name is not None else (current.display_name if current else ""),
                avatar_ref=avatar_ref if avatar_ref is not None else (current.avatar_ref if current else ""),
            )
            self._presences[user_id] = presence

        if current is None:
            logger.debug(f"Presence created for {user_id}")
        return presence

    def mark_offline(self, user_id: str, last_seen: Optional[datetime] = None) -> Optional[UserPresence]:
        last_seen = last_seen or utcnow()

        with self._lock:
            current = self._presences.get(user_id)
            if current is None:
                return None
            if self._is_stale(current, last_seen):
                return current

            presence = replace(current, is_online=False, last_seen=last_seen)
            self._presences[user_id] = presence

        logger.debug(f"Presence offline for {user_id}")
        return presence

    def reset(self) -> None:
        with self._lock:
            self._presences.clear()

    # --- Reads ---

    def get(self, user_id: str) -> Optional[UserPresence]:
        with self._lock:
            return self._presences.get(user_id)

    def snapshot(self) -> List[UserPresence]:
        with self._lock:
            presences = list(self._presences.values())
        return sorted(presences, key=lambda presence: presence.user_id)

    def active(self, now: Optional[datetime] = None) -> List[UserPresence]:
        """Online users whose last report is within the freshness window."""
        now = now or utcnow()
        return [
            presence
            for presence in self.snapshot()
            if presence.is_online and presence.is_fresh(now, self.freshness)
        ]

    def is_available(self, user_id: str, now: Optional[datetime] = None) -> bool:
        presence = self.get(user_id)
        if presence is None:
            return False
        return presence.is_online and presence.is_fresh(now or utcnow(), self.freshness)

    def __len__(self) -> int:
        with self._lock:
            return len(self._presences)

    # --- Helpers ---

    def _is_stale(self, current: UserPresence, incoming_last_seen: datetime) -> bool:
        if not self.reject_stale_updates or incoming_last_seen >= current.last_seen:
            return False
        logger.debug(
            f"Dropping out-of-order presence for {current.user_id}: "
            f"{incoming_last_seen.isoformat()} < {current.last_seen.isoformat()}"
        )
        return True
