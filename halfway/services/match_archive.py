from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Protocol

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from halfway.core.db import init_db, make_engine, make_session_factory
from halfway.models.match_record import MatchRow

if TYPE_CHECKING:
    from halfway.services.match_lifecycle import MatchRecord


class MatchArchive(Protocol):
    def save(self, record: MatchRecord) -> None: ...


class SqlMatchArchive:
    """
    Write-through copy of every MatchRecord snapshot, keyed by match_id.
    The in-memory lifecycle stays the source of truth for the negotiation.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str) -> SqlMatchArchive:
        engine = make_engine(database_url)
        init_db(engine)
        return cls(make_session_factory(engine))

    def save(self, record: MatchRecord) -> None:
        candidate = record.selected_candidate
        row = MatchRow(
            match_id=record.match_id,
            requester_id=record.requester_id,
            target_id=record.target_id,
            activity=record.activity,
            state=record.state.value,
            confirmed_by=",".join(sorted(record.confirmed_by)),
            selected_candidate_id=candidate.id if candidate else None,
            selected_candidate_name=candidate.name if candidate else None,
            selected_lat=candidate.coordinate.latitude if candidate else None,
            selected_lng=candidate.coordinate.longitude if candidate else None,
            created_at=record.created_at,
            responded_at=record.responded_at,
            expires_at=record.expires_at,
        )

        db: Session = self.session_factory()
        try:
            db.merge(row)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.debug(f"Archived match {record.match_id} ({record.state.value})")

    def load(self, match_id: str) -> Optional[MatchRow]:
        db: Session = self.session_factory()
        try:
            return db.query(MatchRow).filter(MatchRow.match_id == match_id).first()
        finally:
            db.close()
