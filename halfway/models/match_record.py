from sqlalchemy import Column, String, Float, DateTime, Index
from sqlalchemy.sql import func

from halfway.core.db import Base


class MatchRow(Base):
    __tablename__ = "match_records"

    match_id = Column(String, primary_key=True, index=True)
    requester_id = Column(String, nullable=False, index=True)
    target_id = Column(String, nullable=False, index=True)
    activity = Column(String, nullable=False)
    state = Column(String, nullable=False)

    # comma separated user ids
    confirmed_by = Column(String, nullable=False, default="")

    selected_candidate_id = Column(String, nullable=True)
    selected_candidate_name = Column(String, nullable=True)
    selected_lat = Column(Float, nullable=True)
    selected_lng = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_match_records_pair", "requester_id", "target_id"),
    )
