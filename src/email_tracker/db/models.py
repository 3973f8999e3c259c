"""SQLAlchemy models for the aggregator store."""

from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, BigInteger, DateTime, JSON, Index

from .database import Base


class TrackingSessionRecord(Base):
    """One tracking session stored as its wire form.

    ``version`` is bumped on every write; writers compare-and-swap on it so
    concurrent updates of the same session never overwrite each other.
    """

    __tablename__ = "tracking_sessions"

    id = Column(String(64), primary_key=True)
    payload_json = Column(JSON, nullable=False)
    status = Column(String(16), nullable=False, default="sent")
    sent_timestamp = Column(BigInteger, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_tracking_sessions_status", "status"),
        Index("ix_tracking_sessions_sent_timestamp", "sent_timestamp"),
    )

    def __repr__(self) -> str:
        return f"<TrackingSessionRecord(id={self.id}, status={self.status}, version={self.version})>"
