"""
Event model with moderation state.

Key design decisions:
- `state` moves PENDING -> PUBLISHED | CANCELED; see services/event_service.py
- `participant_limit` of 0 means unlimited
- `version` is bumped by every admission write and lets concurrent
  registrations detect each other (optimistic locking)
- `confirmed_requests` and `views` are not columns: the stats layer fills
  them on read
"""

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from eventhub.db.base import Base, TimestampMixin, UTCDateTime


class EventState(str, enum.Enum):
    PENDING = "PENDING"
    PUBLISHED = "PUBLISHED"
    CANCELED = "CANCELED"


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(120), nullable=False)
    annotation = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    event_date = Column(UTCDateTime(), nullable=False)
    location_lat = Column(Float, nullable=False)
    location_lon = Column(Float, nullable=False)
    paid = Column(Boolean, nullable=False, default=False)
    participant_limit = Column(Integer, nullable=False, default=0)
    request_moderation = Column(Boolean, nullable=False, default=True)
    published_on = Column(UTCDateTime(), nullable=True)
    state = Column(
        SAEnum(EventState, native_enum=False, length=20, name="event_state"),
        nullable=False,
        default=EventState.PENDING,
    )
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    initiator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    category = relationship("Category", lazy="joined")
    initiator = relationship("User", lazy="joined")

    # Derived on read, never persisted
    confirmed_requests = 0
    views = 0

    __table_args__ = (
        CheckConstraint("participant_limit >= 0", name="check_participant_limit_non_negative"),
        # Public listings always filter by state and order by date
        Index("ix_events_state_date", "state", "event_date"),
    )

    @property
    def location(self) -> dict:
        return {"lat": self.location_lat, "lon": self.location_lon}

    @property
    def is_unlimited(self) -> bool:
        return self.participant_limit == 0

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, state={self.state})>"
