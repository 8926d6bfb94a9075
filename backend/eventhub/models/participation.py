"""
ParticipationRequest model: one user's request to attend one event.

Key design decisions:
- Requests are never deleted, only moved to a terminal status
- Partial unique index allows at most one live (non-canceled) request per
  (requester, event); canceled requests do not block re-registration
"""

import enum

from sqlalchemy import Column, Enum as SAEnum, ForeignKey, Index, Integer, text

from eventhub.db.base import Base, TimestampMixin


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    CANCELED = "CANCELED"


_LIVE_ONLY = text("status <> 'CANCELED'")


class ParticipationRequest(Base, TimestampMixin):
    __tablename__ = "participation_requests"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(
        SAEnum(RequestStatus, native_enum=False, length=20, name="request_status"),
        nullable=False,
        default=RequestStatus.PENDING,
    )

    __table_args__ = (
        Index(
            "uq_live_request_per_requester_event",
            "requester_id",
            "event_id",
            unique=True,
            postgresql_where=_LIVE_ONLY,
            sqlite_where=_LIVE_ONLY,
        ),
        # Confirmed-count queries group by event and filter by status
        Index("ix_requests_event_status", "event_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<ParticipationRequest(id={self.id}, event={self.event_id}, "
            f"requester={self.requester_id}, status={self.status})>"
        )
