"""
User model. Users are referenced as event initiators and requesters.
"""

from sqlalchemy import Column, Integer, String

from eventhub.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(250), nullable=False)
    email = Column(String(254), unique=True, index=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
