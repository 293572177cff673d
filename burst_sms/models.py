"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from burst_sms.storage import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Direction(str, enum.Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageStatus(str, enum.Enum):
    """
    Outbound records move queued -> sent | failed exactly once.
    Inbound records are created as received and never change.
    """
    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"
    RECEIVED = "received"


class LeadMessageStatus(str, enum.Enum):
    QUEUED = "queued"
    SENT = "sent"


class OptInState(enum.Enum):
    """Tri-state opt-in flag. UNDECIDED moves to one of the others, once."""
    UNDECIDED = "undecided"
    OPTED_IN = "opted_in"
    OPTED_OUT = "opted_out"

    @classmethod
    def from_flag(cls, flag: Optional[bool]) -> "OptInState":
        if flag is None:
            return cls.UNDECIDED
        return cls.OPTED_IN if flag else cls.OPTED_OUT

    @property
    def is_decided(self) -> bool:
        return self is not OptInState.UNDECIDED


class MessageRecord(Base):
    """
    One row per send/receive attempt for a lead.

    Table: lead_texts
    """
    __tablename__ = "lead_texts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String, nullable=False, index=True)
    lead_id = Column(Integer, nullable=True, index=True)
    number = Column(String, nullable=False)        # lead's phone
    from_number = Column(String, nullable=False)   # organization's sending number
    message = Column(Text, nullable=False, default="")
    direction = Column(String, nullable=False)
    status = Column(String, nullable=False, index=True)
    telnyx_message_id = Column(String, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<MessageRecord id={self.id} {self.direction}/{self.status} org={self.org_id}>"


class Lead(Base):
    """
    Table: leads

    opt_in is a nullable boolean in the database; use opt_in_state
    for the explicit three-way view.
    """
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String, nullable=False, index=True)
    phone = Column(String, nullable=False, index=True)
    opt_in = Column(Boolean, nullable=True)
    message_status = Column(String, nullable=True)

    @property
    def opt_in_state(self) -> OptInState:
        return OptInState.from_flag(self.opt_in)


class ReplyPrompt(Base):
    """Table: lead_text_prompt - auto-reply text per organization."""
    __tablename__ = "lead_text_prompt"

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String, nullable=False, index=True)
    reply_message = Column(Text, nullable=True)
