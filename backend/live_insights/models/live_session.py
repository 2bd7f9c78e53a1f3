from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4
from sqlmodel import SQLModel, Field


class SessionStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class LiveSession(SQLModel, table=True):
    __tablename__ = "sessions"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    title: str = Field(default="Conference Session")
    status: str = Field(default=SessionStatus.DRAFT.value)
    speaker_name: Optional[str] = None
    speaker_email: Optional[str] = Field(default=None, index=True)
    speaker_user_id: Optional[str] = Field(default=None, index=True)
    organization_id: Optional[str] = Field(default=None, index=True)
    track_name: Optional[str] = None
    conference_name: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
