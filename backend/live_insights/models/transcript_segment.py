from __future__ import annotations

from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field


class TranscriptSegment(SQLModel, table=True):
    __tablename__ = "transcript_segments"

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: str = Field(index=True, foreign_key="sessions.id")
    text: str
    start_time: Optional[float] = None  # seconds from session start
    end_time: Optional[float] = None
    confidence: Optional[float] = None
    speaker_label: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
