from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field


class InsightType(str, Enum):
    SUMMARY = "summary"
    KEY_POINT = "key_point"
    ACTION_ITEM = "action_item"
    QUOTE = "quote"


class Insight(SQLModel, table=True):
    __tablename__ = "ai_insights"

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: str = Field(index=True, foreign_key="sessions.id")
    insight_type: str = Field(index=True)
    content: str
    timestamp_seconds: Optional[float] = None
    last_processed_word_count: int = 0
    transcript_version: int = Field(default=1, index=True)
    session_status: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
