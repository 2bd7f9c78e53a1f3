from __future__ import annotations

from typing import Iterable
from sqlmodel import Session, select

from live_insights.models.transcript_segment import TranscriptSegment


class TranscriptsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add_segments(self, segments: Iterable[TranscriptSegment]) -> list[TranscriptSegment]:
        saved = list(segments)
        for seg in saved:
            self.session.add(seg)
        self.session.commit()
        for seg in saved:
            self.session.refresh(seg)
        return saved

    def list_by_session(self, session_id: str) -> list[TranscriptSegment]:
        # Arrival order; the id breaks ties between segments inserted in one batch
        statement = (
            select(TranscriptSegment)
            .where(TranscriptSegment.session_id == session_id)
            .order_by(TranscriptSegment.created_at.asc(), TranscriptSegment.id.asc())
        )
        return list(self.session.exec(statement))
