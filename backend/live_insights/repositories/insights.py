from __future__ import annotations

from typing import Iterable
from sqlalchemy import func
from sqlmodel import Session, select

from live_insights.models.insight import Insight


class InsightsRepository:
    """Row-level access to ``ai_insights``.

    Write helpers only stage changes (add/delete + flush); the caller owns the
    transaction so a whole version can be committed or rolled back as one unit.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def latest_version(self, session_id: str) -> int:
        statement = select(func.max(Insight.transcript_version)).where(Insight.session_id == session_id)
        value = self.session.exec(statement).first()
        return int(value or 0)

    def list_by_version(self, session_id: str, version: int) -> list[Insight]:
        statement = (
            select(Insight)
            .where(Insight.session_id == session_id, Insight.transcript_version == version)
            .order_by(Insight.id.asc())
        )
        return list(self.session.exec(statement))

    def list_current(self, session_id: str) -> list[Insight]:
        version = self.latest_version(session_id)
        if version == 0:
            return []
        return self.list_by_version(session_id, version)

    def list_by_session(self, session_id: str) -> list[Insight]:
        statement = (
            select(Insight)
            .where(Insight.session_id == session_id)
            .order_by(Insight.transcript_version.asc(), Insight.id.asc())
        )
        return list(self.session.exec(statement))

    def last_processed_word_count(self, session_id: str) -> int:
        rows = self.list_current(session_id)
        if not rows:
            return 0
        return max(int(r.last_processed_word_count or 0) for r in rows)

    def stage_delete_for_session(self, session_id: str) -> int:
        to_delete = self.list_by_session(session_id)
        for row in to_delete:
            self.session.delete(row)
        self.session.flush()
        return len(to_delete)

    def stage_delete_version(self, session_id: str, version: int) -> int:
        to_delete = self.list_by_version(session_id, version)
        for row in to_delete:
            self.session.delete(row)
        self.session.flush()
        return len(to_delete)

    def stage_add_many(self, rows: Iterable[Insight]) -> list[Insight]:
        staged = list(rows)
        self.session.add_all(staged)
        self.session.flush()
        return staged

