from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from live_insights.errors import PersistenceError, VersionConflictError
from live_insights.models.insight import Insight, InsightType
from live_insights.repositories.insights import InsightsRepository
from live_insights.services.insight_synthesizer import InsightItem, InsightSet, PreviousInsights
from live_insights.services.threshold_policy import GenerationMode

logger = logging.getLogger("live_insights.version_store")


@dataclass
class PriorState:
    last_version: int = 0
    last_processed_word_count: int = 0
    previous: PreviousInsights = field(default_factory=PreviousInsights)


@dataclass(frozen=True)
class PersistResult:
    version: int
    rows_written: int
    rows_deleted: int
    deletion_failed: bool


def rows_to_insight_set(rows: List[Insight]) -> InsightSet:
    out = InsightSet()
    for row in rows:
        item = InsightItem(text=row.content, timestamp=row.timestamp_seconds)
        if row.insight_type == InsightType.SUMMARY.value:
            out.summary = row.content
        elif row.insight_type == InsightType.KEY_POINT.value:
            out.key_points.append(item)
        elif row.insight_type == InsightType.ACTION_ITEM.value:
            out.action_items.append(item)
        elif row.insight_type == InsightType.QUOTE.value:
            out.notable_quotes.append(item)
    return out


class InsightVersionStore:
    """Reads the current insight snapshot and replaces it with a new version.

    Only the current version is retained: a FULL run (or any run for a
    completed session) clears every row of the session, an INCREMENTAL run
    clears the version it supersedes.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.repo = InsightsRepository(session)

    def load_state(self, session_id: str) -> PriorState:
        rows = self.repo.list_current(session_id)
        if not rows:
            return PriorState()
        current = rows_to_insight_set(rows)
        return PriorState(
            last_version=int(rows[0].transcript_version),
            last_processed_word_count=max(int(r.last_processed_word_count or 0) for r in rows),
            previous=PreviousInsights(
                summary=current.summary,
                key_points=[i.text for i in current.key_points],
                action_items=[i.text for i in current.action_items],
                quotes=[i.text for i in current.notable_quotes],
            ),
        )

    def current_insights(self, session_id: str) -> List[Insight]:
        return self.repo.list_current(session_id)

    def persist(
        self,
        *,
        session_id: str,
        mode: GenerationMode,
        last_version: int,
        current_word_count: int,
        session_status: str,
        insights: InsightSet,
    ) -> PersistResult:
        new_version = last_version + 1

        # Catches runs that raced past the in-process session lock. Another
        # process can still commit between this read and our commit undetected.
        stored_version = self.repo.latest_version(session_id)
        if stored_version != last_version:
            self.session.rollback()
            logger.warning(
                "version conflict session_id=%s expected=%d stored=%d",
                session_id,
                last_version,
                stored_version,
            )
            raise VersionConflictError()

        full_replace = mode is GenerationMode.FULL or session_status == "completed"
        deletion_failed = False
        rows_deleted = 0
        try:
            if full_replace:
                rows_deleted = self.repo.stage_delete_for_session(session_id)
            elif last_version > 0:
                rows_deleted = self.repo.stage_delete_version(session_id, last_version)
        except SQLAlchemyError as e:
            # The new version is still written; the leftover rows are flagged via deletion_failed
            self.session.rollback()
            deletion_failed = True
            rows_deleted = 0
            logger.error(
                "insight deletion failed session_id=%s full_replace=%s error=%s",
                session_id,
                full_replace,
                type(e).__name__,
            )

        rows = build_rows(
            session_id=session_id,
            version=new_version,
            current_word_count=current_word_count,
            session_status=session_status,
            insights=insights,
        )
        try:
            self.repo.stage_add_many(rows)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(
                "insight insert failed session_id=%s version=%d rows=%d error=%s",
                session_id,
                new_version,
                len(rows),
                type(e).__name__,
            )
            raise PersistenceError() from e

        logger.info(
            "insights persisted session_id=%s version=%d mode=%s rows=%d deleted=%d deletion_failed=%s",
            session_id,
            new_version,
            mode.value,
            len(rows),
            rows_deleted,
            deletion_failed,
        )
        return PersistResult(
            version=new_version,
            rows_written=len(rows),
            rows_deleted=rows_deleted,
            deletion_failed=deletion_failed,
        )


def build_rows(
    *,
    session_id: str,
    version: int,
    current_word_count: int,
    session_status: str,
    insights: InsightSet,
) -> List[Insight]:
    now = datetime.utcnow()

    def _row(kind: InsightType, content: str, ts: float | None = None) -> Insight:
        return Insight(
            session_id=session_id,
            insight_type=kind.value,
            content=content,
            timestamp_seconds=ts,
            last_processed_word_count=current_word_count,
            transcript_version=version,
            session_status=session_status,
            created_at=now,
            updated_at=now,
        )

    # The summary row is always written so every version has at least one row
    rows: List[Insight] = [_row(InsightType.SUMMARY, insights.summary)]
    rows += [_row(InsightType.KEY_POINT, i.text, i.timestamp) for i in insights.key_points]
    rows += [_row(InsightType.ACTION_ITEM, i.text, i.timestamp) for i in insights.action_items]
    rows += [_row(InsightType.QUOTE, i.text, i.timestamp) for i in insights.notable_quotes]
    return rows
