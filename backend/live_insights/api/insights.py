from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from live_insights.deps import get_caller, get_generator, get_policy_config, get_session, get_settings
from live_insights.config import Settings
from live_insights.errors import NotFoundError, UnauthorizedError
from live_insights.repositories.sessions import SessionsRepository
from live_insights.services.access_control import Caller
from live_insights.services.insight_pipeline import InsightPipeline, InsightRequest
from live_insights.services.insight_synthesizer import InsightSynthesizer
from live_insights.services.llm_client import TextGenerator
from live_insights.services.threshold_policy import PolicyConfig
from live_insights.services.version_store import InsightVersionStore, rows_to_insight_set


router = APIRouter(tags=["insights"])


class SegmentHint(BaseModel):
    start_time: Optional[float] = None
    text: str = ""


class GenerateInsightsRequest(BaseModel):
    session_id: Optional[str] = None
    transcript_text: Optional[str] = None
    session_status: Optional[str] = None
    transcript_segments: List[SegmentHint] = Field(default_factory=list)
    timeout_seconds: Optional[float] = Field(default=None, gt=0)


def build_pipeline(
    session: Session,
    generator: TextGenerator,
    config: PolicyConfig,
    settings: Settings,
) -> InsightPipeline:
    return InsightPipeline(
        session,
        InsightSynthesizer(generator),
        config,
        default_timeout=settings.synthesis_timeout_seconds,
    )


@router.post("/insights/generate")
def generate_insights(
    body: GenerateInsightsRequest,
    session: Session = Depends(get_session),
    caller: Optional[Caller] = Depends(get_caller),
    generator: TextGenerator = Depends(get_generator),
    config: PolicyConfig = Depends(get_policy_config),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    pipeline = build_pipeline(session, generator, config, settings)
    outcome = pipeline.run(
        InsightRequest(
            session_id=body.session_id,
            transcript_text=body.transcript_text,
            session_status=body.session_status,
            segments=[s.model_dump() for s in body.transcript_segments],
            timeout=body.timeout_seconds,
        ),
        caller,
    )
    return outcome.to_dict()


@router.get("/sessions/{session_id}/insights")
def read_current_insights(
    session_id: str,
    session: Session = Depends(get_session),
    caller: Optional[Caller] = Depends(get_caller),
) -> Dict[str, Any]:
    # Open to attendees
    if caller is None:
        raise UnauthorizedError()
    if SessionsRepository(session).get(session_id) is None:
        raise NotFoundError()
    rows = InsightVersionStore(session).current_insights(session_id)
    return {
        "session_id": session_id,
        "version": rows[0].transcript_version if rows else 0,
        "last_processed_word_count": max((r.last_processed_word_count for r in rows), default=0),
        "insights": rows_to_insight_set(rows).to_dict(),
    }
