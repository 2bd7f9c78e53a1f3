from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session
import logging

from live_insights.api.insights import build_pipeline
from live_insights.config import Settings
from live_insights.deps import get_caller, get_generator, get_policy_config, get_session, get_settings
from live_insights.errors import InsightsError, NotFoundError, UnauthorizedError
from live_insights.models.live_session import SessionStatus
from live_insights.models.transcript_segment import TranscriptSegment
from live_insights.repositories.sessions import SessionsRepository
from live_insights.repositories.transcripts import TranscriptsRepository
from live_insights.services.access_control import Caller, authorize_session
from live_insights.services.llm_client import TextGenerator
from live_insights.services.session_summary import SessionSummarizer
from live_insights.services.threshold_policy import PolicyConfig
from live_insights.services.transcript_accumulator import accumulate
from live_insights.services.transcript_qa import answer_question

logger = logging.getLogger("live_insights.api")


router = APIRouter(prefix="/sessions", tags=["sessions"])


class SegmentIn(BaseModel):
    text: str
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    confidence: Optional[float] = None
    speaker_label: Optional[str] = None


class AppendSegmentsRequest(BaseModel):
    segments: List[SegmentIn] = Field(default_factory=list)
    auto_generate: bool = True


class SummaryRequest(BaseModel):
    duration_minutes: Optional[int] = None


class ConversationTurn(BaseModel):
    role: str
    content: str


class QuestionRequest(BaseModel):
    question: str
    conversation_history: List[ConversationTurn] = Field(default_factory=list)


def _stored_transcript(session: Session, session_id: str) -> str:
    segments = TranscriptsRepository(session).list_by_session(session_id)
    return accumulate(seg.text for seg in segments).full_text


@router.post("/{session_id}/segments")
def append_segments(
    session_id: str,
    body: AppendSegmentsRequest,
    session: Session = Depends(get_session),
    caller: Optional[Caller] = Depends(get_caller),
    generator: TextGenerator = Depends(get_generator),
    config: PolicyConfig = Depends(get_policy_config),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    authorize_session(session, caller, session_id)

    rows = [
        TranscriptSegment(
            session_id=session_id,
            text=seg.text.strip(),
            start_time=seg.start_time,
            end_time=seg.end_time,
            confidence=seg.confidence,
            speaker_label=seg.speaker_label,
        )
        for seg in body.segments
        if seg.text.strip()
    ]
    repo = TranscriptsRepository(session)
    if rows:
        repo.add_segments(rows)
    transcript = accumulate(seg.text for seg in repo.list_by_session(session_id))

    pipeline_out: Optional[Dict[str, Any]] = None
    if body.auto_generate and len(transcript.full_text) >= config.min_transcript_length:
        # Segments are already stored; a failed generation is reported, not raised
        try:
            outcome = build_pipeline(session, generator, config, settings).run_for_session(session_id, caller)
            pipeline_out = outcome.to_dict()
        except InsightsError as e:
            logger.warning("auto insight run failed session_id=%s code=%s", session_id, e.code)
            pipeline_out = {"error": e.message, "code": e.code}

    return {
        "segments_added": len(rows),
        "word_count": transcript.word_count,
        "pipeline": pipeline_out,
    }


@router.post("/{session_id}/complete")
def complete_session(
    session_id: str,
    session: Session = Depends(get_session),
    caller: Optional[Caller] = Depends(get_caller),
    generator: TextGenerator = Depends(get_generator),
    config: PolicyConfig = Depends(get_policy_config),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    live_session = authorize_session(session, caller, session_id)
    SessionsRepository(session).update_status(live_session, SessionStatus.COMPLETED.value)
    logger.info("session completed session_id=%s", session_id)

    # The status change is committed; the final run is reported, not raised
    pipeline_out: Optional[Dict[str, Any]] = None
    if len(_stored_transcript(session, session_id)) >= config.min_transcript_length:
        try:
            outcome = build_pipeline(session, generator, config, settings).run_for_session(session_id, caller)
            pipeline_out = outcome.to_dict()
        except InsightsError as e:
            logger.warning("final insight run failed session_id=%s code=%s", session_id, e.code)
            pipeline_out = {"error": e.message, "code": e.code}
    return {"status": SessionStatus.COMPLETED.value, "pipeline": pipeline_out}


@router.post("/{session_id}/summary")
def generate_session_summary(
    session_id: str,
    body: Optional[SummaryRequest] = None,
    session: Session = Depends(get_session),
    caller: Optional[Caller] = Depends(get_caller),
    generator: TextGenerator = Depends(get_generator),
    config: PolicyConfig = Depends(get_policy_config),
    settings: Settings = Depends(get_settings),
) -> Dict[str, str]:
    live_session = authorize_session(session, caller, session_id)
    summary = SessionSummarizer(generator, config).summarize(
        live_session,
        _stored_transcript(session, session_id),
        duration_minutes=body.duration_minutes if body else None,
        timeout=settings.synthesis_timeout_seconds,
    )
    return {"summary": summary}


@router.post("/{session_id}/qa")
def ask_question(
    session_id: str,
    body: QuestionRequest,
    session: Session = Depends(get_session),
    caller: Optional[Caller] = Depends(get_caller),
    generator: TextGenerator = Depends(get_generator),
    config: PolicyConfig = Depends(get_policy_config),
    settings: Settings = Depends(get_settings),
) -> Dict[str, str]:
    # Open to attendees
    if caller is None:
        raise UnauthorizedError()
    if SessionsRepository(session).get(session_id) is None:
        raise NotFoundError()
    answer = answer_question(
        generator,
        config,
        session_id=session_id,
        transcript=_stored_transcript(session, session_id),
        question=body.question,
        history=[t.model_dump() for t in body.conversation_history],
        timeout=settings.synthesis_timeout_seconds,
    )
    return {"answer": answer}
