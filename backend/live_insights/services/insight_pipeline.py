from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Union

from sqlmodel import Session

from live_insights.errors import ValidationError
from live_insights.repositories.transcripts import TranscriptsRepository
from live_insights.services import transcript_accumulator
from live_insights.services.access_control import AccessChecker, Caller, authorize_session
from live_insights.services.insight_synthesizer import InsightSet, InsightSynthesizer, SynthesisRequest
from live_insights.services.threshold_policy import (
    GenerationMode,
    PolicyConfig,
    evaluate,
    max_tokens_for,
    select_model,
)
from live_insights.services.version_store import InsightVersionStore

logger = logging.getLogger("live_insights.pipeline")

DEFAULT_SESSION_STATUS = "in_progress"
NO_OP_MESSAGE = "Not enough new content for update"

_locks: Dict[str, threading.Lock] = {}
_lock_users: Dict[str, int] = {}
_locks_guard = threading.Lock()


@contextmanager
def _session_lock(session_id: str) -> Iterator[None]:
    """Serialize runs for one session; the entry is dropped once nobody holds or awaits it."""
    with _locks_guard:
        lock = _locks.setdefault(session_id, threading.Lock())
        _lock_users[session_id] = _lock_users.get(session_id, 0) + 1
    try:
        with lock:
            yield
    finally:
        with _locks_guard:
            _lock_users[session_id] -= 1
            if not _lock_users[session_id]:
                del _lock_users[session_id]
                del _locks[session_id]


@dataclass
class InsightRequest:
    session_id: Any
    transcript_text: Any
    session_status: Optional[str] = None
    segments: List[Any] = field(default_factory=list)
    timeout: Optional[float] = None


@dataclass(frozen=True)
class NoOpResult:
    current_words: int
    new_words: int
    threshold: int
    message: str = NO_OP_MESSAGE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "current_words": self.current_words,
            "new_words": self.new_words,
            "threshold": self.threshold,
        }


@dataclass(frozen=True)
class PipelineResult:
    mode: GenerationMode
    version: int
    words_processed: int
    new_words: int
    insights: InsightSet
    deletion_failed: bool = False
    success: bool = True

    @property
    def is_incremental(self) -> bool:
        return self.mode is GenerationMode.INCREMENTAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "is_incremental": self.is_incremental,
            "version": self.version,
            "words_processed": self.words_processed,
            "new_words": self.new_words,
            "insights": self.insights.to_dict(),
            "deletion_failed": self.deletion_failed,
        }


RunOutcome = Union[NoOpResult, PipelineResult]


class InsightPipeline:
    """One insight-generation invocation, end to end.

    validate → authorize → (per-session lock) load prior state → threshold
    gate → synthesize → persist. A failure at any step leaves the previous
    version current.
    """

    def __init__(
        self,
        session: Session,
        synthesizer: InsightSynthesizer,
        config: PolicyConfig,
        *,
        access_checker: Optional[AccessChecker] = None,
        default_timeout: Optional[float] = None,
    ) -> None:
        self.session = session
        self.synthesizer = synthesizer
        self.config = config
        self.access_checker = access_checker
        self.default_timeout = default_timeout
        self.store = InsightVersionStore(session)

    def run(self, request: InsightRequest, caller: Optional[Caller]) -> RunOutcome:
        if not isinstance(request.session_id, str) or not request.session_id.strip():
            raise ValidationError("Missing required field: session_id")
        if not isinstance(request.transcript_text, str):
            raise ValidationError("Missing required field: transcript_text")
        transcript_accumulator.validate_length(request.transcript_text, self.config)

        authorize_session(self.session, caller, request.session_id, self.access_checker)

        return self._execute(
            session_id=request.session_id,
            full_text=request.transcript_text,
            session_status=request.session_status or DEFAULT_SESSION_STATUS,
            segments=request.segments,
            timeout=request.timeout,
        )

    def run_for_session(
        self,
        session_id: str,
        caller: Optional[Caller],
        timeout: Optional[float] = None,
    ) -> RunOutcome:
        """Run against the stored segments of a session.

        Oversize transcripts are truncated for synthesis rather than rejected;
        the word count still covers the whole transcript.
        """
        live_session = authorize_session(self.session, caller, session_id, self.access_checker)
        segments = TranscriptsRepository(self.session).list_by_session(session_id)
        transcript = transcript_accumulator.accumulate(seg.text for seg in segments)
        if len(transcript.full_text) < self.config.min_transcript_length:
            raise ValidationError(
                f"Transcript too short: {len(transcript.full_text)} characters "
                f"(minimum {self.config.min_transcript_length})"
            )
        return self._execute(
            session_id=session_id,
            full_text=transcript.full_text,
            session_status=live_session.status or DEFAULT_SESSION_STATUS,
            segments=segments,
            timeout=timeout,
        )

    def _execute(
        self,
        *,
        session_id: str,
        full_text: str,
        session_status: str,
        segments: List[Any],
        timeout: Optional[float],
    ) -> RunOutcome:
        started = time.monotonic()
        current_word_count = transcript_accumulator.count_words(full_text)

        with _session_lock(session_id):
            prior = self.store.load_state(session_id)
            decision = evaluate(
                current_word_count,
                prior.last_processed_word_count,
                session_status,
                self.config,
            )
            if not decision.triggered:
                logger.info(
                    "insights skipped session_id=%s words=%d new_words=%d threshold=%d",
                    session_id,
                    decision.current_word_count,
                    decision.new_word_count,
                    decision.threshold,
                )
                return NoOpResult(
                    current_words=decision.current_word_count,
                    new_words=decision.new_word_count,
                    threshold=decision.threshold,
                )

            mode = decision.mode or GenerationMode.FULL
            if mode is GenerationMode.INCREMENTAL:
                text_slice = transcript_accumulator.new_words_slice(full_text, prior.last_processed_word_count)
            else:
                text_slice = full_text
            model = select_model(decision, self.config)
            logger.info(
                "insights triggered session_id=%s mode=%s last_version=%d words=%d new_words=%d model=%s",
                session_id,
                mode.value,
                prior.last_version,
                current_word_count,
                decision.new_word_count,
                model,
            )

            insights = self.synthesizer.synthesize(
                SynthesisRequest(
                    session_id=session_id,
                    mode=mode,
                    transcript_slice=transcript_accumulator.truncate(text_slice, self.config),
                    model=model,
                    max_tokens=max_tokens_for(mode, self.config),
                    previous=prior.previous if mode is GenerationMode.INCREMENTAL else None,
                    timestamp_reference=transcript_accumulator.timestamp_reference(segments),
                    timeout=timeout or self.default_timeout,
                )
            )

            persisted = self.store.persist(
                session_id=session_id,
                mode=mode,
                last_version=prior.last_version,
                current_word_count=current_word_count,
                session_status=session_status,
                insights=insights,
            )

        logger.info(
            "insights run complete session_id=%s version=%d mode=%s took=%.2fs",
            session_id,
            persisted.version,
            mode.value,
            time.monotonic() - started,
        )
        return PipelineResult(
            mode=mode,
            version=persisted.version,
            words_processed=current_word_count,
            new_words=decision.new_word_count,
            insights=insights,
            deletion_failed=persisted.deletion_failed,
        )
