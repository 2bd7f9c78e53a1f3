from __future__ import annotations

import logging
from typing import Dict, List, Optional

from live_insights.errors import SynthesisError, ValidationError
from live_insights.services.llm_client import TextGenerator
from live_insights.services.threshold_policy import PolicyConfig
from live_insights.services.transcript_accumulator import truncate

logger = logging.getLogger("live_insights.qa")

QA_MAX_TOKENS = 1024
_ALLOWED_ROLES = {"user", "assistant"}


def build_qa_system_prompt(transcript: str) -> str:
    return (
        "You are an expert assistant analyzing a transcript. Your role is to answer "
        "questions about the content accurately and helpfully.\n\n"
        "Here is the full transcript for context:\n\n"
        f"{transcript}\n\n"
        "Answer questions based on this transcript. Be specific and cite relevant parts "
        "of the transcript when appropriate. If a question cannot be answered based on "
        "the transcript, explain that clearly."
    )


def _clean_history(history: Optional[List[Dict[str, str]]]) -> List[Dict[str, str]]:
    cleaned: List[Dict[str, str]] = []
    for turn in history or []:
        role = str(turn.get("role", "")).strip()
        content = str(turn.get("content", "")).strip()
        if role in _ALLOWED_ROLES and content:
            cleaned.append({"role": role, "content": content})
    return cleaned


def answer_question(
    generator: TextGenerator,
    config: PolicyConfig,
    *,
    session_id: str,
    transcript: str,
    question: str,
    history: Optional[List[Dict[str, str]]] = None,
    timeout: Optional[float] = None,
) -> str:
    if not transcript or not transcript.strip():
        raise ValidationError("Transcript is required")
    if not question or not question.strip():
        raise ValidationError("Question is required")

    turns = _clean_history(history)
    answer = generator.generate(
        config.default_model,
        build_qa_system_prompt(truncate(transcript, config)),
        question.strip(),
        QA_MAX_TOKENS,
        timeout=timeout,
        history=turns,
    )
    if not answer or not answer.strip():
        raise SynthesisError("No answer generated from AI")
    logger.info("transcript question answered session_id=%s history_turns=%d", session_id, len(turns))
    return answer
