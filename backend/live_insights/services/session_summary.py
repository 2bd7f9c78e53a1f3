"""Long-form markdown study-guide summary of a session transcript."""

from __future__ import annotations

import logging
from typing import Optional

from live_insights.errors import SynthesisError, ValidationError
from live_insights.models.live_session import LiveSession
from live_insights.services.llm_client import TextGenerator
from live_insights.services.threshold_policy import PolicyConfig
from live_insights.services.transcript_accumulator import count_words, truncate

logger = logging.getLogger("live_insights.summary")

SUMMARY_SYSTEM_PROMPT = (
    "You are an expert conference session analyst. Create professional, educational "
    "summaries that work as comprehensive study guides."
)

SUMMARY_MAX_TOKENS = 4096


def build_summary_prompt(transcript: str, live_session: LiveSession, duration_minutes: Optional[int] = None) -> str:
    speaker = live_session.speaker_name or "Speaker"
    return f"""Generate a professional, educational summary

## CONTEXT:
- **Session**: {live_session.title or "Conference Session"}
- **Speaker**: {speaker}
- **Conference**: {live_session.conference_name or "Conference"}
- **Track**: {live_session.track_name or "General"}
- **Duration**: {duration_minutes if duration_minutes is not None else "N/A"} minutes
- **Transcript**: {count_words(transcript)} words

## OUTPUT STRUCTURE:

# [Session Title]: [Compelling Subtitle]

## Introduction
[2-3 paragraph overview: what is this about, why it matters, what readers will learn]

## Speaker Introduction
**{speaker}**: [Title, company and relevant background in 2-3 sentences]

---

## [Main Topic 1..N]
[Opening paragraph, key concepts in bold, 2-level bullets with concrete examples,
an impactful quote as a > block where one fits]

---

## Key Takeaways
[Concise list of lessons and action items]

## WRITING STYLE:
- Educational and explanatory, third person, active voice
- Paragraphs of 3-5 sentences, bullets at most 2 levels deep
- Define technical terms when introduced
- Connect sections with transition sentences

## TRANSCRIPT:

{transcript}

Now generate the summary following this exact structure and style."""


class SessionSummarizer:
    def __init__(self, generator: TextGenerator, config: PolicyConfig) -> None:
        self.generator = generator
        self.config = config

    def summarize(
        self,
        live_session: LiveSession,
        transcript: str,
        duration_minutes: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> str:
        if not transcript or not transcript.strip():
            raise ValidationError("Transcript is required")
        prompt = build_summary_prompt(truncate(transcript, self.config), live_session, duration_minutes)
        summary = self.generator.generate(
            self.config.higher_quality_model,
            SUMMARY_SYSTEM_PROMPT,
            prompt,
            SUMMARY_MAX_TOKENS,
            timeout=timeout,
        )
        if not summary or not summary.strip():
            raise SynthesisError("No summary generated from AI")
        logger.info("session summary generated session_id=%s chars=%d", live_session.id, len(summary))
        return summary
