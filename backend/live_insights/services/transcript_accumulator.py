from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from live_insights.errors import ValidationError
from live_insights.services.threshold_policy import PolicyConfig


@dataclass(frozen=True)
class AccumulatedTranscript:
    full_text: str
    word_count: int


def count_words(text: str) -> int:
    # str.split() with no separator drops empty tokens
    return len((text or "").split())


def accumulate(segment_texts: Iterable[str]) -> AccumulatedTranscript:
    full_text = " ".join(segment_texts)
    return AccumulatedTranscript(full_text=full_text, word_count=count_words(full_text))


def validate_length(text: str, config: PolicyConfig) -> None:
    length = len(text)
    if length < config.min_transcript_length:
        raise ValidationError(
            f"Transcript too short: {length} characters (minimum {config.min_transcript_length})"
        )
    if length > config.max_transcript_length:
        raise ValidationError(
            f"Transcript too long: {length} characters (maximum {config.max_transcript_length})"
        )


def truncate(text: str, config: PolicyConfig) -> str:
    return text[: config.max_transcript_length]


def new_words_slice(text: str, last_processed_word_count: int) -> str:
    words = text.split()
    return " ".join(words[max(0, last_processed_word_count):])


def _format_offset(seconds: float) -> str:
    total = max(0, int(seconds))
    return f"{total // 60:02d}:{total % 60:02d}"


def timestamp_reference(segments: Optional[List[Any]], max_chars: int = 4000) -> str:
    """Render ``[mm:ss] text`` lines from segments that carry a start time.

    Accepts ORM rows or plain dicts. Used only as a hint for the model, so the
    output is capped at ``max_chars``.
    """
    if not segments:
        return ""
    lines: List[str] = []
    used = 0
    for seg in segments:
        start = seg.get("start_time") if isinstance(seg, dict) else getattr(seg, "start_time", None)
        text = seg.get("text") if isinstance(seg, dict) else getattr(seg, "text", None)
        if start is None or not text:
            continue
        line = f"[{_format_offset(float(start))}] {str(text).strip()}"
        if used + len(line) + 1 > max_chars:
            break
        lines.append(line)
        used += len(line) + 1
    return "\n".join(lines)
