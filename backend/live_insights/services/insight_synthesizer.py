"""Prompt construction and response validation for insight generation.

The model is asked for one JSON object::

    {
      "summary": "...",
      "key_points": [{"text": "...", "timestamp": 120}],
      "action_items": [...],
      "notable_quotes": [...]
    }

List entries may come back as bare strings or as ``{text, timestamp}``
objects; both normalize to :class:`InsightItem`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
import json
import logging
import re

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from live_insights.errors import SynthesisParseError
from live_insights.services.llm_client import TextGenerator
from live_insights.services.threshold_policy import GenerationMode

logger = logging.getLogger("live_insights.synthesizer")

SYSTEM_PROMPT = (
    "You are an expert at analyzing conference session transcripts. "
    "Always respond with valid JSON only, no additional text or markdown."
)

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


@dataclass
class InsightItem:
    text: str
    timestamp: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "timestamp": self.timestamp}


@dataclass
class InsightSet:
    summary: str = ""
    key_points: List[InsightItem] = field(default_factory=list)
    action_items: List[InsightItem] = field(default_factory=list)
    notable_quotes: List[InsightItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "key_points": [i.to_dict() for i in self.key_points],
            "action_items": [i.to_dict() for i in self.action_items],
            "notable_quotes": [i.to_dict() for i in self.notable_quotes],
        }


@dataclass
class PreviousInsights:
    summary: str = ""
    key_points: List[str] = field(default_factory=list)
    action_items: List[str] = field(default_factory=list)
    quotes: List[str] = field(default_factory=list)


class _RawItem(BaseModel):
    text: str
    timestamp: Optional[Union[float, str]] = None


class _RawInsights(BaseModel):
    summary: str = ""
    key_points: List[Union[str, _RawItem]] = Field(default_factory=list)
    action_items: List[Union[str, _RawItem]] = Field(default_factory=list)
    notable_quotes: List[Union[str, _RawItem]] = Field(default_factory=list)


@dataclass(frozen=True)
class SynthesisRequest:
    session_id: str
    mode: GenerationMode
    transcript_slice: str
    model: str
    max_tokens: int
    previous: Optional[PreviousInsights] = None
    timestamp_reference: str = ""
    timeout: Optional[float] = None


class InsightSynthesizer:
    def __init__(self, generator: TextGenerator) -> None:
        self.generator = generator

    def synthesize(self, request: SynthesisRequest) -> InsightSet:
        if request.mode is GenerationMode.INCREMENTAL:
            user_prompt = build_incremental_prompt(
                request.transcript_slice,
                request.previous or PreviousInsights(),
                request.timestamp_reference,
            )
        else:
            user_prompt = build_full_prompt(request.transcript_slice, request.timestamp_reference)

        raw = self.generator.generate(
            request.model,
            SYSTEM_PROMPT,
            user_prompt,
            request.max_tokens,
            timeout=request.timeout,
        )
        try:
            return parse_insights(raw)
        except SynthesisParseError:
            logger.error(
                "unparseable insights session_id=%s mode=%s response_chars=%d",
                request.session_id,
                request.mode.value,
                len(raw or ""),
            )
            raise


_OUTPUT_FORMAT = """{
  "summary": "A 2-3 sentence summary",
  "key_points": [{"text": "point", "timestamp": 120}],
  "action_items": [{"text": "action", "timestamp": 300}],
  "notable_quotes": [{"text": "quote", "timestamp": 45}]
}"""


def build_full_prompt(transcript: str, timestamp_ref: str = "") -> str:
    parts = [
        "Analyze this conference session transcript and provide insights in the following JSON format:",
        _OUTPUT_FORMAT,
        "",
        "Provide up to 5 key points, 3 action items and 3 notable quotes. "
        "\"timestamp\" is the approximate number of seconds into the session "
        "where the item was discussed, or null if unknown.",
    ]
    if timestamp_ref:
        parts += ["", "Timestamp reference (mm:ss):", timestamp_ref]
    parts += ["", "Transcript:", transcript]
    return "\n".join(parts)


def _bullets(items: List[str]) -> str:
    if not items:
        return "(none)"
    return "\n".join(f"- {i}" for i in items)


def build_incremental_prompt(new_text: str, previous: PreviousInsights, timestamp_ref: str = "") -> str:
    parts = [
        "You are updating the insights of a live conference session as new transcript arrives.",
        "",
        "Previous summary:",
        previous.summary or "(none)",
        "",
        "Previous key points:",
        _bullets(previous.key_points),
        "",
        "Previous action items:",
        _bullets(previous.action_items),
        "",
        "Previous notable quotes:",
        _bullets(previous.quotes),
        "",
        "Return an UPDATED insight set in the following JSON format:",
        _OUTPUT_FORMAT,
        "",
        "Rules: keep previous items that are still relevant (verbatim is fine), "
        "append new items found in the new content, and rewrite the summary so it "
        "covers the whole session so far.",
    ]
    if timestamp_ref:
        parts += ["", "Timestamp reference (mm:ss):", timestamp_ref]
    parts += ["", "New transcript content:", new_text or "(no new content; the session has ended)"]
    return "\n".join(parts)


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").replace("```", "").strip()


def _coerce_timestamp(value: Union[float, str, None]) -> Optional[float]:
    """Accept seconds as a number or numeric string, or an ``mm:ss`` / ``hh:mm:ss`` string."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    parts = value.strip().split(":")
    try:
        seconds = 0.0
        for part in parts:
            seconds = seconds * 60 + float(part)
        return seconds
    except ValueError:
        return None


def _normalize_items(items: List[Union[str, _RawItem]]) -> List[InsightItem]:
    out: List[InsightItem] = []
    for item in items:
        if isinstance(item, str):
            text, ts = item.strip(), None
        else:
            text, ts = item.text.strip(), _coerce_timestamp(item.timestamp)
        if text:
            out.append(InsightItem(text=text, timestamp=ts))
    return out


def parse_insights(raw: str) -> InsightSet:
    cleaned = strip_code_fences(raw)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise SynthesisParseError() from e
    if not isinstance(data, dict):
        raise SynthesisParseError("AI response is not a JSON object")
    try:
        payload = _RawInsights.model_validate(data)
    except PydanticValidationError as e:
        raise SynthesisParseError("AI response does not match the insight schema") from e
    return InsightSet(
        summary=payload.summary.strip(),
        key_points=_normalize_items(payload.key_points),
        action_items=_normalize_items(payload.action_items),
        notable_quotes=_normalize_items(payload.notable_quotes),
    )
