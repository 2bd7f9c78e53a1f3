from __future__ import annotations

import json

import pytest

from live_insights.errors import SynthesisParseError, SynthesisRateLimitError
from live_insights.services.insight_synthesizer import (
    SYSTEM_PROMPT,
    InsightItem,
    InsightSynthesizer,
    PreviousInsights,
    SynthesisRequest,
    build_incremental_prompt,
    parse_insights,
    strip_code_fences,
)
from live_insights.services.threshold_policy import GenerationMode

from conftest import FakeGenerator, INSIGHTS_PAYLOAD


def test_parse_normalizes_strings_and_objects() -> None:
    out = parse_insights(json.dumps(INSIGHTS_PAYLOAD))
    assert out.summary == "The speaker introduced streaming pipelines."
    assert out.key_points == [
        InsightItem(text="Backpressure matters", timestamp=30.0),
        InsightItem(text="Batch sizes drive cost", timestamp=None),
    ]
    assert out.action_items == [InsightItem(text="Try the demo repo", timestamp=120.0)]
    assert out.notable_quotes == [InsightItem(text="Latency is a feature", timestamp=None)]


def test_parse_strips_code_fences() -> None:
    raw = "```json\n" + json.dumps({"summary": "s", "key_points": ["a"]}) + "\n```"
    out = parse_insights(raw)
    assert out.summary == "s"
    assert [i.text for i in out.key_points] == ["a"]
    assert out.action_items == []


def test_strip_code_fences_plain_fence() -> None:
    assert strip_code_fences("```\n{}\n```") == "{}"


@pytest.mark.parametrize("raw", ["not json", "```json\nnot json\n```", "[1, 2]", ""])
def test_parse_rejects_non_object(raw: str) -> None:
    with pytest.raises(SynthesisParseError):
        parse_insights(raw)


def test_parse_rejects_schema_mismatch() -> None:
    with pytest.raises(SynthesisParseError):
        parse_insights(json.dumps({"summary": "s", "key_points": [42]}))
    with pytest.raises(SynthesisParseError):
        parse_insights(json.dumps({"summary": None}))


def test_parse_drops_blank_items_and_unreadable_timestamps() -> None:
    raw = json.dumps(
        {
            "summary": " s ",
            "key_points": ["  ", {"text": "kept", "timestamp": "around the middle"}],
        }
    )
    out = parse_insights(raw)
    assert out.summary == "s"
    assert out.key_points == [InsightItem(text="kept", timestamp=None)]


def test_full_mode_prompt_carries_transcript_and_timestamp_hint() -> None:
    generator = FakeGenerator()
    synth = InsightSynthesizer(generator)
    synth.synthesize(
        SynthesisRequest(
            session_id="s-1",
            mode=GenerationMode.FULL,
            transcript_slice="the full transcript",
            model="m-default",
            max_tokens=1500,
            timestamp_reference="[00:05] hello",
            timeout=12.0,
        )
    )
    call = generator.calls[0]
    assert call["model"] == "m-default"
    assert call["system_prompt"] == SYSTEM_PROMPT
    assert call["max_tokens"] == 1500
    assert call["timeout"] == 12.0
    assert "Transcript:\nthe full transcript" in call["user_prompt"]
    assert "[00:05] hello" in call["user_prompt"]
    assert "Previous summary" not in call["user_prompt"]


def test_incremental_mode_prompt_carries_previous_insights() -> None:
    generator = FakeGenerator()
    synth = InsightSynthesizer(generator)
    previous = PreviousInsights(
        summary="old summary",
        key_points=["old point"],
        action_items=[],
        quotes=["old quote"],
    )
    synth.synthesize(
        SynthesisRequest(
            session_id="s-1",
            mode=GenerationMode.INCREMENTAL,
            transcript_slice="only the new words",
            model="m",
            max_tokens=2000,
            previous=previous,
        )
    )
    prompt = generator.calls[0]["user_prompt"]
    assert "old summary" in prompt
    assert "- old point" in prompt
    assert "- old quote" in prompt
    assert "New transcript content:\nonly the new words" in prompt


def test_incremental_prompt_without_new_words() -> None:
    prompt = build_incremental_prompt("", PreviousInsights(summary="x"))
    assert "no new content" in prompt


def test_synthesize_raises_parse_error() -> None:
    synth = InsightSynthesizer(FakeGenerator(["not json"]))
    with pytest.raises(SynthesisParseError):
        synth.synthesize(
            SynthesisRequest(
                session_id="s-1",
                mode=GenerationMode.FULL,
                transcript_slice="t",
                model="m",
                max_tokens=10,
            )
        )


def test_synthesize_propagates_generator_errors() -> None:
    synth = InsightSynthesizer(FakeGenerator([SynthesisRateLimitError()]))
    with pytest.raises(SynthesisRateLimitError):
        synth.synthesize(
            SynthesisRequest(
                session_id="s-1",
                mode=GenerationMode.FULL,
                transcript_slice="t",
                model="m",
                max_tokens=10,
            )
        )
