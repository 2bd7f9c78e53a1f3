"""Decides when a transcript has grown enough to regenerate insights."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class GenerationMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


@dataclass(frozen=True)
class PolicyConfig:
    initial_word_threshold: int = 200
    update_word_threshold: int = 300
    model_switch_threshold: int = 500
    min_transcript_length: int = 10
    max_transcript_length: int = 50_000
    default_model: str = "gpt-4o-mini"
    higher_quality_model: str = "gpt-4o"
    full_max_tokens: int = 1500
    incremental_max_tokens: int = 2000


@dataclass(frozen=True)
class ThresholdDecision:
    triggered: bool
    mode: GenerationMode | None
    current_word_count: int
    last_processed_word_count: int
    new_word_count: int
    threshold: int
    is_session_completed: bool
    should_use_higher_quality_model: bool

    @property
    def is_incremental(self) -> bool:
        return self.mode is GenerationMode.INCREMENTAL


def evaluate(
    current_word_count: int,
    last_processed_word_count: int,
    session_status: str | None,
    config: PolicyConfig,
) -> ThresholdDecision:
    """Gate a pipeline run.

    A completed session always runs. Otherwise the first pass waits for
    ``initial_word_threshold`` words in total and later passes wait for
    ``update_word_threshold`` new words. Only the absence of a prior pass makes
    a run FULL; completion alone does not.
    """
    is_first_generation = last_processed_word_count == 0
    is_session_completed = session_status == "completed"
    new_word_count = current_word_count - last_processed_word_count

    meets_initial_threshold = is_first_generation and current_word_count >= config.initial_word_threshold
    has_enough_new_words = new_word_count >= config.update_word_threshold
    triggered = is_session_completed or meets_initial_threshold or has_enough_new_words

    mode: GenerationMode | None = None
    if triggered:
        mode = GenerationMode.FULL if is_first_generation else GenerationMode.INCREMENTAL

    threshold = config.initial_word_threshold if is_first_generation else config.update_word_threshold
    return ThresholdDecision(
        triggered=triggered,
        mode=mode,
        current_word_count=current_word_count,
        last_processed_word_count=last_processed_word_count,
        new_word_count=new_word_count,
        threshold=threshold,
        is_session_completed=is_session_completed,
        should_use_higher_quality_model=(
            is_session_completed and current_word_count > config.model_switch_threshold
        ),
    )


def select_model(decision: ThresholdDecision, config: PolicyConfig) -> str:
    if decision.should_use_higher_quality_model:
        return config.higher_quality_model
    return config.default_model


def max_tokens_for(mode: GenerationMode, config: PolicyConfig) -> int:
    if mode is GenerationMode.INCREMENTAL:
        return config.incremental_max_tokens
    return config.full_max_tokens
