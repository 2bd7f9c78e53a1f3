from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional
from pydantic import Field
from pydantic_settings import BaseSettings
import os

from live_insights.services.threshold_policy import PolicyConfig


def _default_base_dir() -> Path:
    home = os.getenv("LI_HOME")
    return Path(home) if home else Path.home() / ".live-insights"


class Settings(BaseSettings):
    app_name: str = "Live Insights"

    base_dir: Path = Field(default_factory=_default_base_dir)
    data_dir: Path = Field(default_factory=lambda: _default_base_dir() / "data")
    logs_dir: Path = Field(default_factory=lambda: _default_base_dir() / "logs")
    models_dir: Path = Field(default_factory=lambda: _default_base_dir() / "models")

    # Any SQLAlchemy URL; SQLite file under data_dir when unset
    database_url: Optional[str] = None

    # Language-model backend: hosted OpenAI-compatible gateway or local llama.cpp
    llm_provider: Literal["gateway", "llama_cpp"] = "gateway"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_api_key: str = ""
    llm_model_path: Optional[str] = None
    default_model: str = "gpt-4o-mini"
    higher_quality_model: str = "gpt-4o"
    synthesis_timeout_seconds: float = 60.0

    # Pipeline thresholds
    initial_word_threshold: int = 200
    update_word_threshold: int = 300
    model_switch_threshold: int = 500
    min_transcript_length: int = 10
    max_transcript_length: int = 50_000
    full_max_tokens: int = 1500
    incremental_max_tokens: int = 2000

    # Identity headers are set by the upstream auth gateway
    user_id_header: str = "X-User-Id"
    user_email_header: str = "X-User-Email"

    class Config:
        env_prefix = "LI_"
        case_sensitive = False

    def ensure_dirs(self) -> None:
        for d in [self.base_dir, self.data_dir, self.logs_dir, self.models_dir]:
            d.mkdir(parents=True, exist_ok=True)

    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_dir / 'live_insights.db'}"

    def policy_config(self) -> PolicyConfig:
        return PolicyConfig(
            initial_word_threshold=self.initial_word_threshold,
            update_word_threshold=self.update_word_threshold,
            model_switch_threshold=self.model_switch_threshold,
            min_transcript_length=self.min_transcript_length,
            max_transcript_length=self.max_transcript_length,
            default_model=self.default_model,
            higher_quality_model=self.higher_quality_model,
            full_max_tokens=self.full_max_tokens,
            incremental_max_tokens=self.incremental_max_tokens,
        )
