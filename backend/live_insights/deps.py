from __future__ import annotations

from functools import lru_cache
from typing import Iterator, Optional

from fastapi import Depends, Request
from sqlmodel import Session

from live_insights.config import Settings
from live_insights.models.base import engine
from live_insights.services.access_control import Caller
from live_insights.services.llm_client import TextGenerator, build_generator
from live_insights.services.threshold_policy import PolicyConfig


def get_session() -> Iterator[Session]:
    with Session(engine) as session:
        yield session


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def get_policy_config(settings: Settings = Depends(get_settings)) -> PolicyConfig:
    return settings.policy_config()


@lru_cache(maxsize=1)
def _shared_generator() -> TextGenerator:
    return build_generator(get_settings())


def get_generator() -> TextGenerator:
    return _shared_generator()


def get_caller(request: Request, settings: Settings = Depends(get_settings)) -> Optional[Caller]:
    user_id = (request.headers.get(settings.user_id_header) or "").strip()
    if not user_id:
        return None
    email = (request.headers.get(settings.user_email_header) or "").strip() or None
    return Caller(user_id=user_id, email=email)
