from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from live_insights.deps import get_generator, get_policy_config, get_session
from live_insights.main import create_app
from live_insights.models.base import init_db
from live_insights.models.live_session import LiveSession
from live_insights.models.organization_member import OrganizationMember
from live_insights.repositories.organizations import OrganizationMembersRepository
from live_insights.repositories.sessions import SessionsRepository
from live_insights.services.access_control import Caller
from live_insights.services.threshold_policy import PolicyConfig


def make_words(n: int, prefix: str = "w") -> str:
    return " ".join(f"{prefix}{i}" for i in range(n))


INSIGHTS_PAYLOAD = {
    "summary": "The speaker introduced streaming pipelines.",
    "key_points": [{"text": "Backpressure matters", "timestamp": 30}, "Batch sizes drive cost"],
    "action_items": [{"text": "Try the demo repo", "timestamp": "02:00"}],
    "notable_quotes": ["Latency is a feature"],
}


class FakeGenerator:
    """Returns queued responses in order, then the default insight payload."""

    def __init__(self, responses: list | None = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[dict] = []

    def generate(self, model, system_prompt, user_prompt, max_tokens, timeout=None, history=None) -> str:
        self.calls.append(
            {
                "model": model,
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "max_tokens": max_tokens,
                "timeout": timeout,
                "history": history,
            }
        )
        response = self.responses.pop(0) if self.responses else json.dumps(INSIGHTS_PAYLOAD)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def db(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture()
def policy() -> PolicyConfig:
    return PolicyConfig()


@pytest.fixture()
def live_session(db) -> LiveSession:
    row = SessionsRepository(db).create(
        LiveSession(
            id="s-1",
            title="Streaming at scale",
            status="live",
            speaker_name="Ada",
            speaker_email="ada@example.com",
            speaker_user_id="speaker-1",
            organization_id="org-1",
        )
    )
    members = OrganizationMembersRepository(db)
    members.add(OrganizationMember(organization_id="org-1", user_id="organizer-1", role="organizer"))
    members.add(OrganizationMember(organization_id="org-1", user_id="attendee-1", role="attendee"))
    return row


@pytest.fixture()
def speaker() -> Caller:
    return Caller(user_id="speaker-1", email="ada@example.com")


@pytest.fixture()
def api(engine, live_session):
    generator = FakeGenerator()
    app = create_app(initialize=False)

    def _session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_generator] = lambda: generator
    app.dependency_overrides[get_policy_config] = lambda: PolicyConfig()

    with TestClient(app) as client:
        yield SimpleNamespace(client=client, generator=generator)
