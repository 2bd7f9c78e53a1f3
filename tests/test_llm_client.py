from __future__ import annotations

from pathlib import Path
import threading
import time

import pytest
import requests

from live_insights.config import Settings
from live_insights.errors import (
    SynthesisError,
    SynthesisQuotaError,
    SynthesisRateLimitError,
    SynthesisTimeoutError,
)
from live_insights.services.llm_client import (
    ChatCompletionsGenerator,
    LlamaCppGenerator,
    _resolve_local_model_path,
    build_generator,
)


class _FakeResponse:
    def __init__(self, status_code: int, payload=None) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class _FakeHttp:
    def __init__(self, result) -> None:
        self.result = result
        self.posts: list[dict] = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def _client(result, api_key: str = "secret") -> tuple[ChatCompletionsGenerator, _FakeHttp]:
    http = _FakeHttp(result)
    gen = ChatCompletionsGenerator(
        base_url="https://llm.example.com/v1/",
        api_key=api_key,
        default_timeout=30,
        http=http,  # type: ignore[arg-type]
    )
    return gen, http


def test_successful_completion_builds_chat_payload() -> None:
    ok = _FakeResponse(200, {"choices": [{"message": {"content": "{\"summary\": \"s\"}"}}]})
    gen, http = _client(ok)

    out = gen.generate(
        "gpt-4o-mini",
        "system",
        "user",
        1500,
        history=[{"role": "assistant", "content": "earlier"}],
    )

    assert out == "{\"summary\": \"s\"}"
    post = http.posts[0]
    assert post["url"] == "https://llm.example.com/v1/chat/completions"
    assert post["headers"] == {"Authorization": "Bearer secret"}
    assert post["timeout"] == 30.0
    assert post["json"]["model"] == "gpt-4o-mini"
    assert post["json"]["max_tokens"] == 1500
    assert [m["role"] for m in post["json"]["messages"]] == ["system", "assistant", "user"]


def test_explicit_timeout_overrides_default() -> None:
    ok = _FakeResponse(200, {"choices": [{"message": {"content": "x"}}]})
    gen, http = _client(ok)
    gen.generate("m", "s", "u", 10, timeout=5)
    assert http.posts[0]["timeout"] == 5


@pytest.mark.parametrize(
    "status,error",
    [
        (429, SynthesisRateLimitError),
        (402, SynthesisQuotaError),
        (500, SynthesisError),
        (401, SynthesisError),
    ],
)
def test_error_statuses_map_to_error_kinds(status: int, error: type) -> None:
    gen, _ = _client(_FakeResponse(status))
    with pytest.raises(error):
        gen.generate("m", "s", "u", 10)


def test_rate_limit_and_quota_carry_status_codes() -> None:
    assert SynthesisRateLimitError().status_code == 429
    assert SynthesisQuotaError().status_code == 402


def test_timeout_maps_to_timeout_error() -> None:
    gen, _ = _client(requests.Timeout("slow"))
    with pytest.raises(SynthesisTimeoutError):
        gen.generate("m", "s", "u", 10)


def test_connection_error_maps_to_synthesis_error() -> None:
    gen, _ = _client(requests.ConnectionError("down"))
    with pytest.raises(SynthesisError) as exc_info:
        gen.generate("m", "s", "u", 10)
    assert not isinstance(exc_info.value, SynthesisTimeoutError)


@pytest.mark.parametrize(
    "payload",
    [
        None,
        {},
        {"choices": []},
        {"choices": [{"message": {"content": ""}}]},
    ],
)
def test_missing_content_is_an_error(payload) -> None:
    gen, _ = _client(_FakeResponse(200, payload))
    with pytest.raises(SynthesisError):
        gen.generate("m", "s", "u", 10)


def test_missing_api_key_fails_before_request() -> None:
    gen, http = _client(_FakeResponse(200, {}), api_key="  ")
    with pytest.raises(SynthesisError):
        gen.generate("m", "s", "u", 10)
    assert http.posts == []


def test_build_generator_defaults_to_gateway() -> None:
    settings = Settings(llm_api_key="k", llm_base_url="https://gw.example.com/v1")
    gen = build_generator(settings)
    assert isinstance(gen, ChatCompletionsGenerator)
    assert gen.base_url == "https://gw.example.com/v1"


def test_build_generator_local_model(tmp_path: Path) -> None:
    model = tmp_path / "tiny.gguf"
    model.write_bytes(b"")
    settings = Settings(llm_provider="llama_cpp", llm_model_path=str(model))
    gen = build_generator(settings)
    assert isinstance(gen, LlamaCppGenerator)
    assert gen.model_path == model
    assert gen.default_timeout == settings.synthesis_timeout_seconds


def test_local_model_discovered_under_models_dir(tmp_path: Path) -> None:
    llm_dir = tmp_path / "llm" / "family"
    llm_dir.mkdir(parents=True)
    (llm_dir / "b.gguf").write_bytes(b"")
    (llm_dir / "a.gguf").write_bytes(b"")
    (llm_dir / "notes.txt").write_text("ignored")
    settings = Settings(llm_provider="llama_cpp", models_dir=tmp_path)
    assert _resolve_local_model_path(settings) == llm_dir / "a.gguf"


def test_missing_local_model_path_raises(tmp_path: Path) -> None:
    settings = Settings(llm_provider="llama_cpp", llm_model_path=str(tmp_path / "nope.gguf"))
    with pytest.raises(FileNotFoundError):
        _resolve_local_model_path(settings)


class _FakeLlama:
    def __init__(self, release: threading.Event | None = None, content: str = "{}") -> None:
        self.release = release
        self.content = content
        self.messages: list = []

    def create_chat_completion(self, messages, temperature, top_p, max_tokens):
        self.messages = messages
        if self.release is not None:
            self.release.wait(5)
        return {"choices": [{"message": {"content": self.content}}]}


def test_local_generator_returns_chat_content(tmp_path: Path) -> None:
    gen = LlamaCppGenerator(tmp_path / "m.gguf", default_timeout=5)
    gen._llm = _FakeLlama(content="{\"summary\": \"local\"}")

    out = gen.generate("ignored", "system", "user", 100, history=[{"role": "user", "content": "hi"}])

    assert out == "{\"summary\": \"local\"}"
    assert [m["role"] for m in gen._llm.messages] == ["system", "user", "user"]


def test_local_generator_honors_timeout(tmp_path: Path) -> None:
    release = threading.Event()
    gen = LlamaCppGenerator(tmp_path / "m.gguf", default_timeout=30)
    gen._llm = _FakeLlama(release=release)
    try:
        started = time.monotonic()
        with pytest.raises(SynthesisTimeoutError):
            gen.generate("m", "s", "u", 10, timeout=0.05)
        assert time.monotonic() - started < 2
    finally:
        release.set()


def test_local_generator_uses_default_timeout(tmp_path: Path) -> None:
    release = threading.Event()
    gen = LlamaCppGenerator(tmp_path / "m.gguf", default_timeout=0.05)
    gen._llm = _FakeLlama(release=release)
    try:
        with pytest.raises(SynthesisTimeoutError):
            gen.generate("m", "s", "u", 10)
    finally:
        release.set()
