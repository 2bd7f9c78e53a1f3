from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol
import logging
import os
import time

import requests

from live_insights.config import Settings
from live_insights.errors import (
    SynthesisError,
    SynthesisQuotaError,
    SynthesisRateLimitError,
    SynthesisTimeoutError,
)

logger = logging.getLogger("live_insights.llm")


class TextGenerator(Protocol):
    def generate(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        timeout: Optional[float] = None,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        ...


class ChatCompletionsGenerator:
    """OpenAI-compatible ``/chat/completions`` client.

    429 and 402 map to their own error kinds so callers can back off on the
    first and stop on the second.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        default_timeout: float = 60.0,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = (api_key or "").strip()
        self.default_timeout = float(default_timeout)
        self.http = http or requests.Session()

    def generate(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        timeout: Optional[float] = None,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        if not self.api_key:
            raise SynthesisError("LLM API key not configured")

        messages: List[Dict[str, str]] = [{"role": "system", "content": system_prompt}]
        if history:
            messages.extend(history)
        messages.append({"role": "user", "content": user_prompt})
        payload: Dict[str, Any] = {"model": model, "messages": messages}
        if max_tokens > 0:
            payload["max_tokens"] = max_tokens

        started = time.monotonic()
        try:
            resp = self.http.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=timeout or self.default_timeout,
            )
        except requests.Timeout as e:
            logger.warning("llm request timed out model=%s after=%.1fs", model, time.monotonic() - started)
            raise SynthesisTimeoutError() from e
        except requests.RequestException as e:
            logger.warning("llm request failed model=%s error=%s", model, type(e).__name__)
            raise SynthesisError(f"LLM request failed: {type(e).__name__}") from e

        if resp.status_code == 429:
            logger.warning("llm rate limited model=%s", model)
            raise SynthesisRateLimitError()
        if resp.status_code == 402:
            logger.warning("llm quota exhausted model=%s", model)
            raise SynthesisQuotaError()
        if resp.status_code >= 400:
            logger.error("llm error status=%s model=%s", resp.status_code, model)
            raise SynthesisError(f"LLM request failed: {resp.status_code}")

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise SynthesisError("LLM response missing message content") from e
        if not content:
            raise SynthesisError("No content generated from AI")

        logger.info(
            "llm completion model=%s chars=%d took=%.2fs",
            model,
            len(content),
            time.monotonic() - started,
        )
        return str(content)


class LlamaCppGenerator:
    """Local GGUF model through llama-cpp-python (``pip install live-insights[local]``).

    The model is loaded once on first use; ``model`` arguments are ignored since
    a single local file serves every request. Completions run on a worker thread
    so the caller's timeout bounds the wait.
    """

    def __init__(
        self,
        model_path: Path,
        n_ctx: int = 32768,
        n_gpu_layers: int = 0,
        default_timeout: Optional[float] = None,
    ) -> None:
        self.model_path = model_path
        self.n_ctx = n_ctx
        self.n_gpu_layers = n_gpu_layers
        self.default_timeout = default_timeout
        self._llm: Any = None
        # One worker: the loaded model is not safe to share between threads
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="llama-cpp")

    def _load(self) -> Any:
        if self._llm is None:
            try:
                from llama_cpp import Llama  # type: ignore
            except ImportError as e:
                raise SynthesisError(
                    "llama-cpp-python is not available. Install it to enable local synthesis."
                ) from e
            self._llm = Llama(
                model_path=str(self.model_path),
                n_ctx=self.n_ctx,
                n_gpu_layers=self.n_gpu_layers,
                verbose=False,
            )
        return self._llm

    def generate(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        timeout: Optional[float] = None,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        messages: List[Dict[str, str]] = [{"role": "system", "content": system_prompt}]
        if history:
            messages.extend(history)
        messages.append({"role": "user", "content": user_prompt})

        future = self._executor.submit(self._complete, messages, system_prompt, user_prompt, max_tokens)
        try:
            return future.result(timeout=timeout or self.default_timeout)
        except FuturesTimeoutError as e:
            # A running completion cannot be interrupted; a queued one is dropped
            future.cancel()
            logger.warning("llama.cpp completion timed out after=%.1fs", timeout or self.default_timeout or 0)
            raise SynthesisTimeoutError() from e

    def _complete(
        self,
        messages: List[Dict[str, str]],
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
    ) -> str:
        llm = self._load()
        try:
            resp = llm.create_chat_completion(
                messages=messages,
                temperature=0.2,
                top_p=0.9,
                max_tokens=max_tokens,
            )
            return str(resp["choices"][0]["message"]["content"])
        except (KeyError, IndexError, TypeError, ValueError, RuntimeError):
            logger.warning("llama.cpp chat completion failed, retrying as plain completion")
        # Fallback to plain completion
        prompt = f"System: {system_prompt}\n\nUser: {user_prompt}\n\nAssistant:"
        try:
            comp = llm(prompt, max_tokens=max_tokens, temperature=0.2, top_p=0.9)
            return str(comp.get("choices", [{}])[0].get("text", ""))
        except (KeyError, IndexError, TypeError, ValueError, RuntimeError) as e:
            raise SynthesisError("Local model completion failed") from e


def _resolve_local_model_path(settings: Settings) -> Path:
    if settings.llm_model_path:
        p = Path(os.path.expandvars(settings.llm_model_path)).expanduser()
        if p.exists():
            return p
        raise FileNotFoundError(f"LLM model file not found: {p}")

    models_dir = settings.models_dir / "llm"
    found: List[Path] = []
    if models_dir.exists():
        for root, _, files in os.walk(models_dir):
            for f in files:
                if f.lower().endswith(".gguf"):
                    found.append(Path(root) / f)
    if found:
        return sorted(found)[0]
    raise RuntimeError("No local LLM model configured or found. Set LI_LLM_MODEL_PATH to a GGUF file.")


def build_generator(settings: Settings) -> TextGenerator:
    if settings.llm_provider == "llama_cpp":
        return LlamaCppGenerator(
            _resolve_local_model_path(settings),
            default_timeout=settings.synthesis_timeout_seconds,
        )
    return ChatCompletionsGenerator(
        base_url=settings.llm_base_url,
        api_key=settings.llm_api_key,
        default_timeout=settings.synthesis_timeout_seconds,
    )
