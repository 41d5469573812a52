"""Summary: AI provider abstraction and the chat responder.

Importance: Centralizes LLM access so chat flows never depend on a vendor SDK.
Alternatives: Call provider SDKs directly in each service.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from chatshare.config import AppConfig
from chatshare.errors import AIError

logger = logging.getLogger(__name__)

EMPTY_PROMPT_REPLY = "I didn't receive any message. Please try again."
FALLBACK_REPLY = (
    "Sorry, I encountered an error while processing your request. Please try again."
)


class AiProvider(ABC):
    """Summary: Abstract interface for AI text generation.

    Importance: Allows switching between local and cloud LLMs without refactors.
    Alternatives: Use a single vendor SDK and accept lock-in risk.
    """

    @abstractmethod
    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        """Summary: Generate a response for a prompt.

        Importance: Standardizes AI outputs for downstream services.
        Alternatives: Return provider-specific response objects directly.
        """


@dataclass(frozen=True)
class AiResult:
    """Summary: Captures responder output and metadata.

    Importance: Lets the orchestrator know whether the reply is a fallback.
    Alternatives: Compare reply text against the fallback string.
    """

    text: str
    latency_ms: int
    failed: bool = False


class MockAiProvider(AiProvider):
    """Summary: Deterministic AI provider for local testing.

    Importance: Enables offline workflows and repeatable tests.
    Alternatives: Use a small local LLM for all development tasks.
    """

    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        started = time.time()
        response = f"[mock:{purpose}] {prompt[:240]}"
        latency_ms = int((time.time() - started) * 1000)
        return response, latency_ms


def _post_json(url: str, payload: dict[str, Any], headers: dict[str, str], timeout: float, name: str) -> dict[str, Any]:
    """Summary: POST a JSON payload and decode the JSON response.

    Importance: Shares transport and error wrapping across HTTP providers.
    Alternatives: Depend on requests or httpx for each provider.
    """

    request = urllib.request.Request(
        url=url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            return json.loads(response.read().decode("utf-8"))
    except urllib.error.URLError as exc:
        raise AIError(f"{name} request failed: {exc}") from exc
    except (OSError, ValueError) as exc:
        raise AIError(f"{name} returned an unreadable response: {exc}") from exc


class GeminiProvider(AiProvider):
    """Summary: AI provider using the Google generative-language REST API.

    Importance: Default cloud model for chat replies.
    Alternatives: Use the google-generativeai SDK.
    """

    def __init__(self, api_key: str, model: str, base_url: str, timeout: float = 60) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        """Summary: Generate text with a single generateContent call.

        Importance: One independent prompt per call; no conversation context is sent.
        Alternatives: Use the streaming endpoint.
        """

        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        started = time.time()
        raw = _post_json(
            f"{self._base_url}/v1beta/models/{self._model}:generateContent",
            payload,
            {"x-goog-api-key": self._api_key},
            self._timeout,
            "Gemini",
        )
        latency_ms = int((time.time() - started) * 1000)
        candidates = raw.get("candidates") or []
        if not candidates:
            raise AIError("No response from Gemini")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(str(part.get("text", "")) for part in parts)
        if not text:
            raise AIError("Empty response from Gemini")
        return text, latency_ms


class OllamaProvider(AiProvider):
    """Summary: AI provider that targets a local Ollama server.

    Importance: Supports privacy-sensitive workflows on local hardware.
    Alternatives: Use llama.cpp directly with a Python binding.
    """

    def __init__(self, base_url: str, model: str, timeout: float = 60) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = timeout

    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        payload = {"model": self._model, "prompt": prompt, "stream": False}
        started = time.time()
        raw = _post_json(f"{self._base_url}/api/generate", payload, {}, self._timeout, "Ollama")
        latency_ms = int((time.time() - started) * 1000)
        return raw.get("response", ""), latency_ms


class OpenAiProvider(AiProvider):
    """Summary: AI provider using OpenAI's chat completion API.

    Importance: Alternative cloud model when a Gemini key is not available.
    Alternatives: Use the responses API or a different provider.
    """

    def __init__(self, api_key: str, model: str, timeout: float = 60) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout

    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        payload = {
            "model": self._model,
            "messages": [{"role": "user", "content": prompt}],
        }
        started = time.time()
        raw = _post_json(
            "https://api.openai.com/v1/chat/completions",
            payload,
            {"Authorization": f"Bearer {self._api_key}"},
            self._timeout,
            "OpenAI",
        )
        latency_ms = int((time.time() - started) * 1000)
        try:
            content = raw["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise AIError("No response from OpenAI") from exc
        return content or "", latency_ms


@dataclass(frozen=True)
class AiProviderFactory:
    """Summary: Factory for selecting AI providers from configuration.

    Importance: Keeps provider selection logic centralized.
    Alternatives: Wire providers manually at the application entrypoint.
    """

    config: AppConfig

    def build(self) -> AiProvider:
        timeout = self.config.ai_timeout_seconds
        if self.config.ai_provider == "gemini":
            if not self.config.gemini_api_key:
                raise ValueError("GEMINI_API_KEY is required for gemini provider")
            return GeminiProvider(
                self.config.gemini_api_key,
                self.config.gemini_model,
                self.config.gemini_base_url,
                timeout=timeout,
            )
        if self.config.ai_provider == "ollama":
            return OllamaProvider(self.config.ollama_url, self.config.ollama_model, timeout=timeout)
        if self.config.ai_provider == "openai":
            if not self.config.openai_api_key:
                raise ValueError("OPENAI_API_KEY is required for openai provider")
            return OpenAiProvider(self.config.openai_api_key, self.config.openai_model, timeout=timeout)
        return MockAiProvider()


class AiResponder:
    """Summary: Turns a prompt into displayable reply text.

    Importance: Absorbs every provider failure so a chat turn always gets a reply.
    Alternatives: Let provider errors propagate to the orchestrator.
    """

    def __init__(self, provider: AiProvider, purpose: str = "chat") -> None:
        self._provider = provider
        self._purpose = purpose

    def generate(self, prompt: str) -> AiResult:
        """Summary: Produce a reply and flag whether it is a fallback.

        Importance: Gives the orchestrator the failure signal without raising.
        Alternatives: Return a tuple of text and status.
        """

        if not prompt or not prompt.strip():
            return AiResult(text=EMPTY_PROMPT_REPLY, latency_ms=0, failed=True)
        try:
            text, latency_ms = self._provider.generate_text(prompt, purpose=self._purpose)
        except Exception:
            logger.exception("AI provider failed; returning fallback reply.")
            return AiResult(text=FALLBACK_REPLY, latency_ms=0, failed=True)
        if not text:
            logger.warning("AI provider returned an empty response.")
            return AiResult(text=FALLBACK_REPLY, latency_ms=latency_ms, failed=True)
        logger.info("AI reply generated in %s ms.", latency_ms)
        return AiResult(text=text, latency_ms=latency_ms)

    def respond(self, prompt: str) -> str:
        return self.generate(prompt).text
