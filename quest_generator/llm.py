"""Dialog Engine: HTTP connection to a chat-completion backend.

The session injects an LLM callable matching the protocol:

    async def __call__(self, stage: str, instructions: str,
                       history: Sequence[Message]) -> str: ...

`stage` identifies which session step is calling ("opening" for the
greeting sent by start(), "reply" for submit()). Implementations may use it
for logging or to size the reply; the simplest implementation ignores it.
`history` is the conversation exactly as the session holds it, minus the
pending placeholder.

Two implementations are provided:

    HttpLLM   real HTTP client, supports Anthropic, OpenAI-compatible and
              Ollama chat backends. Selected by provider_format.
    EchoLLM   echoes the last message back. Useful for smoke-testing the
              session wiring without a running model.

Every transport or response-shape problem surfaces as DialogFailure.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Literal, Protocol

import httpx

from quest_generator.models import Message

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"

# Reply budget per stage; the opening turn only asks questions.
DEFAULT_MAX_TOKENS: dict[str, int] = {"opening": 1000, "reply": 1500}


# ---------------------------------------------------------------------------
# Protocol: every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(
        self, stage: str, instructions: str, history: Sequence[Message]
    ) -> str: ...


# ---------------------------------------------------------------------------
# HttpLLM: connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["anthropic", "openai", "ollama"]
PROVIDER_FORMATS: tuple[str, ...] = ("anthropic", "openai", "ollama")


class HttpLLM:
    """Async HTTP client for chat backends.

    Supported formats:
      "anthropic"  POST /v1/messages  {"model", "max_tokens", "system", "messages"}
                   Response: {"content": [{"type": "text", "text": "..."}]}
      "openai"     POST /v1/chat/completions  {"model", "max_tokens", "messages"}
                   Instructions travel as a leading "system" message.
                   Response: {"choices": [{"message": {"content": "..."}}]}
      "ollama"     POST /api/chat  {"model", "messages", "stream": false}
                   Response: {"message": {"content": "..."}}

    Args:
        provider_url:    Base URL of the backend, e.g. "https://api.anthropic.com".
        api_key:         Credential, or empty string if not required.
        provider_format: Wire format to use. Defaults to "anthropic".
        model:           Model identifier.
        timeout:         HTTP timeout in seconds. Defaults to 120.
        max_tokens:      Reply budget per stage; merged over DEFAULT_MAX_TOKENS.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "anthropic",
        model: str = "",
        timeout: float = 120.0,
        max_tokens: dict[str, int] | None = None,
    ) -> None:
        if provider_format not in PROVIDER_FORMATS:
            raise ValueError(f"Unsupported provider format {provider_format!r}")
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout
        self._max_tokens = DEFAULT_MAX_TOKENS | (max_tokens or {})

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._format == "anthropic":
            headers["anthropic-version"] = ANTHROPIC_VERSION
            if self._api_key:
                headers["x-api-key"] = self._api_key
        elif self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _budget(self, stage: str) -> int:
        return self._max_tokens.get(stage, self._max_tokens["reply"])

    def _build_request(
        self, stage: str, instructions: str, history: Sequence[Message]
    ) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        messages = [{"role": m.role, "content": m.content} for m in history]

        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            body: dict = {
                "messages": [{"role": "system", "content": instructions}] + messages,
                "max_tokens": self._budget(stage),
            }
            if self._model:
                body["model"] = self._model
            return url, body

        if self._format == "ollama":
            url = f"{self._base_url}/api/chat"
            return url, {
                "model": self._model,
                "messages": [{"role": "system", "content": instructions}] + messages,
                "stream": False,
                "options": {"num_predict": self._budget(stage)},
            }

        # anthropic (default)
        url = f"{self._base_url}/v1/messages"
        return url, {
            "model": self._model,
            "max_tokens": self._budget(stage),
            "system": instructions,
            "messages": messages,
        }

    def _parse_response(self, data: object) -> str:
        """Extract the reply text from the response body."""
        text: object = None
        try:
            if self._format == "openai":
                text = data["choices"][0]["message"]["content"]
            elif self._format == "ollama":
                text = data["message"]["content"]
            else:
                text = data["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise DialogFailure(
                f"Unexpected response format from {self._format} backend"
            ) from e
        if not isinstance(text, str) or not text.strip():
            raise DialogFailure(f"Empty response from {self._format} backend")
        return text

    async def __call__(
        self, stage: str, instructions: str, history: Sequence[Message]
    ) -> str:
        url, body = self._build_request(stage, instructions, history)
        logger.debug(
            "llm call stage=%s url=%s messages=%d", stage, url, len(body["messages"])
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise DialogFailure(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise DialogFailure(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise DialogFailure(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise DialogFailure(f"LLM request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise DialogFailure("LLM backend returned a non-JSON body") from e

        text = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


# ---------------------------------------------------------------------------
# EchoLLM: echoes the last message; useful for session smoke tests
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the content of the last history message. No network calls.

    Lets you verify the session wiring (placeholder handling, phase
    bookkeeping, HTTP surface) end-to-end without a running model. Echoing
    a message that contains a fenced quest block exercises extraction too.
    """

    async def __call__(
        self, stage: str, instructions: str, history: Sequence[Message]
    ) -> str:
        logger.debug("EchoLLM stage=%s messages=%d", stage, len(history))
        return history[-1].content if history else ""


# ---------------------------------------------------------------------------
# DialogFailure: raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class DialogFailure(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an unusable reply."""
