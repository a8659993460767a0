"""
Language model providers.
"""

import logging
import os
from typing import Any

import requests

from .base import AVAILABLE, DOWNLOADABLE, UNAVAILABLE, get_registry

logger = logging.getLogger(__name__)


class OllamaModel:
    """
    Language model served by a local Ollama instance.

    Respects OLLAMA_HOST env var (default: http://localhost:11434).
    Missing models are reported as "downloadable" and pulled by ``prepare()``.
    """

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str | None = None,
        timeout: float = 120,
    ):
        from .ollama_utils import ollama_base_url
        self.model = model
        self.base_url = ollama_base_url(base_url)
        self.timeout = timeout

    def availability(self) -> str:
        from .ollama_utils import ollama_has_model, ollama_installed_models
        try:
            installed = ollama_installed_models(self.base_url)
        except RuntimeError as e:
            logger.debug("Ollama availability check failed: %s", e)
            return UNAVAILABLE
        return AVAILABLE if ollama_has_model(installed, self.model) else DOWNLOADABLE

    def prepare(self) -> None:
        from .ollama_utils import ollama_ensure_model
        ollama_ensure_model(self.base_url, self.model)

    def generate(
        self,
        system: str,
        user: str,
        *,
        json_schema: dict[str, Any] | None = None,
        max_tokens: int = 1024,
    ) -> str:
        """Send a prompt to Ollama's chat endpoint."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "stream": False,
            "options": {"num_predict": max_tokens},
        }
        if json_schema is not None:
            # Ollama structured outputs accept a JSON schema as "format"
            payload["format"] = json_schema

        response = requests.post(
            f"{self.base_url}/api/chat",
            json=payload,
            timeout=(10, self.timeout),  # (connect, read)
        )
        if not response.ok:
            detail = response.text[:200] if response.text else ""
            raise RuntimeError(
                f"Ollama generate failed (model={self.model}): "
                f"HTTP {response.status_code} from {self.base_url}. {detail}"
            )
        return response.json()["message"]["content"].strip()


class OpenAIModel:
    """
    Language model using OpenAI's chat API.

    Requires: PAGEKEEP_OPENAI_API_KEY or OPENAI_API_KEY environment variable.
    """

    def __init__(
        self,
        model: str = "gpt-4.1-mini",
        api_key: str | None = None,
        timeout: float = 60,
    ):
        try:
            from openai import OpenAI
        except ImportError:
            raise RuntimeError("OpenAIModel requires 'openai' library")

        self.model = model
        key = api_key or os.environ.get("PAGEKEEP_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY")
        if not key:
            raise ValueError(
                "OpenAI API key required. Set PAGEKEEP_OPENAI_API_KEY or OPENAI_API_KEY"
            )
        self._client = OpenAI(api_key=key, timeout=timeout)

        # GPT-5+ and reasoning models take max_completion_tokens and no temperature
        self._new_api = self.model.startswith(("gpt-5", "o3", "o4"))

    def availability(self) -> str:
        return AVAILABLE

    def prepare(self) -> None:
        pass

    def _completion_kwargs(self, max_tokens: int) -> dict:
        if self._new_api:
            return {"max_completion_tokens": max_tokens}
        return {"max_tokens": max_tokens, "temperature": 0.2}

    def generate(
        self,
        system: str,
        user: str,
        *,
        json_schema: dict[str, Any] | None = None,
        max_tokens: int = 1024,
    ) -> str:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            **self._completion_kwargs(max_tokens),
        }
        if json_schema is not None:
            kwargs["response_format"] = {"type": "json_object"}
        response = self._client.chat.completions.create(**kwargs)
        if not response.choices:
            raise RuntimeError("OpenAI returned no choices")
        return (response.choices[0].message.content or "").strip()


class AnthropicModel:
    """
    Language model using Anthropic's Claude API.

    Requires: ANTHROPIC_API_KEY environment variable (or api_key parameter).
    """

    def __init__(
        self,
        model: str = "claude-haiku-4-5-20251001",
        api_key: str | None = None,
        timeout: float = 60,
    ):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise RuntimeError("AnthropicModel requires 'anthropic' library")

        self.model = model
        key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not key:
            raise ValueError("Anthropic API key required. Set ANTHROPIC_API_KEY")
        self._client = Anthropic(api_key=key, timeout=timeout)

    def availability(self) -> str:
        return AVAILABLE

    def prepare(self) -> None:
        pass

    def generate(
        self,
        system: str,
        user: str,
        *,
        json_schema: dict[str, Any] | None = None,
        max_tokens: int = 1024,
    ) -> str:
        if json_schema is not None:
            system = f"{system}\n\nRespond with a JSON object only, no explanation."
        response = self._client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        if not response.content:
            raise RuntimeError("Anthropic returned an empty response")
        return response.content[0].text.strip()


class NoModel:
    """
    Placeholder used when no language model is configured.

    Always unavailable; search falls back to lexical order and saved
    pages are not enriched.
    """

    def availability(self) -> str:
        return UNAVAILABLE

    def prepare(self) -> None:
        raise RuntimeError("No language model configured")

    def generate(self, system: str, user: str, **kwargs) -> str:
        raise RuntimeError("No language model configured")


# Register providers
_registry = get_registry()
_registry.register_model("ollama", OllamaModel)
_registry.register_model("openai", OpenAIModel)
_registry.register_model("anthropic", AnthropicModel)
_registry.register_model("none", NoModel)
