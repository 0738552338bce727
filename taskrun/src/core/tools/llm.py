from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from . import CapabilitySpec
from ..types import Outcome

DEFAULT_MODEL = "qwen3:8b"
DEFAULT_ENDPOINT = "http://localhost:11434/api/generate"


class BackendError(RuntimeError):
    """Raised when the text-generation backend cannot produce a response."""


class OllamaBackend:
    """Send prompts to a local Ollama server and return the generated text.

    This is both the planner's text-generation backend and a regular capability
    (``llm``) that plans may call directly.
    """

    name = "llm"
    description = "Sends input to a local LLM via Ollama and returns the response."

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.model = model
        self.endpoint = endpoint
        self.timeout_s = timeout_s

    def generate(self, prompt: str) -> str:
        """Return the model's response text or raise :class:`BackendError`."""

        payload: Dict[str, Any] = {"model": self.model, "prompt": prompt, "stream": False}
        try:
            response = requests.post(self.endpoint, json=payload, timeout=self.timeout_s)
            response.raise_for_status()
        except requests.exceptions.Timeout as exc:
            raise BackendError(f"Request timed out after {self.timeout_s}s") from exc
        except requests.exceptions.RequestException as exc:
            raise BackendError(f"Request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise BackendError(f"Failed to parse JSON: {exc}") from exc

        text = body.get("response") if isinstance(body, dict) else None
        if not isinstance(text, str):
            raise BackendError("LLM response missing 'response' field")
        return text.strip()

    def execute(self, input: str) -> Outcome:
        try:
            return Outcome.ok(self.generate(input))
        except BackendError as exc:
            return Outcome.fail(str(exc))

    def spec(self) -> CapabilitySpec:
        return CapabilitySpec(
            name=self.name,
            description=self.description,
            input_hint="Freeform prompt text to send to LLM.",
            tags=("llm", "generation", "reasoning"),
        )


__all__ = ["BackendError", "DEFAULT_ENDPOINT", "DEFAULT_MODEL", "OllamaBackend"]
