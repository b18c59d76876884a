"""Chat-completion client for the optional executive summary.

Talks to any OpenAI-compatible /chat/completions endpoint. Without an API
key the client reports itself unconfigured and never makes a request.
"""

from __future__ import annotations

from typing import Any

import httpx

from .config import DEFAULT_LLM_BASE_URL, DEFAULT_LLM_MODEL

GENERATE_TIMEOUT = 60  # seconds per completion


class ModelError(Exception):
    """Error communicating with the model."""


class CompletionClient:
    """Client for a chat-completion REST API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = DEFAULT_LLM_BASE_URL,
        model: str = DEFAULT_LLM_MODEL,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def complete(
        self,
        system: str,
        prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 800,
    ) -> str:
        """Send a system/user message pair. Returns the reply text."""
        if not self.is_configured:
            raise ModelError("No API key configured for the completion endpoint")

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            with httpx.Client(timeout=GENERATE_TIMEOUT, transport=self._transport) as client:
                resp = client.post(f"{self.base_url}/chat/completions", json=payload, headers=headers)
        except httpx.TimeoutException:
            raise ModelError(f"Completion timed out after {GENERATE_TIMEOUT}s")
        except httpx.HTTPError as e:
            raise ModelError(f"Cannot reach completion endpoint: {e}")

        if resp.status_code != 200:
            raise ModelError(f"Completion endpoint returned {resp.status_code}: {resp.text[:200]}")
        try:
            data = resp.json()
            return (data["choices"][0]["message"]["content"] or "").strip()
        except (ValueError, KeyError, IndexError, TypeError):
            raise ModelError(f"Unexpected completion response: {resp.text[:200]}")
