"""
Client for an OpenAI-compatible chat completions endpoint.

The endpoint is a black box: ``POST {base_url}/chat/completions`` with
``{model, messages, max_tokens, temperature}`` returning
``{choices: [{message: {content}}]}``.  Every failure mode (missing API key,
connection error, timeout, non-2xx, missing content) raises CompletionError so
callers can fall back to local content.  There are no retries.

Credentials are passed in at construction; ``from_settings`` builds the
production instance and tests substitute a fake through FastAPI dependency
overrides.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from stembot.config import settings

logger = logging.getLogger(__name__)


class CompletionError(RuntimeError):
    """The completion endpoint did not produce usable content."""


class CompletionClient:
    """Thin async wrapper over the chat completions API."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        timeout: float = 45.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = httpx.Timeout(timeout, connect=10.0)
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "CompletionClient":
        return cls(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            model=settings.OPENAI_MODEL,
            timeout=float(settings.LLM_TIMEOUT),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 1000,
        temperature: float = 0.3,
    ) -> str:
        """
        Send one system + user message pair and return the reply text.

        Raises:
            CompletionError: on any transport, HTTP or payload problem.
        """
        if not self.is_configured:
            raise CompletionError("Completion endpoint API key is not configured")

        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.TimeoutException as exc:
            logger.error("complete: request timed out after %.0f s", self.timeout.read or 0)
            raise CompletionError("Completion request timed out") from exc
        except httpx.HTTPError as exc:
            logger.error("complete: connection error: %s", exc)
            raise CompletionError(f"Completion request failed: {exc}") from exc

        if not resp.is_success:
            logger.error(
                "complete: endpoint returned HTTP %d: %s",
                resp.status_code,
                resp.text[:300],
            )
            raise CompletionError(f"Completion endpoint returned HTTP {resp.status_code}")

        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            logger.error("complete: unexpected response shape: %s", resp.text[:300])
            raise CompletionError("Completion response had no message content") from exc

        if not isinstance(content, str) or not content.strip():
            raise CompletionError("Completion response had no message content")
        return content

    async def check_health(self) -> bool:
        """Return True if ``GET {base_url}/models`` answers with a 2xx status."""
        if not self.is_configured:
            return False
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                resp = await client.get(
                    f"{self.base_url}/models",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
            return resp.is_success
        except httpx.HTTPError as exc:
            logger.warning("Completion endpoint health check failed: %s", exc)
            return False
