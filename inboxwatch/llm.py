"""Async HTTP client for the OpenAI chat-completion and embedding APIs."""

from __future__ import annotations

import httpx
import structlog

from .config import OpenAIConfig
from .interface import LanguageModel
from .logging import component_logger


class OpenAIClient(LanguageModel):
    """Talks to an OpenAI-compatible API over :mod:`httpx`.

    When no API key is configured the client stays disabled:
    :attr:`is_configured` is ``False`` and calls raise ``RuntimeError``.
    Callers are expected to check first and degrade.
    """

    def __init__(
        self,
        config: OpenAIConfig,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None
        self._started = False
        self._log = logger or component_logger("openai")

    @property
    def is_configured(self) -> bool:
        key = self._config.api_key
        return key is not None and bool(key.get_secret_value())

    async def start(self) -> None:
        self._started = True

        if not self.is_configured:
            self._log.warning("openai_client_disabled", reason="missing_api_key")
            return

        assert self._config.api_key is not None
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=httpx.Timeout(self._config.timeout_seconds),
            headers={
                "Authorization": f"Bearer {self._config.api_key.get_secret_value()}",
                "Content-Type": "application/json",
            },
        )
        self._log.info("openai_client_started", base_url=self._config.base_url)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self._log.info("openai_client_stopped")

    def _require_client(self) -> httpx.AsyncClient:
        if not self._started:
            raise AssertionError("Client not started")
        if self._client is None:
            raise RuntimeError("OpenAI client is not configured")
        return self._client

    async def complete(
        self,
        *,
        system: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
        timeout: float | None = None,
    ) -> str:
        client = self._require_client()
        response = await client.post(
            "/chat/completions",
            json={
                "model": self._config.chat_model,
                "messages": [
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                "max_tokens": max_tokens,
                "temperature": temperature,
            },
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
        response.raise_for_status()
        data = response.json()
        content = data["choices"][0]["message"]["content"] or ""
        return content.strip()

    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for *text*. Raises on any failure."""
        client = self._require_client()
        response = await client.post(
            "/embeddings",
            json={"model": self._config.embedding_model, "input": text},
        )
        response.raise_for_status()
        data = response.json()
        return [float(v) for v in data["data"][0]["embedding"]]
