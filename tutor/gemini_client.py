"""
Gemini text completion via REST API.

Prompt in, raw completion text out. Parsing the text is the extractor's job;
this module only reports transport and provider failures as LLMClientError.
"""
import asyncio
import os
import time
from typing import Optional

import aiohttp

from logging_setup import get_logger, Component

from .errors import LLMClientError, LLMNotConfiguredError

logger = get_logger(Component.LLM)

GENERATE_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


class GeminiClient:
    """Thin async client for models/{model}:generateContent."""

    def __init__(self, *, api_key: Optional[str], model: str = "gemini-1.5-flash", timeout_seconds: float = 30.0):
        self._api_key = api_key
        self._model = model
        self._timeout_seconds = timeout_seconds
        self._http_session: Optional[aiohttp.ClientSession] = None

    @property
    def model(self) -> str:
        return self._model

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _get_or_create_session(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            pool_size = int(os.getenv("GEMINI_CONNECTION_POOL_SIZE", "10"))
            connector = aiohttp.TCPConnector(limit=pool_size, ttl_dns_cache=300)
            self._http_session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self._timeout_seconds, connect=5.0),
            )
        return self._http_session

    async def complete(self, prompt: str) -> str:
        """
        Return the model's text for prompt.

        Raises:
            LLMNotConfiguredError: no API key
            LLMClientError: non-200 status, transport failure, or no text in the answer
        """
        if not self._api_key:
            raise LLMNotConfiguredError("Gemini AI not initialized. Please provide an API key.")

        url = GENERATE_URL.format(model=self._model)
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

        t_start = time.perf_counter()
        session = self._get_or_create_session()
        try:
            async with session.post(url, params={"key": self._api_key}, json=payload) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(
                        "Gemini API error",
                        status_code=response.status,
                        error_text=error_text[:500],
                    )
                    raise LLMClientError(
                        f"Gemini API error: {response.status} - {error_text[:200]}",
                        status_code=response.status,
                    )
                data = await response.json()
        except aiohttp.ClientError as e:
            raise LLMClientError(f"Gemini connection error: {e}") from e
        except asyncio.TimeoutError as e:
            raise LLMClientError("Gemini request timeout") from e

        text = _completion_text(data)
        latency_ms = int((time.perf_counter() - t_start) * 1000)
        if not text:
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            logger.warning("Gemini returned no text", block_reason=block_reason, latency_ms=latency_ms)
            if block_reason:
                raise LLMClientError(f"Gemini blocked the prompt: {block_reason}")
            raise LLMClientError("Gemini returned no candidates")

        logger.info(
            "Gemini call completed",
            model=self._model,
            prompt_length=len(prompt),
            output_length=len(text),
            latency_ms=latency_ms,
        )
        return text

    async def aclose(self) -> None:
        """Close the pooled HTTP session. Safe to call multiple times."""
        if self._http_session is not None:
            try:
                await self._http_session.close()
            finally:
                self._http_session = None


def _completion_text(data: dict) -> str:
    """Concatenate the text parts of the first candidate."""
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict))
