"""Chat completion client for an OpenAI-compatible endpoint.

Requests go through ``with_backoff``: transport errors, 4xx/5xx answers and
``errorMessage`` envelopes are all retried and finally raised as
RemoteCallError.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from jobfeed.config import settings
from jobfeed.services.remote import RemoteCallError, result_from_response, with_backoff

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatCompletion:
    """Text answer plus the token usage reported by the provider."""

    content: str
    input_tokens: int
    output_tokens: int


class LLMClient:
    """Async client for chat completions.

    Provides a single ``complete`` call taking a system instruction and a
    user message.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: API base URL. Defaults to settings.llm_base_url
            api_key: Bearer token. Defaults to settings.llm_api_key
            model: Model name. Defaults to settings.llm_model
            timeout: Per-attempt timeout in seconds. Defaults to settings.llm_timeout
            http_client: Shared httpx client; a short-lived one is opened per call otherwise
            max_attempts: Retry attempts. Defaults to settings.remote_max_attempts
            base_delay: Retry base delay. Defaults to settings.remote_base_delay
        """
        self.base_url = (base_url or settings.llm_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.llm_api_key
        self.model = model or settings.llm_model
        self.timeout = timeout or settings.llm_timeout
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._http_client = http_client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, client: httpx.AsyncClient, body: dict[str, Any]):
        async with asyncio.timeout(self.timeout):
            response = await client.post(
                f"{self.base_url}/chat/completions",
                json=body,
                headers=self._headers(),
                timeout=self.timeout,
            )
        return result_from_response(response)

    async def complete(
        self,
        system: str,
        user: str,
        *,
        temperature: float = 0.0,
        max_tokens: int = 1,
        top_p: float = 1.0,
        frequency_penalty: float = 0.0,
        presence_penalty: float = 0.0,
    ) -> ChatCompletion:
        """Request a chat completion.

        Args:
            system: System instruction
            user: User message
            temperature: Sampling temperature
            max_tokens: Completion length limit
            top_p: Nucleus sampling
            frequency_penalty: Frequency penalty
            presence_penalty: Presence penalty

        Returns:
            ChatCompletion with trimmed content and token counts

        Raises:
            RemoteCallError: After all attempts failed or on a malformed answer
        """
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "top_p": top_p,
            "frequency_penalty": frequency_penalty,
            "presence_penalty": presence_penalty,
        }

        if self._http_client is not None:
            data = await with_backoff(
                lambda: self._post(self._http_client, body),
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
            )
        else:
            async with httpx.AsyncClient() as client:
                data = await with_backoff(
                    lambda: self._post(client, body),
                    max_attempts=self.max_attempts,
                    base_delay=self.base_delay,
                )

        completion = parse_chat_completion(data)
        logger.debug(
            f"LLM answered '{completion.content}' "
            f"({completion.input_tokens} in / {completion.output_tokens} out tokens)"
        )
        return completion


def parse_chat_completion(data: Any) -> ChatCompletion:
    """Extract content and usage from a chat completions response body.

    Raises:
        RemoteCallError: If the body has no choices
    """
    if not isinstance(data, dict) or not data.get("choices"):
        raise RemoteCallError(f"Unexpected chat completion response: {str(data)[:200]}")

    message = data["choices"][0].get("message") or {}
    content = (message.get("content") or "").strip()

    usage = data.get("usage") or {}
    return ChatCompletion(
        content=content,
        input_tokens=int(usage.get("prompt_tokens") or 0),
        output_tokens=int(usage.get("completion_tokens") or 0),
    )
