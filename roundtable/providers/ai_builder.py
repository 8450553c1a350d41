"""AI Builder chat backend via the OpenAI-compatible API (openai SDK, native async)."""

import asyncio
import logging
import os
import time

import openai
from openai import AsyncOpenAI

from config.config_loader import ClientConfig
from roundtable.providers.base import ChatClient, ChatMessage, ChatReply, ErrorKind, ProviderError, TokenUsage

logger = logging.getLogger(__name__)

_NAME = "ai-builder"


def _classify_status(status_code: int) -> ErrorKind:
    if status_code in (401, 403):
        return ErrorKind.UNAUTHORIZED
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.INVALID_REQUEST


class AIBuilderClient(ChatClient):
    """Chat client for every model hosted behind the AI Builder gateway."""

    def __init__(self, config: ClientConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(_NAME, f"Missing API key: {config.api_key_env}", ErrorKind.UNAUTHORIZED)
        # Retries are owned by the round executor
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url, max_retries=0)

    def name(self) -> str:
        return _NAME

    async def chat(
        self,
        model: str,
        messages: list[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatReply:
        kwargs: dict = {}
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=model,
                    messages=[m.to_dict() for m in messages],
                    **kwargs,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(
                model, f"Request timed out after {self._config.timeout_sec}s", ErrorKind.NETWORK_ERROR
            ) from exc
        except openai.APIStatusError as exc:
            raise ProviderError(
                model, f"API request failed: {exc.status_code} - {exc.message}", _classify_status(exc.status_code)
            ) from exc
        except openai.APIConnectionError as exc:
            raise ProviderError(model, f"Connection failed: {exc}", ErrorKind.NETWORK_ERROR) from exc
        except Exception as exc:
            raise ProviderError(model, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(model, "No response choices returned from API", ErrorKind.INVALID_RESPONSE)

        usage: TokenUsage | None = None
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        logger.debug(
            "%s replied in %.2fs, %s tokens",
            model,
            latency,
            usage.total_tokens if usage else None,
        )

        return ChatReply(content=choice.message.content, usage=usage)
