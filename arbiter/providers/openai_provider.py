"""OpenAI-compatible chat-completion provider (bearer auth) using the openai SDK."""

import logging
import time
from typing import Any

import httpx
from openai import AsyncOpenAI

from arbiter.models import ChatOptions
from arbiter.providers.base import AIProvider, ProviderError, send_chat_request
from config.config_loader import ProviderConfig

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI-compatible endpoint via the openai SDK.

    The deployment candidates are model names; the URL is
    ``{base}/chat/completions`` and auth is an ``Authorization: Bearer`` header.
    """

    def __init__(self, config: ProviderConfig, http_client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        if not config.api_key:
            raise ProviderError(config.name, "Missing API key")
        if not config.endpoint_base_url:
            raise ProviderError(config.name, "base URL is required for an OpenAI-compatible provider")
        self._client = AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.endpoint_base_url,
            max_retries=0,
            http_client=http_client,
        )

    def name(self) -> str:
        return self._config.name

    def deployments(self) -> tuple[str, ...]:
        return self._config.deployment_candidates

    def default_options(self) -> ChatOptions:
        return ChatOptions(
            temperature=self._config.default_temperature,
            max_tokens=self._config.max_tokens,
            system_instruction=self._config.system_instruction,
        )

    def endpoint_url(self, deployment: str) -> str:
        return f"{self._config.endpoint_base_url}/chat/completions"

    async def call(self, query: str, options: ChatOptions, deployment: str) -> Any:
        start = time.monotonic()
        payload = await send_chat_request(
            self._client,
            self._config.name,
            deployment,
            query,
            options,
            self._config.timeout_sec,
        )
        logger.info("%s (%s): %.2fs", self._config.name, deployment, time.monotonic() - start)
        return payload
