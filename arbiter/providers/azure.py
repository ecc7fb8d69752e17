"""Azure OpenAI deployment provider using the openai SDK's Azure client."""

import logging
import time
from typing import Any

import httpx
from openai import AsyncAzureOpenAI

from arbiter.models import ChatOptions
from arbiter.providers.base import AIProvider, ProviderError, send_chat_request
from config.config_loader import ProviderConfig

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2024-02-15-preview"


class AzureProvider(AIProvider):
    """Azure OpenAI via deployment-scoped URLs and the ``api-key`` header."""

    def __init__(self, config: ProviderConfig, http_client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        if not config.api_key:
            raise ProviderError(config.name, "Missing API key")
        if not config.endpoint_base_url:
            raise ProviderError(config.name, "endpoint is required for Azure OpenAI")
        self._api_version = config.api_version or DEFAULT_API_VERSION
        self._client = AsyncAzureOpenAI(
            api_key=config.api_key,
            azure_endpoint=config.endpoint_base_url,
            api_version=self._api_version,
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
        return (
            f"{self._config.endpoint_base_url}/openai/deployments/{deployment}"
            f"/chat/completions?api-version={self._api_version}"
        )

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
        logger.info("Azure %s: %.2fs", deployment, time.monotonic() - start)
        return payload
