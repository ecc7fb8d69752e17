"""Shared pytest fixtures."""

from typing import Any
from unittest.mock import AsyncMock

import pytest

from arbiter.models import ChatOptions, ProviderResponse
from arbiter.providers.base import AIProvider
from config.config_loader import AppConfig, DefaultsConfig, ProviderConfig


def chat_payload(text: str, model: str = "mock-model", completion_tokens: int = 10) -> dict:
    return {
        "id": "chatcmpl-1",
        "model": model,
        "choices": [{"index": 0, "message": {"role": "assistant", "content": text}}],
        "usage": {"completion_tokens": completion_tokens, "total_tokens": completion_tokens + 5},
    }


def make_provider_config(
    name: str = "test_provider",
    kind: str = "openai",
    endpoint: str = "",
    api_key: str = "",
    deployments: tuple[str, ...] = ("model-1",),
    **overrides: Any,
) -> ProviderConfig:
    fields: dict[str, Any] = dict(
        name=name,
        kind=kind,
        endpoint_base_url=endpoint,
        api_key=api_key,
        deployment_candidates=deployments,
        default_temperature=0.7,
        max_tokens=1000,
        timeout_sec=10.0,
        label=name.title(),
    )
    fields.update(overrides)
    return ProviderConfig(**fields)


def make_response(
    text: str,
    provider_id: str = "mock",
    succeeded: bool = True,
    confidence: float = 0.5,
    tokens: int = 10,
) -> ProviderResponse:
    return ProviderResponse(
        text=text,
        provider_id=provider_id,
        model="mock-model",
        confidence_estimate=confidence,
        token_estimate=tokens,
        latency_ms=5.0,
        succeeded=succeeded,
    )


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(
        self,
        provider_name: str = "mock",
        response_text: str = "Mock response",
        deployments: tuple[str, ...] = ("mock-model",),
    ) -> None:
        self._name = provider_name
        self._response_text = response_text
        self._deployments = deployments
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because call is defined in the class body below.
        self.call = AsyncMock(return_value=chat_payload(response_text))  # type: ignore[method-assign]

    def name(self) -> str:
        return self._name

    def deployments(self) -> tuple[str, ...]:
        return self._deployments

    def default_options(self) -> ChatOptions:
        return ChatOptions()

    def endpoint_url(self, deployment: str) -> str:
        return f"mock://{self._name}/{deployment}"

    async def call(self, query: str, options: ChatOptions, deployment: str) -> Any:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return chat_payload(self._response_text)


@pytest.fixture
def sample_defaults_config() -> DefaultsConfig:
    return DefaultsConfig(timeout_sec=2.0)


@pytest.fixture
def sample_app_config(sample_defaults_config: DefaultsConfig) -> AppConfig:
    return AppConfig(
        defaults=sample_defaults_config,
        providers={
            "provider_a": make_provider_config("provider_a"),
            "provider_b": make_provider_config("provider_b"),
        },
        aliases={"gpt-4": "provider_b"},
    )


@pytest.fixture
def two_mock_providers() -> dict[str, MockProvider]:
    return {
        "provider_a": MockProvider("provider_a", "Response from A"),
        "provider_b": MockProvider("provider_b", "A longer response from provider B"),
    }
