"""Stand-in provider used when a provider has no credentials configured."""

from typing import Any

from arbiter.models import ChatOptions
from arbiter.providers.base import AIProvider
from config.config_loader import ProviderConfig

DEMO_DEPLOYMENT = "demo"


def demo_answer(label: str, query: str) -> str:
    return (
        f"{label} Response: {query}. This is a simulated response because "
        "no API credentials are configured for this provider."
    )


class DemoProvider(AIProvider):
    """Answers with a fixed simulated text so the pipeline runs without credentials."""

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config

    def name(self) -> str:
        return self._config.name

    def deployments(self) -> tuple[str, ...]:
        return (DEMO_DEPLOYMENT,)

    def default_options(self) -> ChatOptions:
        return ChatOptions(
            temperature=self._config.default_temperature,
            max_tokens=self._config.max_tokens,
            system_instruction=self._config.system_instruction,
        )

    def endpoint_url(self, deployment: str) -> str:
        return f"demo://{self._config.name}/{deployment}"

    def is_demo(self) -> bool:
        return True

    async def call(self, query: str, options: ChatOptions, deployment: str) -> Any:
        return demo_answer(self._config.label or self._config.name, query)
