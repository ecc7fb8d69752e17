"""Creative provider: OpenAI-compatible endpoint with a detailed-explanation persona."""

from arbiter.models import ChatOptions
from arbiter.providers.openai_provider import OpenAIProvider

CREATIVE_PERSONA = (
    "You are a creative and detailed assistant. "
    "Provide comprehensive explanations with examples."
)


class CreativeProvider(OpenAIProvider):
    """Same wire format as OpenAIProvider, always with a system persona."""

    def default_options(self) -> ChatOptions:
        return ChatOptions(
            temperature=self._config.default_temperature,
            max_tokens=self._config.max_tokens,
            system_instruction=self._config.system_instruction or CREATIVE_PERSONA,
        )
