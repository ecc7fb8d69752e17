"""Abstract base for all LLM providers and the provider error taxonomy."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any

import openai

from arbiter.models import ChatOptions, ErrorKind

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Raised when a provider call fails."""

    kind = ErrorKind.UNEXPECTED

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class TransportError(ProviderError):
    """No response reached us: connection refused, DNS, request timeout."""

    kind = ErrorKind.TRANSPORT


class HttpError(ProviderError):
    """The endpoint answered with a non-2xx status."""

    kind = ErrorKind.HTTP

    def __init__(self, provider_name: str, status: int, body: str) -> None:
        self.status = status
        self.body = body
        super().__init__(provider_name, f"HTTP {status}: {body[:200]}")


class ParseError(ProviderError):
    """The endpoint answered 2xx but the body is not JSON."""

    kind = ErrorKind.PARSE


class AllDeploymentsUnavailable(ProviderError):
    """Every deployment candidate of one provider failed."""

    kind = ErrorKind.ALL_DEPLOYMENTS_UNAVAILABLE

    def __init__(self, provider_name: str, failures: list[tuple[str, ProviderError]]) -> None:
        self.failures = failures
        if failures:
            detail = "; ".join(f"{candidate}: {err}" for candidate, err in failures)
        else:
            detail = "no deployment candidates configured"
        super().__init__(provider_name, f"All deployments unavailable ({detail})")


class AIProvider(ABC):
    """Abstract base for all LLM providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the provider id (e.g. 'openai', 'azure')."""
        ...

    @abstractmethod
    def deployments(self) -> tuple[str, ...]:
        """Return deployment (or model) candidates in fallback order."""
        ...

    @abstractmethod
    def default_options(self) -> ChatOptions:
        """Return the provider's configured temperature, token limit and persona."""
        ...

    @abstractmethod
    def endpoint_url(self, deployment: str) -> str:
        """Return the request URL for one deployment."""
        ...

    @abstractmethod
    async def call(self, query: str, options: ChatOptions, deployment: str) -> Any:
        """Send one chat request and return the decoded JSON payload.

        Args:
            query: The user message text.
            options: Temperature, token limit and optional system instruction.
            deployment: The deployment or model name to address.

        Returns:
            The raw provider payload (decoded JSON, or a plain string).

        Raises:
            TransportError: No response reached us.
            HttpError: Non-2xx status.
            ParseError: The body is not valid JSON.
        """
        ...

    def model_string(self) -> str:
        candidates = self.deployments()
        return candidates[0] if candidates else ""

    def is_demo(self) -> bool:
        return False


def build_messages(query: str, options: ChatOptions) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    if options.system_instruction:
        messages.append({"role": "system", "content": options.system_instruction})
    messages.append({"role": "user", "content": query})
    return messages


async def send_chat_request(
    client: openai.AsyncOpenAI,
    provider_name: str,
    deployment: str,
    query: str,
    options: ChatOptions,
    timeout_sec: float,
) -> Any:
    """Issue exactly one chat-completion request and decode the body.

    The client must be built with ``max_retries=0``; retrying is the job of
    the fallback wrapper.
    """
    try:
        raw = await asyncio.wait_for(
            client.chat.completions.with_raw_response.create(
                model=deployment,
                messages=build_messages(query, options),
                temperature=options.temperature,
                max_tokens=options.max_tokens,
            ),
            timeout=timeout_sec,
        )
    except TimeoutError as exc:
        raise TransportError(provider_name, f"Request timed out after {timeout_sec}s") from exc
    except openai.APIStatusError as exc:
        raise HttpError(provider_name, exc.status_code, exc.response.text) from exc
    except openai.APIConnectionError as exc:
        raise TransportError(provider_name, f"Connection failed: {exc}") from exc
    except openai.OpenAIError as exc:
        raise TransportError(provider_name, f"API call failed: {exc}") from exc

    body = raw.http_response.text
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise ParseError(provider_name, f"Malformed JSON body: {body[:200]!r}") from exc

    logger.debug("%s/%s answered HTTP %d", provider_name, deployment, raw.http_response.status_code)
    return payload
