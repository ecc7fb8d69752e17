"""Answer pipeline: fan a query out to providers, collect under a deadline, pick the best."""

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from arbiter.agents import AgentGoal, build_agent_prompt, coerce_goal
from arbiter.fallback import try_in_order
from arbiter.models import DispatchMode, ErrorKind, ProviderResponse, SelectionResult
from arbiter.normalizer import failed_response, normalize
from arbiter.providers.azure import AzureProvider
from arbiter.providers.base import AIProvider, ProviderError
from arbiter.providers.creative import CreativeProvider
from arbiter.providers.demo import DemoProvider
from arbiter.providers.openai_provider import OpenAIProvider
from arbiter.selector import NoViableResponse, select
from arbiter.titles import generate_title
from config.config_loader import AppConfig, ProviderConfig

logger = logging.getLogger(__name__)

APOLOGY_TEXT = "I apologize, but I encountered an error processing your request. Please try again."

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "openai": OpenAIProvider,
    "creative": CreativeProvider,
    "azure": AzureProvider,
}


class PipelineState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    COLLECTING = "collecting"
    SCORING = "scoring"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.DISPATCHING}),
    PipelineState.DISPATCHING: frozenset({PipelineState.COLLECTING, PipelineState.FAILED}),
    PipelineState.COLLECTING: frozenset({PipelineState.SCORING, PipelineState.FAILED}),
    PipelineState.SCORING: frozenset({PipelineState.DONE, PipelineState.FAILED}),
}


class PipelineRun:
    """State of one query through the pipeline."""

    def __init__(self) -> None:
        self.state = PipelineState.IDLE
        self.history: list[PipelineState] = [PipelineState.IDLE]

    def advance(self, new_state: PipelineState) -> None:
        if new_state not in _TRANSITIONS.get(self.state, frozenset()):
            raise RuntimeError(f"Illegal pipeline transition {self.state.value} -> {new_state.value}")
        logger.debug("Pipeline %s -> %s", self.state.value, new_state.value)
        self.state = new_state
        self.history.append(new_state)


def build_provider(config: ProviderConfig) -> AIProvider:
    """Build the client for one provider, or its demo stand-in when unconfigured."""
    if not config.is_configured:
        logger.warning("Provider %s has no credentials, answering with demo text", config.name)
        return DemoProvider(config)
    try:
        return PROVIDER_CLASSES[config.kind](config)
    except ProviderError as exc:
        logger.warning("Failed to instantiate provider '%s': %s, using demo text", config.name, exc)
        return DemoProvider(config)


def build_all_providers(config: AppConfig) -> dict[str, AIProvider]:
    """Build every configured provider, keyed by name, in configuration order."""
    return {name: build_provider(cfg) for name, cfg in config.providers.items()}


@dataclass(frozen=True)
class _Snapshot:
    config: AppConfig
    providers: Mapping[str, AIProvider]

    def __post_init__(self) -> None:
        object.__setattr__(self, "providers", MappingProxyType(dict(self.providers)))


async def _call_provider(provider: AIProvider, query: str) -> ProviderResponse:
    """Call one provider through its deployment fallback chain.

    Never raises: failures come back as placeholder responses.
    """
    options = provider.default_options()
    start = time.monotonic()

    async def request(deployment: str) -> tuple[str, Any]:
        return deployment, await provider.call(query, options, deployment)

    try:
        deployment, raw = await try_in_order(provider.deployments(), request, provider.name())
    except ProviderError as exc:
        logger.warning("Provider %s failed: %s", provider.name(), exc)
        return failed_response(
            provider.name(),
            exc.kind,
            model=provider.model_string(),
            latency_ms=(time.monotonic() - start) * 1000,
        )
    except Exception as exc:
        logger.warning("Provider %s unexpected failure: %s", provider.name(), exc)
        return failed_response(
            provider.name(),
            ErrorKind.UNEXPECTED,
            model=provider.model_string(),
            latency_ms=(time.monotonic() - start) * 1000,
        )

    return normalize(raw, provider.name(), model=deployment, latency_ms=(time.monotonic() - start) * 1000)


def _timed_out(provider: AIProvider, timeout_sec: float) -> ProviderResponse:
    logger.warning("Provider %s did not answer within %.1fs", provider.name(), timeout_sec)
    return failed_response(
        provider.name(),
        ErrorKind.TIMEOUT,
        model=provider.model_string(),
        latency_ms=timeout_sec * 1000,
    )


async def _collect_concurrent(
    run: PipelineRun,
    providers: list[AIProvider],
    query: str,
    timeout_sec: float,
) -> list[ProviderResponse]:
    """Launch every provider at once and wait for all of them, up to the deadline."""
    tasks = [asyncio.create_task(_call_provider(p, query)) for p in providers]
    run.advance(PipelineState.COLLECTING)
    done: set[asyncio.Task] = set()
    try:
        if tasks:
            done, _ = await asyncio.wait(tasks, timeout=timeout_sec)
    finally:
        # Abandon stragglers; whatever they return later is never read.
        for task in tasks:
            if not task.done():
                task.cancel()

    return [
        task.result() if task in done else _timed_out(provider, timeout_sec)
        for provider, task in zip(providers, tasks)
    ]


async def _collect_sequential(
    run: PipelineRun,
    providers: list[AIProvider],
    query: str,
    timeout_sec: float,
) -> list[ProviderResponse]:
    """Call providers one after another under a single shared deadline.

    Once the deadline passes, every provider not yet answered counts as timed out.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_sec
    run.advance(PipelineState.COLLECTING)

    responses: list[ProviderResponse] = []
    for provider in providers:
        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        try:
            responses.append(await asyncio.wait_for(_call_provider(provider, query), timeout=remaining))
        except TimeoutError:
            break
    responses.extend(_timed_out(p, timeout_sec) for p in providers[len(responses):])
    return responses


class Orchestrator:
    """Entry points used by the chat front end.

    Each call reads one configuration snapshot for its whole lifetime;
    ``update_config`` only affects calls that start afterwards.
    """

    def __init__(self, config: AppConfig, providers: dict[str, AIProvider] | None = None) -> None:
        self._snapshot = _Snapshot(
            config=config,
            providers=providers if providers is not None else build_all_providers(config),
        )

    @property
    def config(self) -> AppConfig:
        return self._snapshot.config

    @property
    def providers(self) -> dict[str, AIProvider]:
        return dict(self._snapshot.providers)

    def update_config(self, config: AppConfig, providers: dict[str, AIProvider] | None = None) -> None:
        self._snapshot = _Snapshot(
            config=config,
            providers=providers if providers is not None else build_all_providers(config),
        )
        logger.info("Configuration updated: %s", ", ".join(config.providers))

    def _panel(self, snapshot: _Snapshot, pinned_model: str | None) -> list[AIProvider]:
        if pinned_model:
            provider_id = snapshot.config.resolve_provider(pinned_model)
            if provider_id is not None and provider_id in snapshot.providers:
                return [snapshot.providers[provider_id]]
            logger.warning("Pinned model '%s' is not a configured provider, using all providers", pinned_model)
        return list(snapshot.providers.values())

    async def ask(self, query: str, *, pinned_model: str | None = None) -> SelectionResult:
        """Run the full pipeline and return the selection, or the apology result on failure."""
        snapshot = self._snapshot
        defaults = snapshot.config.defaults
        providers = self._panel(snapshot, pinned_model)
        run = PipelineRun()

        run.advance(PipelineState.DISPATCHING)
        logger.info(
            "Dispatching to %d provider(s) (%s): %s",
            len(providers),
            defaults.dispatch_mode.value,
            ", ".join(p.name() for p in providers),
        )
        if defaults.dispatch_mode is DispatchMode.SEQUENTIAL:
            responses = await _collect_sequential(run, providers, query, defaults.timeout_sec)
        else:
            responses = await _collect_concurrent(run, providers, query, defaults.timeout_sec)

        run.advance(PipelineState.SCORING)
        try:
            result = select(responses, defaults.scoring_policy)
        except NoViableResponse as exc:
            run.advance(PipelineState.FAILED)
            logger.warning("All %d provider(s) failed, returning apology", len(exc.candidates))
            return SelectionResult(
                winning_text=APOLOGY_TEXT,
                winning_provider_id="",
                candidates=exc.candidates,
                reasoning=str(exc),
                policy=defaults.scoring_policy,
                succeeded=False,
            )

        run.advance(PipelineState.DONE)
        return result

    async def get_optimized_answer(self, query: str, *, detailed: bool = False) -> str | SelectionResult:
        """Best answer across all providers; the full SelectionResult when ``detailed``."""
        result = await self.ask(query)
        return result if detailed else result.winning_text

    async def get_agent_response(
        self,
        query: str,
        agent_goal: AgentGoal | dict | str | None,
        pinned_model: str | None = None,
    ) -> str:
        """Answer inside an agent's goal scope, on its pinned provider if it has one."""
        goal = coerce_goal(agent_goal)
        prompt = build_agent_prompt(query, goal) if goal else query
        result = await self.ask(prompt, pinned_model=pinned_model)
        return result.winning_text

    async def generate_chat_title(self, response_text: Any) -> str:
        return generate_title(response_text)
