"""Tests for arbiter/orchestrator.py."""

import asyncio
import logging
import time
from unittest.mock import AsyncMock

import pytest

from arbiter.models import DispatchMode, ErrorKind, ScoringPolicy, SelectionResult
from arbiter.orchestrator import (
    APOLOGY_TEXT,
    Orchestrator,
    PipelineRun,
    PipelineState,
    build_all_providers,
)
from arbiter.providers.base import HttpError, TransportError
from arbiter.providers.demo import DemoProvider
from tests.conftest import MockProvider, chat_payload, make_provider_config


def _hang_until_cancelled(flag: dict):
    async def hang(*args, **kwargs):
        try:
            await asyncio.sleep(9999)
        except asyncio.CancelledError:
            flag["cancelled"] = True
            raise

    return hang


async def test_length_policy_returns_longest_text(sample_app_config, two_mock_providers):
    orchestrator = Orchestrator(sample_app_config, two_mock_providers)
    answer = await orchestrator.get_optimized_answer("What is AI?")
    assert answer == "A longer response from provider B"


async def test_detailed_returns_selection_result_in_configured_order(sample_app_config, two_mock_providers):
    orchestrator = Orchestrator(sample_app_config, two_mock_providers)
    result = await orchestrator.get_optimized_answer("What is AI?", detailed=True)
    assert isinstance(result, SelectionResult)
    assert [c.provider_id for c in result.candidates] == ["provider_a", "provider_b"]
    assert result.succeeded is True


async def test_every_provider_called_once_with_query(sample_app_config, two_mock_providers):
    orchestrator = Orchestrator(sample_app_config, two_mock_providers)
    await orchestrator.ask("Explain qubits")
    for provider in two_mock_providers.values():
        provider.call.assert_awaited_once()
        assert provider.call.await_args.args[0] == "Explain qubits"


async def test_candidate_order_follows_configuration_not_completion(sample_app_config):
    slow = MockProvider("provider_a", "slow answer")
    fast = MockProvider("provider_b", "fast")

    async def slow_call(*args, **kwargs):
        await asyncio.sleep(0.05)
        return chat_payload("slow answer")

    slow.call = AsyncMock(side_effect=slow_call)
    orchestrator = Orchestrator(sample_app_config, {"provider_a": slow, "provider_b": fast})

    result = await orchestrator.ask("q")

    assert [c.provider_id for c in result.candidates] == ["provider_a", "provider_b"]


async def test_single_success_wins_when_others_fail(sample_app_config, two_mock_providers):
    two_mock_providers["provider_b"].call = AsyncMock(side_effect=HttpError("provider_b", 503, "busy"))
    orchestrator = Orchestrator(sample_app_config, two_mock_providers)

    result = await orchestrator.ask("q")

    assert result.winning_text == "Response from A"
    assert result.winning_provider_id == "provider_a"
    failed = result.candidates[1]
    assert failed.succeeded is False
    assert failed.error_kind is ErrorKind.ALL_DEPLOYMENTS_UNAVAILABLE


async def test_all_fail_returns_apology(sample_app_config, two_mock_providers):
    for provider in two_mock_providers.values():
        provider.call = AsyncMock(side_effect=TransportError(provider.name(), "down"))
    orchestrator = Orchestrator(sample_app_config, two_mock_providers)

    answer = await orchestrator.get_optimized_answer("q")
    result = await orchestrator.get_optimized_answer("q", detailed=True)

    assert answer == APOLOGY_TEXT
    assert result.succeeded is False
    assert result.winning_text == APOLOGY_TEXT
    assert result.winning_provider_id == ""
    assert all(not c.succeeded for c in result.candidates)


async def test_unexpected_provider_exception_is_contained(sample_app_config, two_mock_providers):
    two_mock_providers["provider_a"].call = AsyncMock(side_effect=ZeroDivisionError("bug"))
    orchestrator = Orchestrator(sample_app_config, two_mock_providers)

    result = await orchestrator.ask("q")

    assert result.winning_provider_id == "provider_b"
    assert result.candidates[0].error_kind is ErrorKind.UNEXPECTED


async def test_empty_payload_is_no_content(sample_app_config, two_mock_providers):
    two_mock_providers["provider_b"].call = AsyncMock(return_value={"choices": []})
    orchestrator = Orchestrator(sample_app_config, two_mock_providers)

    result = await orchestrator.ask("q")

    assert result.winning_provider_id == "provider_a"
    assert result.candidates[1].error_kind is ErrorKind.NO_CONTENT


async def test_deployment_fallback_inside_pipeline(sample_app_config):
    provider = MockProvider("provider_a", "from c", deployments=("a", "b", "c"))
    provider.call = AsyncMock(
        side_effect=[
            TransportError("provider_a", "refused"),
            HttpError("provider_a", 404, "DeploymentNotFound"),
            chat_payload("from c", model="c"),
        ]
    )
    config = sample_app_config.with_defaults()
    orchestrator = Orchestrator(config, {"provider_a": provider})

    result = await orchestrator.ask("q")

    assert result.winning_text == "from c"
    assert [call.args[2] for call in provider.call.await_args_list] == ["a", "b", "c"]


async def test_timeout_marks_straggler_and_cancels_it(sample_app_config, two_mock_providers):
    flag: dict = {}
    two_mock_providers["provider_b"].call = AsyncMock(side_effect=_hang_until_cancelled(flag))
    config = sample_app_config.with_defaults(timeout_sec=0.05)
    orchestrator = Orchestrator(config, two_mock_providers)

    start = time.monotonic()
    result = await orchestrator.ask("q")
    elapsed = time.monotonic() - start
    await asyncio.sleep(0.01)

    assert elapsed < 1.0
    assert result.winning_provider_id == "provider_a"
    assert result.candidates[1].error_kind is ErrorKind.TIMEOUT
    assert flag.get("cancelled") is True


async def test_all_time_out_resolves_with_apology(sample_app_config, two_mock_providers):
    for provider in two_mock_providers.values():
        provider.call = AsyncMock(side_effect=_hang_until_cancelled({}))
    config = sample_app_config.with_defaults(timeout_sec=0.05)
    orchestrator = Orchestrator(config, two_mock_providers)

    answer = await asyncio.wait_for(orchestrator.get_optimized_answer("q"), timeout=1.0)

    assert answer == APOLOGY_TEXT


async def test_sequential_mode_calls_in_order(sample_app_config, two_mock_providers):
    order: list[str] = []
    for name, provider in two_mock_providers.items():
        async def record(*args, _name=name, **kwargs):
            order.append(_name)
            return chat_payload(f"answer from {_name}")

        provider.call = AsyncMock(side_effect=record)
    config = sample_app_config.with_defaults(dispatch_mode=DispatchMode.SEQUENTIAL)
    orchestrator = Orchestrator(config, two_mock_providers)

    result = await orchestrator.ask("q")

    assert order == ["provider_a", "provider_b"]
    assert len(result.candidates) == 2


async def test_sequential_mode_shares_one_deadline(sample_app_config, two_mock_providers):
    two_mock_providers["provider_a"].call = AsyncMock(side_effect=_hang_until_cancelled({}))
    config = sample_app_config.with_defaults(dispatch_mode=DispatchMode.SEQUENTIAL, timeout_sec=0.05)
    orchestrator = Orchestrator(config, two_mock_providers)

    result = await orchestrator.ask("q")

    assert result.candidates[0].error_kind is ErrorKind.TIMEOUT
    assert result.candidates[1].error_kind is ErrorKind.TIMEOUT
    two_mock_providers["provider_b"].call.assert_not_awaited()


async def test_weighted_policy_from_config(sample_app_config):
    providers = {
        "provider_a": MockProvider("provider_a", "x" * 900),
        "provider_b": MockProvider("provider_b", "concise"),
    }
    providers["provider_a"].call = AsyncMock(return_value={"output": "x" * 900, "confidence": 0.2, "tokens": 400})
    providers["provider_b"].call = AsyncMock(return_value={"output": "concise", "confidence": 0.9, "tokens": 5})
    config = sample_app_config.with_defaults(scoring_policy=ScoringPolicy.WEIGHTED)

    result = await Orchestrator(config, providers).ask("q")

    assert result.winning_provider_id == "provider_b"
    assert result.policy is ScoringPolicy.WEIGHTED


async def test_empty_query_does_not_crash(sample_app_config, two_mock_providers):
    answer = await Orchestrator(sample_app_config, two_mock_providers).get_optimized_answer("")
    assert isinstance(answer, str)


async def test_agent_response_wraps_query_with_goal(sample_app_config, two_mock_providers):
    orchestrator = Orchestrator(sample_app_config, two_mock_providers)

    await orchestrator.get_agent_response("How do I sort a list?", "I want help with Python programming")

    prompt = two_mock_providers["provider_a"].call.await_args.args[0]
    assert "Domain: Python Programming" in prompt
    assert 'User Question: "How do I sort a list?"' in prompt


async def test_agent_pinned_model_uses_single_provider(sample_app_config, two_mock_providers):
    orchestrator = Orchestrator(sample_app_config, two_mock_providers)

    answer = await orchestrator.get_agent_response("q", {"domain": "Cooking", "objective": "Recipes"}, "gpt-4")

    assert answer == "A longer response from provider B"
    two_mock_providers["provider_a"].call.assert_not_awaited()
    two_mock_providers["provider_b"].call.assert_awaited_once()


async def test_pinned_single_provider_still_returns_one_candidate(sample_app_config, two_mock_providers):
    result = await Orchestrator(sample_app_config, two_mock_providers).ask("q", pinned_model="provider_a")
    assert len(result.candidates) == 1
    assert result.winning_provider_id == "provider_a"


async def test_unknown_pinned_model_falls_back_to_fan_out(sample_app_config, two_mock_providers, caplog):
    orchestrator = Orchestrator(sample_app_config, two_mock_providers)
    with caplog.at_level(logging.WARNING):
        result = await orchestrator.ask("q", pinned_model="mystery-model")
    assert len(result.candidates) == 2
    assert any("mystery-model" in msg for msg in caplog.messages)


async def test_agent_without_goal_passes_query_through(sample_app_config, two_mock_providers):
    await Orchestrator(sample_app_config, two_mock_providers).get_agent_response("plain question", "")
    assert two_mock_providers["provider_a"].call.await_args.args[0] == "plain question"


async def test_update_config_does_not_affect_in_flight_call(sample_app_config, two_mock_providers):
    started = asyncio.Event()
    release = asyncio.Event()

    async def gated(*args, **kwargs):
        started.set()
        await release.wait()
        return chat_payload("old config answer")

    two_mock_providers["provider_a"].call = AsyncMock(side_effect=gated)
    orchestrator = Orchestrator(sample_app_config, two_mock_providers)

    in_flight = asyncio.create_task(orchestrator.ask("q"))
    await started.wait()
    replacement = {"provider_c": MockProvider("provider_c", "new")}
    orchestrator.update_config(sample_app_config.with_defaults(timeout_sec=1.0), replacement)
    release.set()
    result = await in_flight

    assert [c.provider_id for c in result.candidates] == ["provider_a", "provider_b"]
    later = await orchestrator.ask("q")
    assert [c.provider_id for c in later.candidates] == ["provider_c"]


async def test_orchestrator_keeps_its_own_provider_map(sample_app_config, two_mock_providers):
    orchestrator = Orchestrator(sample_app_config, two_mock_providers)
    two_mock_providers["provider_c"] = MockProvider("provider_c", "intruder")
    del two_mock_providers["provider_a"]

    result = await orchestrator.ask("q")

    assert [c.provider_id for c in result.candidates] == ["provider_a", "provider_b"]
    assert "provider_c" not in orchestrator.providers


async def test_generate_chat_title_entry_point(sample_app_config, two_mock_providers):
    orchestrator = Orchestrator(sample_app_config, two_mock_providers)
    title = await orchestrator.generate_chat_title("Quantum computing uses qubits to process information.")
    assert title == "Quantum Computing Uses"


async def test_unconfigured_providers_answer_with_demo_text(sample_app_config):
    orchestrator = Orchestrator(sample_app_config)
    assert all(isinstance(p, DemoProvider) for p in orchestrator.providers.values())

    result = await orchestrator.ask("What is AI?")

    assert result.succeeded is True
    assert "simulated response" in result.winning_text


def test_build_all_providers_uses_demo_when_credentials_missing(caplog):
    from config.config_loader import AppConfig, DefaultsConfig

    config = AppConfig(
        defaults=DefaultsConfig(timeout_sec=1.0),
        providers={"openai": make_provider_config("openai", api_key="", endpoint="https://x")},
    )
    with caplog.at_level(logging.WARNING):
        providers = build_all_providers(config)
    assert isinstance(providers["openai"], DemoProvider)
    assert any("demo" in msg for msg in caplog.messages)


def test_pipeline_run_legal_path():
    run = PipelineRun()
    for state in (PipelineState.DISPATCHING, PipelineState.COLLECTING, PipelineState.SCORING, PipelineState.DONE):
        run.advance(state)
    assert run.history[0] is PipelineState.IDLE
    assert run.state is PipelineState.DONE


def test_pipeline_run_rejects_illegal_transition():
    run = PipelineRun()
    with pytest.raises(RuntimeError, match="Illegal pipeline transition"):
        run.advance(PipelineState.SCORING)
    run.advance(PipelineState.DISPATCHING)
    run.advance(PipelineState.COLLECTING)
    run.advance(PipelineState.SCORING)
    run.advance(PipelineState.DONE)
    with pytest.raises(RuntimeError):
        run.advance(PipelineState.DISPATCHING)
