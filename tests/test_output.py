"""Tests for arbiter/output.py."""

import pytest
from rich.console import Console

import arbiter.output as output
from arbiter.models import ErrorKind, ScoringPolicy, SelectionResult
from arbiter.normalizer import failed_response
from tests.conftest import make_response


@pytest.fixture
def recording_console(monkeypatch) -> Console:
    console = Console(record=True, width=120, legacy_windows=False)
    monkeypatch.setattr(output, "console", console)
    return console


@pytest.fixture
def sample_result() -> SelectionResult:
    winner = make_response("A detailed answer about renewable energy.", "creative")
    return SelectionResult(
        winning_text=winner.text,
        winning_provider_id="creative",
        candidates=(
            make_response("Short.", "openai"),
            winner,
            failed_response("azure", ErrorKind.TIMEOUT, latency_ms=30000),
        ),
        reasoning="Selected creative by length policy",
        policy=ScoringPolicy.LENGTH,
    )


def test_response_preview_truncates():
    resp = make_response(" ".join(["word"] * 80))
    preview = output._response_preview(resp, words=5)
    assert preview == "word word word word word..."


def test_print_candidates_lists_every_provider(recording_console, sample_result):
    output.print_candidates(sample_result)
    text = recording_console.export_text()
    assert "openai" in text
    assert "creative" in text
    assert "winner" in text
    assert "timeout" in text


def test_print_answer_success(recording_console, sample_result):
    output.print_answer(sample_result, title="Renewable Energy")
    text = recording_console.export_text()
    assert "Renewable Energy" in text
    assert "renewable energy" in text
    assert "Selected: creative" in text


def test_print_answer_failure(recording_console):
    result = SelectionResult(
        winning_text="I apologize.",
        winning_provider_id="",
        candidates=(),
        reasoning="No viable response",
        policy=ScoringPolicy.LENGTH,
        succeeded=False,
    )
    output.print_answer(result)
    assert "No provider produced a usable answer." in recording_console.export_text()


def test_print_health(recording_console):
    output.print_health({"openai": (True, ""), "azure": (False, "HTTP 401: denied\nmore")})
    text = recording_console.export_text()
    assert "OK" in text
    assert "FAIL" in text
    assert "more" not in text
