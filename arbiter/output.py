"""Rich console rendering for selection results."""

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from arbiter.models import ProviderResponse, SelectionResult
from arbiter.selector import score

console = Console(legacy_windows=False)


def _response_preview(response: ProviderResponse, words: int = 50) -> str:
    """Return first N words of a response."""
    all_words = response.text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def _candidate_subtitle(response: ProviderResponse, result: SelectionResult) -> str:
    parts = [f"score {score(response, result.policy):.2f}", f"{response.latency_ms / 1000:.1f}s"]
    if not response.succeeded:
        parts.append(response.error_kind.value if response.error_kind else "failed")
    return " | ".join(parts)


def print_candidates(result: SelectionResult) -> None:
    """Print a brief panel per candidate, highlighting the winner."""
    console.print(Rule(f"[bold cyan]Candidates ({result.policy.value} policy)[/bold cyan]"))
    for resp in result.candidates:
        is_winner = result.succeeded and resp.provider_id == result.winning_provider_id
        console.print(
            Panel(
                _response_preview(resp),
                title=f"[bold]{resp.provider_id}[/bold] ({resp.model})" + (" [green]winner[/green]" if is_winner else ""),
                subtitle=_candidate_subtitle(resp, result),
                border_style="green" if is_winner else ("red" if not resp.succeeded else "dim"),
            )
        )


def print_answer(result: SelectionResult, title: str | None = None) -> None:
    """Print the winning answer using Rich markdown."""
    heading = title or "Answer"
    console.print(Rule(f"[bold green]{heading}[/bold green]"))
    if result.succeeded:
        console.print(Text(f"Selected: {result.winning_provider_id} | {result.reasoning}", style="dim"))
    else:
        console.print(Text("No provider produced a usable answer.", style="bold red"))
    console.print(Markdown(result.winning_text))


def print_health(results: dict[str, tuple[bool, str]]) -> None:
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
