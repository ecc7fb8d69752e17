"""Click CLI: load config, build the orchestrator, ask, print."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from arbiter.agents import AgentGoal, create_agent
from arbiter.healthcheck import run_health_checks
from arbiter.models import DispatchMode, ScoringPolicy, SelectionResult
from arbiter.orchestrator import Orchestrator
from arbiter.output import console, print_answer, print_candidates, print_health
from arbiter.titles import generate_title
from config.config_loader import AppConfig, load_config


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _apply_overrides(
    config: AppConfig,
    policy: str | None,
    mode: str | None,
    timeout: float | None,
) -> AppConfig:
    """CLI flags win over settings.yaml defaults."""
    changes: dict = {}
    if policy:
        changes["scoring_policy"] = ScoringPolicy(policy)
    if mode:
        changes["dispatch_mode"] = DispatchMode(mode)
    if timeout is not None:
        changes["timeout_sec"] = timeout
    return config.with_defaults(**changes) if changes else config


async def _ask_with_progress(orchestrator: Orchestrator, query: str, pinned_model: str | None) -> SelectionResult:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task("Asking providers...", total=None)
        return await orchestrator.ask(query, pinned_model=pinned_model)


def _read_query(query: str | None, query_file: str | None) -> str:
    if query_file:
        return Path(query_file).read_text(encoding="utf-8").strip()
    if query:
        return query
    console.print("[bold red]Error:[/bold red] Provide a QUERY argument or --file.")
    sys.exit(1)


@click.group()
@click.option("--policy", type=click.Choice([p.value for p in ScoringPolicy]), default=None,
              help="Scoring policy (default: from config)")
@click.option("--mode", type=click.Choice([m.value for m in DispatchMode]), default=None,
              help="Dispatch mode (default: from config)")
@click.option("--timeout", type=float, default=None, help="Overall deadline in seconds (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.pass_context
def main(ctx: click.Context, policy: str | None, mode: str | None, timeout: float | None, verbose: bool) -> None:
    """LLM Arbiter -- ask several models, keep the best answer.

    \b
    Examples:
      arbiter ask "What is machine learning?"
      arbiter --policy weighted ask "Explain quantum computing" --details
      arbiter agent "How do I read a CSV?" --goal "I want help with Python programming"
      arbiter title "Quantum computing uses qubits to process information."
      arbiter check
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    ctx.obj = _apply_overrides(config, policy, mode, timeout)


@main.command()
@click.argument("query", required=False)
@click.option("--file", "query_file", type=click.Path(exists=True), help="Read the query from a file")
@click.option("--details", is_flag=True, help="Show every candidate with its score")
@click.option("--model", "pinned_model", default=None, help="Ask a single provider (id or alias)")
@click.pass_obj
def ask(config: AppConfig, query: str | None, query_file: str | None, details: bool, pinned_model: str | None) -> None:
    """Ask every provider and print the best answer."""
    query_text = _read_query(query, query_file)
    orchestrator = Orchestrator(config)

    result = asyncio.run(_ask_with_progress(orchestrator, query_text, pinned_model))

    if details:
        print_candidates(result)
    print_answer(result, title=generate_title(result))


@main.command()
@click.argument("query")
@click.option("--goal", required=True, help="Free-text goal that scopes the agent")
@click.option("--model", "pinned_model", default=None, help="Pin the agent to one provider (id or alias)")
@click.option("--structure-goal", is_flag=True,
              help="Ask a model to structure the goal first instead of keyword parsing")
@click.pass_obj
def agent(config: AppConfig, query: str, goal: str, pinned_model: str | None, structure_goal: bool) -> None:
    """Answer QUERY inside an agent's goal scope."""
    orchestrator = Orchestrator(config)

    async def _run() -> tuple[AgentGoal, str]:
        if structure_goal:
            created = await create_agent(goal, orchestrator, pinned_model)
            agent_goal = created.goal
        else:
            agent_goal = AgentGoal.from_text(goal)
        answer = await orchestrator.get_agent_response(query, agent_goal, pinned_model)
        return agent_goal, answer

    agent_goal, answer = asyncio.run(_run())
    console.print(f"[bold cyan]Agent[/bold cyan] {agent_goal.domain}: [italic]{agent_goal.objective}[/italic]")
    console.print(answer)


@main.command()
@click.argument("text")
def title(text: str) -> None:
    """Print the chat title derived from TEXT."""
    click.echo(generate_title(text))


@main.command()
@click.pass_obj
def check(config: AppConfig) -> None:
    """Test the connection to every configured provider."""
    orchestrator = Orchestrator(config)
    console.print("\n[bold]Checking providers...[/bold]")
    results = asyncio.run(run_health_checks(orchestrator.providers, config.defaults.health_timeout_sec))
    print_health(results)
    if not any(ok for ok, _ in results.values()):
        sys.exit(1)


if __name__ == "__main__":
    main()
