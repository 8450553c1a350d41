"""Click CLI: wires config loading, client, session store, debate loop, and output."""

import asyncio
import dataclasses
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from roundtable.healthcheck import run_health_checks
from roundtable.models import AVAILABLE_MODELS, AgentResponse, DebateResult, DebateRound, DebateSession
from roundtable.orchestrator import continue_debate, run_debate
from roundtable.output import print_round_summary, print_synthesis, save_to_file
from roundtable.providers.ai_builder import AIBuilderClient
from roundtable.providers.base import ChatClient, ProviderError
from roundtable.session import SessionStore
from roundtable.validation import InvalidConfigError, build_debate_config

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _parse_models(models_arg: str | None) -> list[str] | None:
    """Split a comma-separated model list. None means use the configured default."""
    if not models_arg:
        return None
    return [m.strip() for m in models_arg.split(",") if m.strip()]


def _with_style(config: AppConfig, style: str | None) -> AppConfig:
    if not style:
        return config
    if style not in config.prompts.synthesis:
        raise click.BadParameter(
            f"'{style}' is not one of: {', '.join(sorted(config.prompts.synthesis))}",
            param_hint="--style",
        )
    return dataclasses.replace(config, defaults=dataclasses.replace(config.defaults, synthesis_style=style))


def _check_models(client: ChatClient, models: Sequence[str]) -> None:
    """Ping every model, print results, and ask whether to go on when some fail.

    Failing agents only degrade a debate, so the user may continue.
    """
    console.print("\n[bold]Checking models...[/bold]")
    results = asyncio.run(run_health_checks(client, list(models)))

    failed = []
    for model, (ok, err) in results.items():
        if ok:
            console.print(f"  [green]OK  [/green] {model}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {model}: {short_err}")
            failed.append(model)

    console.print()
    if not failed:
        return
    if len(failed) == len(results):
        console.print("[bold red]Error:[/bold red] No model passed the health check.")
        sys.exit(1)
    if not click.confirm(f"{len(failed)} model(s) failed. Debate anyway?", default=True):
        sys.exit(0)


async def _drive(
    session: DebateSession,
    client: ChatClient,
    config: AppConfig,
    instructions: str | None = None,
) -> DebateResult:
    """Run or continue one session with a live progress display."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Running debate rounds...", total=None)

        def on_agent_response(response: AgentResponse) -> None:
            if response.failed:
                progress.print(f"  [red]FAIL[/red] {response.model}: {response.error}")
            else:
                progress.print(f"  [green]OK  [/green] {response.model} ({response.latency_sec:.1f}s)")

        def on_round_complete(rnd: DebateRound) -> None:
            ok = sum(1 for r in rnd.responses if not r.failed)
            progress.print(f"[green]OK[/green] Round {rnd.number} complete ({ok}/{len(rnd.responses)} responses)")
            progress.update(task, description=f"Evaluating round {rnd.number}...")

        if instructions is None:
            return await run_debate(session, client, config, on_round_complete, on_agent_response)
        return await continue_debate(session, client, config, instructions, on_round_complete, on_agent_response)


def _report(result: DebateResult, already_shown: int, output_dir: Path) -> Path:
    for rnd in result.session.rounds[already_shown:]:
        print_round_summary(rnd)
    print_synthesis(result)
    saved_path = save_to_file(result, output_dir)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    return saved_path


async def _run_session(
    store: SessionStore,
    session_id: str,
    client: ChatClient,
    config: AppConfig,
    output_dir: Path,
    interactive: bool,
) -> DebateResult:
    async with store.lease(session_id) as session:
        result = await _drive(session, client, config)
        _report(result, 0, output_dir)

        while interactive:
            instructions = await asyncio.to_thread(
                click.prompt,
                "\nSteer the debate and continue (leave blank to finish)",
                default="",
                show_default=False,
            )
            if not instructions.strip():
                break
            shown = len(session.rounds)
            result = await _drive(session, client, config, instructions)
            _report(result, shown, output_dir)

    return result


@click.command()
@click.argument("topic", required=False)
@click.option("--file", "topic_file", type=click.Path(exists=True), help="Read the topic from a text file")
@click.option("--models", default=None, help="Comma-separated participant models (default: from config)")
@click.option("--max-rounds", type=int, default=None, help="Maximum number of rounds (default: from config)")
@click.option("--threshold", type=float, default=None, help="Convergence threshold 0-1 (default: from config)")
@click.option("--moderator", default=None, help="Model that judges convergence (default: from config)")
@click.option("--synthesizer", default=None, help="Model that writes the final answer (default: from config)")
@click.option("--style", default=None, help="Synthesis prompt variant, e.g. neutral or integrative")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--interactive", is_flag=True, default=False,
              help="After the debate, prompt for guidance and continue it")
@click.option("--list-models", is_flag=True, default=False, help="List available models and exit")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the model connectivity check at startup")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    topic: str | None,
    topic_file: str | None,
    models: str | None,
    max_rounds: int | None,
    threshold: float | None,
    moderator: str | None,
    synthesizer: str | None,
    style: str | None,
    output_path: str | None,
    interactive: bool,
    list_models: bool,
    skip_health_check: bool,
    verbose: bool,
) -> None:
    """AI Roundtable -- multi-model debate that stops when the models converge.

    \b
    Examples:
      roundtable "What is the best programming language?"
      roundtable "Climate change solutions" --models deepseek,gemini-2.5-pro,gpt-5
      roundtable "AI ethics" --models deepseek,supermind-agent-v1 --max-rounds 3 --threshold 0.7
      roundtable --file topic.txt --style integrative --interactive
    """
    if list_models:
        for model in AVAILABLE_MODELS:
            click.echo(model)
        return

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    config = _with_style(config, style)

    if topic_file:
        topic_text = Path(topic_file).read_text(encoding="utf-8").strip()
    elif topic:
        topic_text = topic
    else:
        console.print("[bold red]Error:[/bold red] Provide a TOPIC argument or --file.")
        sys.exit(1)

    debate_config = build_debate_config(
        topic_text,
        config.defaults,
        models=_parse_models(models),
        max_rounds=max_rounds,
        convergence_threshold=threshold,
        moderator_model=moderator,
        synthesizer_model=synthesizer,
    )

    store = SessionStore()
    try:
        session = store.create(debate_config)
    except InvalidConfigError as exc:
        console.print("[bold red]Invalid debate configuration:[/bold red]")
        for error in exc.errors:
            console.print(f"  {error.field}: {error.message}")
        sys.exit(1)

    try:
        client = AIBuilderClient(config.client)
    except ProviderError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)

    if not skip_health_check:
        _check_models(client, debate_config.models)

    console.print(
        f"\n[bold cyan]AI Roundtable[/bold cyan]: {len(debate_config.models)} models, "
        f"up to {debate_config.max_rounds} rounds, threshold {debate_config.convergence_threshold}"
    )
    console.print(f"Panel: {', '.join(debate_config.models)}")
    console.print(f"Moderator: {debate_config.moderator_model} | Synthesizer: {debate_config.synthesizer_model}")
    console.print(f"Topic: [italic]{topic_text[:80]}{'...' if len(topic_text) > 80 else ''}[/italic]\n")

    output_dir = Path(output_path) if output_path else config.defaults.output_dir
    asyncio.run(_run_session(store, session.id, client, config, output_dir, interactive))


if __name__ == "__main__":
    main()
