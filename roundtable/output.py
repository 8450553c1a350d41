"""Rich console output and markdown transcript save for debate results."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from roundtable.models import AgentResponse, ConvergenceAssessment, DebateResult, DebateRound

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _topic_stem(topic: str, max_len: int = 40) -> str:
    """Filename stem from the leading words of the topic, cut at a word boundary."""
    words = re.findall(r"[a-z0-9]+", topic.lower())
    stem = ""
    for word in words:
        candidate = f"{stem}-{word}" if stem else word
        if len(candidate) > max_len:
            break
        stem = candidate
    return stem or (words[0][:max_len] if words else "debate")


def _panel_body(response: AgentResponse, words: int = 50) -> str:
    if response.failed:
        return response.error or ""
    head, _, rest = response.content.strip().partition("\n\n")
    clipped = head.split()
    body = " ".join(clipped[:words])
    return body + "..." if rest or len(clipped) > words else body


def _assessment_lines(assessment: ConvergenceAssessment) -> list[str]:
    return [
        f"Converged: {'Yes' if assessment.is_converged else 'No'}",
        f"Confidence Score: {assessment.confidence_score:.2f}",
        f"Reasoning: {assessment.reasoning}",
    ]


def print_round_summary(rnd: DebateRound) -> None:
    """Print a brief summary of round responses to the console."""
    console.print(Rule(f"[bold cyan]Round {rnd.number} Summary[/bold cyan]"))
    for resp in rnd.responses:
        console.print(
            Panel(
                _panel_body(resp),
                title=f"[bold]{resp.model}[/bold]",
                subtitle=None if resp.failed else f"{resp.latency_sec:.1f}s",
                border_style="red" if resp.failed else "dim",
            )
        )
    if rnd.convergence_check:
        console.print(Text(" | ".join(_assessment_lines(rnd.convergence_check)), style="dim"))


def print_synthesis(result: DebateResult) -> None:
    """Print the final answer to the console using Rich markdown."""
    session = result.session
    console.print(Rule("[bold green]Final Synthesized Answer[/bold green]"))
    console.print(
        Text(
            f"Synthesized by: {session.config.synthesizer_model} | "
            f"Duration: {result.total_duration_sec:.1f}s | "
            f"Rounds: {result.total_rounds} | "
            f"Converged: {'yes' if result.convergence_achieved else 'no'}",
            style="dim",
        )
    )
    console.print(Markdown(result.final_answer))


def format_debate_history(result: DebateResult) -> str:
    """Render the whole debate as a markdown document."""
    session = result.session
    cfg = session.config

    lines: list[str] = [
        f"# Debate: {cfg.topic[:80]}",
        "",
        f"**Topic:** {cfg.topic}",
        f"**Panel:** {', '.join(cfg.models)}",
        f"**Moderator:** {cfg.moderator_model}",
        f"**Synthesizer:** {cfg.synthesizer_model}",
        f"**Total Rounds:** {result.total_rounds}",
        f"**Convergence Achieved:** {'Yes' if result.convergence_achieved else 'No'}",
        f"**Status:** {session.status.value}",
        f"**Session:** {session.id}",
        "",
        "---",
        "",
    ]

    for rnd in session.rounds:
        lines.append(f"## Round {rnd.number}")
        lines.append("")
        for resp in rnd.responses:
            lines.append(f"### {resp.model}")
            lines.append("")
            if resp.failed:
                lines.append(f"**ERROR:** {resp.error}")
            else:
                lines.append(resp.content)
            lines.append("")
            lines.append(
                f"*Timestamp: {resp.timestamp.isoformat()}"
                + (f" | Latency: {resp.latency_sec:.2f}s" if resp.latency_sec else "")
                + (f" | Tokens: {resp.token_count}" if resp.token_count else "")
                + "*"
            )
            lines.append("")
        if rnd.convergence_check:
            lines.append("#### Convergence Assessment")
            lines.append("")
            lines += [f"- {line}" for line in _assessment_lines(rnd.convergence_check)]
            lines.append("")
        for note in session.interventions:
            if note.after_round == rnd.number:
                lines.append(f"> **User guidance:** {note.text}")
                lines.append("")

    lines += [
        "## Final Synthesized Answer",
        "",
        result.final_answer,
        "",
    ]

    last_check = session.rounds[-1].convergence_check if session.rounds else None
    if session.convergence_assessment and session.convergence_assessment is not last_check:
        lines.append("## Final Convergence Assessment")
        lines.append("")
        lines += [f"- {line}" for line in _assessment_lines(session.convergence_assessment)]
        lines.append("")

    return "\n".join(lines)


def save_to_file(result: DebateResult, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the full debate transcript as a markdown file.

    Args:
        result: The completed DebateResult.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the topic.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _topic_stem(result.session.config.topic)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    filepath.write_text(format_debate_history(result), encoding="utf-8")
    logger.info("Debate saved to: %s", filepath)
    return filepath
