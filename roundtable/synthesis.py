"""Final synthesis: build transcript, call synthesizer, fall back to an extractive summary."""

import logging
from collections.abc import Sequence

from config.config_loader import AppConfig, SynthesisPrompt
from roundtable.models import DebateRound, Intervention
from roundtable.providers.base import ChatClient, ChatMessage, ProviderError

logger = logging.getLogger(__name__)

_KEY_POINT_CHARS = 200


def _format_full_transcript(rounds: Sequence[DebateRound], interventions: Sequence[Intervention] = ()) -> str:
    """Format all rounds into a single transcript string for synthesis."""
    parts: list[str] = []
    for rnd in rounds:
        parts.append(f"--- Round {rnd.number} ---")
        for resp in rnd.responses:
            if resp.failed:
                parts.append(f"{resp.model}: [Error: {resp.error}]")
            else:
                parts.append(f"{resp.model}:\n{resp.content}")
        if rnd.convergence_check:
            parts.append(
                f"Moderator Assessment: {rnd.convergence_check.reasoning}\n"
                f"Convergence Score: {rnd.convergence_check.confidence_score}"
            )
        for note in interventions:
            if note.after_round == rnd.number:
                parts.append(f"User guidance: {note.text}")
    return "\n\n".join(parts)


def build_synthesis_prompt(
    topic: str,
    rounds: Sequence[DebateRound],
    instructions: str,
    interventions: Sequence[Intervention] = (),
) -> str:
    return "\n\n".join([
        f'Topic: "{topic}"',
        "Please synthesize a comprehensive final answer based on the following debate between multiple AI agents.",
        "=== DEBATE HISTORY ===",
        _format_full_transcript(rounds, interventions),
        "=== SYNTHESIS INSTRUCTIONS ===",
        instructions,
    ])


def _key_point(content: str) -> str:
    text = content.strip()
    if len(text) > _KEY_POINT_CHARS:
        return text[:_KEY_POINT_CHARS] + "..."
    return text


def fallback_synthesis(topic: str, rounds: Sequence[DebateRound], error: object) -> str:
    """Deterministic summary from each agent's first usable contribution. Never raises."""
    first_points: dict[str, str] = {}
    for rnd in rounds:
        for resp in rnd.responses:
            if resp.failed or not resp.content.strip() or resp.model in first_points:
                continue
            first_points[resp.model] = _key_point(resp.content)

    lines = [
        f'Final Answer for: "{topic}"',
        "",
        "[Note: Automated synthesis failed, providing structured summary]",
        "",
        "Key Perspectives:",
        "",
    ]
    if first_points:
        for model, point in first_points.items():
            lines += [f"{model}:", f"- {point}", ""]
    else:
        lines += ["No agent contributions were available.", ""]

    lines.append(f"Synthesis Error: {error or 'Unknown error occurred during synthesis'}")
    return "\n".join(lines)


def _prompt_for_style(config: AppConfig, style: str | None) -> SynthesisPrompt:
    wanted = style or config.defaults.synthesis_style
    variants = config.prompts.synthesis
    if wanted in variants:
        return variants[wanted]
    if not variants:
        raise KeyError("No synthesis prompt variants configured")
    fallback_style = next(iter(variants))
    logger.warning("Unknown synthesis style '%s', using '%s'", wanted, fallback_style)
    return variants[fallback_style]


async def synthesize(
    client: ChatClient,
    model: str,
    topic: str,
    rounds: Sequence[DebateRound],
    config: AppConfig,
    interventions: Sequence[Intervention] = (),
    style: str | None = None,
) -> str:
    """Produce the final answer from the whole debate.

    Args:
        client: Chat backend.
        model: Synthesizer model identifier.
        topic: The debate topic.
        rounds: All completed rounds, with their convergence checks.
        config: App config carrying prompts and sampling.
        interventions: User guidance notes given between runs.
        style: Synthesis prompt variant; defaults to config.defaults.synthesis_style.

    Returns:
        Non-empty answer text. Falls back to an extractive summary when the
        synthesizer call fails or returns nothing.
    """
    if not rounds:
        return f'No debate rounds available for topic: "{topic}". Unable to provide a synthesized answer.'

    try:
        prompt_variant = _prompt_for_style(config, style)
    except KeyError as exc:
        logger.warning("Synthesis skipped: %s", exc)
        return fallback_synthesis(topic, rounds, exc)

    messages = [
        ChatMessage("system", prompt_variant.system),
        ChatMessage("user", build_synthesis_prompt(topic, rounds, prompt_variant.instructions, interventions)),
    ]

    logger.info("Running synthesis via %s", model)

    try:
        reply = await client.chat(
            model,
            messages,
            temperature=config.synthesizer_sampling.temperature,
            max_tokens=config.synthesizer_sampling.max_tokens,
        )
    except ProviderError as exc:
        logger.warning("Synthesizer %s failed, using fallback summary: %s", model, exc)
        return fallback_synthesis(topic, rounds, exc)
    except Exception as exc:
        logger.warning("Synthesizer %s unexpected failure, using fallback summary: %s", model, exc)
        return fallback_synthesis(topic, rounds, exc)

    content = (reply.content or "").strip()
    if not content:
        logger.warning("Synthesizer %s returned empty content, using fallback summary", model)
        return fallback_synthesis(topic, rounds, "No response content from synthesizer")
    return content
