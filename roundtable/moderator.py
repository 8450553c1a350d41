"""Convergence evaluation: moderator prompt, defensive decode, score clamping."""

import json
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

from config.config_loader import AppConfig
from roundtable.models import ConvergenceAssessment, DebateRound, Intervention
from roundtable.providers.base import ChatClient, ChatMessage, ProviderError

logger = logging.getLogger(__name__)

FAILURE_PREFIX = "Moderator evaluation failed"

_RAW_PREVIEW_CHARS = 200


class AssessmentParseError(ValueError):
    """Raised when a moderator reply does not hold a usable assessment."""


@dataclass
class RawAssessment:
    """Assessment exactly as the moderator reported it, before clamping."""

    is_converged: bool
    confidence_score: float
    reasoning: str


def _first_json_object(text: str) -> dict | None:
    decoder = json.JSONDecoder()
    pos = text.find("{")
    while pos != -1:
        try:
            obj, _ = decoder.raw_decode(text, pos)
        except json.JSONDecodeError:
            pass
        else:
            if isinstance(obj, dict):
                return obj
        pos = text.find("{", pos + 1)
    return None


def decode_assessment(text: str) -> RawAssessment:
    """Extract the first JSON object in ``text`` and type-check its fields.

    Raises:
        AssessmentParseError: If no object is found or a field is missing or mistyped.
    """
    obj = _first_json_object(text)
    if obj is None:
        raise AssessmentParseError("No JSON found in response")

    is_converged = obj.get("isConverged")
    if not isinstance(is_converged, bool):
        raise AssessmentParseError("isConverged must be a boolean")

    score = obj.get("confidenceScore")
    if not isinstance(score, (int, float)) or isinstance(score, bool):
        raise AssessmentParseError("confidenceScore must be a number")

    reasoning = obj.get("reasoning")
    if not isinstance(reasoning, str):
        raise AssessmentParseError("reasoning must be a string")

    try:
        confidence = float(score)
    except OverflowError:
        # int too large for a float
        confidence = math.inf if score > 0 else -math.inf

    return RawAssessment(is_converged=is_converged, confidence_score=confidence, reasoning=reasoning)


def clamp_confidence(score: float) -> float:
    if math.isnan(score):
        return 0.0
    return max(0.0, min(1.0, score))


def finalize_assessment(raw: RawAssessment, threshold: float) -> ConvergenceAssessment:
    """Clamp the score and require it to meet the threshold for convergence."""
    score = clamp_confidence(raw.confidence_score)
    return ConvergenceAssessment(
        is_converged=raw.is_converged and score >= threshold,
        confidence_score=score,
        reasoning=raw.reasoning,
    )


def failed_assessment(reason: str) -> ConvergenceAssessment:
    return ConvergenceAssessment(
        is_converged=False,
        confidence_score=0.0,
        reasoning=f"{FAILURE_PREFIX}: {reason}",
    )


def build_convergence_prompt(
    topic: str,
    rounds: Sequence[DebateRound],
    threshold: float,
    instructions: str,
    interventions: Sequence[Intervention] = (),
) -> str:
    """Format the rounds for the moderator. Errored responses are left out."""
    parts = [
        f'Topic: "{topic}"',
        f"Convergence Threshold: {threshold}",
        "Please analyze the following debate rounds to determine convergence:",
    ]
    for rnd in rounds:
        lines = [f"=== Round {rnd.number} ==="]
        for response in rnd.responses:
            if not response.failed:
                lines.append(f"{response.model}: {response.content}")
        for note in interventions:
            if note.after_round == rnd.number:
                lines.append(f"User guidance: {note.text}")
        parts.append("\n\n".join(lines))
    parts.append(instructions)
    return "\n\n".join(parts)


async def evaluate_convergence(
    client: ChatClient,
    model: str,
    topic: str,
    rounds: Sequence[DebateRound],
    threshold: float,
    config: AppConfig,
    interventions: Sequence[Intervention] = (),
) -> ConvergenceAssessment:
    """Ask the moderator model whether the debate has converged.

    Never raises. Any failure yields a non-converged, zero-confidence
    assessment whose reasoning starts with FAILURE_PREFIX.
    """
    if not rounds:
        return ConvergenceAssessment(is_converged=False, confidence_score=0.0, reasoning="No rounds to evaluate")

    prompt = build_convergence_prompt(
        topic, rounds, threshold, config.prompts.moderator_instructions, interventions
    )
    messages = [
        ChatMessage("system", config.prompts.moderator_system),
        ChatMessage("user", prompt),
    ]

    try:
        reply = await client.chat(
            model,
            messages,
            temperature=config.moderator_sampling.temperature,
            max_tokens=config.moderator_sampling.max_tokens,
        )
    except ProviderError as exc:
        logger.warning("Moderator %s call failed: %s", model, exc)
        return failed_assessment(str(exc))
    except Exception as exc:
        logger.warning("Moderator %s unexpected failure: %s", model, exc)
        return failed_assessment(f"Unexpected error: {exc}")

    content = reply.content or ""
    if not content.strip():
        logger.warning("Moderator %s returned empty content", model)
        return failed_assessment("No response content from moderator")

    try:
        raw = decode_assessment(content)
    except AssessmentParseError as exc:
        logger.warning("Could not parse moderator reply: %s", exc)
        preview = content[:_RAW_PREVIEW_CHARS]
        return failed_assessment(f"could not parse moderator response ({exc}). Raw content: {preview}")

    assessment = finalize_assessment(raw, threshold)
    logger.info(
        "Moderator verdict after round %d: converged=%s, confidence=%.2f",
        rounds[-1].number,
        assessment.is_converged,
        assessment.confidence_score,
    )
    return assessment
