"""Debate orchestration: round loop, convergence stop, synthesis, continuation."""

import dataclasses
import logging
import time
from collections.abc import Callable

from config.config_loader import AppConfig
from roundtable.models import (
    AgentResponse,
    ConvergenceAssessment,
    DebateResult,
    DebateRound,
    DebateSession,
    DebateStatus,
    Intervention,
)
from roundtable.moderator import evaluate_convergence
from roundtable.providers.base import ChatClient
from roundtable.rounds import execute_round
from roundtable.synthesis import synthesize

logger = logging.getLogger(__name__)


class SessionStateError(RuntimeError):
    """Raised when a session is not in a state the requested run accepts."""


async def run_debate(
    session: DebateSession,
    client: ChatClient,
    config: AppConfig,
    on_round_complete: Callable[[DebateRound], None] | None = None,
    on_agent_response: Callable[[AgentResponse], None] | None = None,
) -> DebateResult:
    """Drive a session until convergence or max_rounds, then synthesize.

    The session is mutated in place: rounds are appended, never rewritten.
    The caller must guarantee no other run holds the same session.

    Args:
        session: A pending or in-progress session.
        client: Chat backend shared by agents, moderator and synthesizer.
        config: App config (prompts, sampling, retry, synthesis style).
        on_round_complete: Optional callback invoked after each round is appended.
        on_agent_response: Optional callback invoked for every agent response.

    Returns:
        DebateResult with the completed session and final answer.

    Raises:
        SessionStateError: If the session is already completed.
    """
    if session.status is DebateStatus.COMPLETED:
        raise SessionStateError(f"Session {session.id} is completed; use continue_debate")

    start = time.monotonic()
    debate_config = session.config
    session.status = DebateStatus.IN_PROGRESS
    logger.info(
        "Debate %s: %d agents, up to %d rounds (%d done)",
        session.id, len(debate_config.models), debate_config.max_rounds, len(session.rounds),
    )

    convergence_achieved = False
    latest: ConvergenceAssessment | None = session.rounds[-1].convergence_check if session.rounds else None

    while len(session.rounds) < debate_config.max_rounds and not convergence_achieved:
        current_round = await execute_round(session, client, config, on_agent_response)
        session.rounds.append(current_round)

        if on_round_complete:
            on_round_complete(current_round)

        assessment = await evaluate_convergence(
            client,
            debate_config.moderator_model,
            debate_config.topic,
            session.rounds,
            debate_config.convergence_threshold,
            config,
            session.interventions,
        )
        current_round.convergence_check = assessment
        latest = assessment

        if assessment.is_converged:
            convergence_achieved = True
            session.status = DebateStatus.CONVERGED
            logger.info("Converged after round %d (confidence %.2f)", current_round.number, assessment.confidence_score)

    if not convergence_achieved:
        session.status = DebateStatus.MAX_ROUNDS_REACHED
        logger.info("Reached max rounds (%d) without convergence", debate_config.max_rounds)

    final_answer = await synthesize(
        client,
        debate_config.synthesizer_model,
        debate_config.topic,
        session.rounds,
        config,
        session.interventions,
    )

    session.final_answer = final_answer
    session.convergence_assessment = latest
    session.status = DebateStatus.COMPLETED

    return DebateResult(
        session=session,
        final_answer=final_answer,
        total_rounds=len(session.rounds),
        convergence_achieved=convergence_achieved,
        total_duration_sec=time.monotonic() - start,
    )


async def continue_debate(
    session: DebateSession,
    client: ChatClient,
    config: AppConfig,
    instructions: str | None = None,
    on_round_complete: Callable[[DebateRound], None] | None = None,
    on_agent_response: Callable[[AgentResponse], None] | None = None,
) -> DebateResult:
    """Resume a completed debate for more rounds, optionally steered by the user.

    Prior rounds are kept. max_rounds grows by config.defaults.continue_rounds
    and a non-blank instruction is logged as an Intervention that every later
    context, moderator prompt and synthesis prompt includes.

    Raises:
        SessionStateError: If the session has not completed yet.
    """
    if session.status is not DebateStatus.COMPLETED:
        raise SessionStateError(f"Session {session.id} is {session.status.value}; only completed debates continue")

    session.final_answer = None
    session.status = DebateStatus.IN_PROGRESS
    session.config = dataclasses.replace(
        session.config,
        max_rounds=session.config.max_rounds + config.defaults.continue_rounds,
    )
    if instructions and instructions.strip():
        session.interventions.append(Intervention(text=instructions.strip(), after_round=len(session.rounds)))

    logger.info("Continuing debate %s to at most %d rounds", session.id, session.config.max_rounds)
    return await run_debate(session, client, config, on_round_complete, on_agent_response)
