"""Round execution: shared context, concurrent agent calls, retry with backoff."""

import asyncio
import logging
import time
from collections.abc import Callable

from config.config_loader import AppConfig, PromptsConfig, RetryConfig, SamplingConfig
from roundtable.models import AgentResponse, DebateRound, DebateSession, Intervention
from roundtable.providers.base import ChatClient, ChatMessage, ErrorKind, ProviderError

logger = logging.getLogger(__name__)

_NO_CONTENT = "[no response this round]"


def _format_attribution(response: AgentResponse) -> str:
    text = _NO_CONTENT if response.failed or not response.content else response.content
    return f"[Agent {response.model}]: {text}"


def _guidance_message(intervention: Intervention) -> ChatMessage:
    return ChatMessage("user", f"User guidance: {intervention.text}")


def build_context(session: DebateSession, prompts: PromptsConfig) -> list[ChatMessage]:
    """Build the message list every participant sees for the next round.

    Every prior response is attributed to its agent, in round order then
    participant order. Interventions follow the round after which they were
    given.
    """
    messages = [
        ChatMessage("system", prompts.agent_system),
        ChatMessage("user", f"Topic for debate: {session.config.topic}"),
    ]
    messages.extend(
        _guidance_message(i) for i in session.interventions if i.after_round <= 0
    )

    for rnd in session.rounds:
        for response in rnd.responses:
            messages.append(ChatMessage("assistant", _format_attribution(response)))
        messages.extend(
            _guidance_message(i) for i in session.interventions if i.after_round == rnd.number
        )

    if session.rounds:
        messages.append(ChatMessage("user", prompts.agent_follow_up))

    return messages


def backoff_delay(attempt: int, base_delay_sec: float) -> float:
    """Delay before the attempt following ``attempt`` (1-based): base * 2**attempt."""
    return base_delay_sec * (2 ** attempt)


async def query_agent(
    client: ChatClient,
    model: str,
    messages: list[ChatMessage],
    sampling: SamplingConfig,
    retry: RetryConfig,
) -> AgentResponse:
    """Query one agent, retrying with exponential backoff.

    Never raises. Exhaustion or an auth failure comes back as an
    AgentResponse with empty content and an error summary.
    """
    last_error: ProviderError | None = None
    attempts = 0
    start = time.monotonic()

    for attempt in range(1, retry.max_attempts + 1):
        attempts = attempt
        try:
            reply = await client.chat(
                model,
                messages,
                temperature=sampling.temperature,
                max_tokens=sampling.max_tokens,
            )
            if not reply.content or not reply.content.strip():
                raise ProviderError(model, "Empty response content", ErrorKind.INVALID_RESPONSE)
            return AgentResponse(
                model=model,
                content=reply.content,
                latency_sec=time.monotonic() - start,
                token_count=reply.usage.total_tokens if reply.usage else None,
                attempts=attempt,
            )
        except ProviderError as exc:
            last_error = exc
        except Exception as exc:
            last_error = ProviderError(model, f"Unexpected error: {exc}")

        if last_error.is_auth_error:
            logger.warning("Agent %s rejected as unauthorized, not retrying: %s", model, last_error)
            break

        if attempt < retry.max_attempts:
            delay = backoff_delay(attempt, retry.base_delay_sec)
            logger.debug(
                "Agent %s attempt %d/%d failed (%s), retrying in %.1fs",
                model, attempt, retry.max_attempts, last_error, delay,
            )
            await asyncio.sleep(delay)

    plural = "attempt" if attempts == 1 else "attempts"
    error = f"Failed after {attempts} {plural}: {last_error or 'Unknown error'}"
    logger.warning("Agent %s degraded this round: %s", model, error)
    return AgentResponse(
        model=model,
        content="",
        error=error,
        latency_sec=time.monotonic() - start,
        attempts=attempts,
    )


async def execute_round(
    session: DebateSession,
    client: ChatClient,
    config: AppConfig,
    on_agent_response: Callable[[AgentResponse], None] | None = None,
) -> DebateRound:
    """Run one round: every participant answers the same context concurrently.

    The returned round is not appended to the session; the orchestrator owns
    the round list.
    """
    round_number = len(session.rounds) + 1
    messages = build_context(session, config.prompts)
    models = session.config.models

    logger.info("Starting round %d with %d agents", round_number, len(models))

    async def _run_agent(model: str) -> AgentResponse:
        response = await query_agent(client, model, messages, config.agent_sampling, config.retry)
        if on_agent_response:
            try:
                on_agent_response(response)
            except Exception:
                # A listener error must not cancel the sibling agents
                logger.exception("on_agent_response callback failed for %s", model)
        return response

    async with asyncio.TaskGroup() as group:
        tasks = [group.create_task(_run_agent(model)) for model in models]

    responses = [task.result() for task in tasks]
    succeeded = sum(1 for r in responses if not r.failed)
    logger.info("Round %d complete: %d/%d agents responded", round_number, succeeded, len(models))

    return DebateRound(number=round_number, responses=responses)
