"""Model health checks: ping each participant before starting a debate."""

import asyncio
import logging

from roundtable.providers.base import ChatClient, ChatMessage

logger = logging.getLogger(__name__)

_PING_MESSAGES = [ChatMessage("user", "Reply with the word OK only.")]
_TIMEOUT_SEC = 15.0


async def _check_one(client: ChatClient, model: str) -> tuple[str, bool, str]:
    """Ping a single model. Returns (model, ok, error_message)."""
    try:
        await asyncio.wait_for(
            client.chat(model, _PING_MESSAGES, max_tokens=5),
            timeout=_TIMEOUT_SEC,
        )
        return model, True, ""
    except TimeoutError:
        return model, False, f"No reply within {_TIMEOUT_SEC:g}s"
    except Exception as exc:
        return model, False, str(exc)


async def run_health_checks(
    client: ChatClient,
    models: list[str],
) -> dict[str, tuple[bool, str]]:
    """Ping all models in parallel.

    Returns:
        Dict mapping model -> (ok, error_message).
        error_message is "" when ok is True.
    """
    unique = list(dict.fromkeys(models))
    results = await asyncio.gather(*(_check_one(client, m) for m in unique))
    for model, ok, err in results:
        if not ok:
            logger.debug("Health check failed for %s: %s", model, err)
    return {model: (ok, err) for model, ok, err in results}
