"""Shared pytest fixtures."""

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path

import pytest

from config.config_loader import (
    AppConfig,
    ClientConfig,
    DefaultsConfig,
    PromptsConfig,
    RetryConfig,
    SamplingConfig,
    SynthesisPrompt,
)
from roundtable.models import AgentResponse, DebateConfig, DebateRound, DebateSession
from roundtable.providers.base import ChatClient, ChatMessage, ChatReply, TokenUsage

NOT_CONVERGED = json.dumps({"isConverged": False, "confidenceScore": 0.3, "reasoning": "Positions still differ."})
CONVERGED = json.dumps({"isConverged": True, "confidenceScore": 0.85, "reasoning": "Agents agree."})


@dataclass
class MockCall:
    role: str  # "agent", "moderator" or "synthesizer"
    model: str
    messages: list[ChatMessage]
    temperature: float | None
    max_tokens: int | None


def _role_of(messages: list[ChatMessage]) -> str:
    system = messages[0].content.lower() if messages and messages[0].role == "system" else ""
    if "moderator" in system:
        return "moderator"
    if "synthesis" in system:
        return "synthesizer"
    return "agent"


class MockChatClient(ChatClient):
    """Scripted ChatClient test double.

    Each role script is a reply string, an exception instance, a callable
    ``(model, messages)`` (sync or async) returning a string, a list of those
    consumed in order (the last entry repeats), or for agents a dict keyed by
    model holding any of the above.
    """

    def __init__(self, agent=None, moderator=None, synthesizer=None) -> None:
        self.scripts = {
            "agent": agent if agent is not None else "Mock response",
            "moderator": moderator if moderator is not None else NOT_CONVERGED,
            "synthesizer": synthesizer if synthesizer is not None else "Mock synthesis",
        }
        self.calls: list[MockCall] = []

    def name(self) -> str:
        return "mock"

    def calls_for(self, role: str) -> list[MockCall]:
        return [c for c in self.calls if c.role == role]

    async def chat(
        self,
        model: str,
        messages: list[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatReply:
        role = _role_of(messages)
        self.calls.append(MockCall(role, model, list(messages), temperature, max_tokens))

        script = self.scripts[role]
        if isinstance(script, dict):
            script = script.get(model, "Mock response")
        if isinstance(script, list):
            item = script.pop(0) if len(script) > 1 else script[0]
        else:
            item = script
        if asyncio.iscoroutinefunction(item):
            item = await item(model, messages)
        elif callable(item):
            item = item(model, messages)
        if isinstance(item, BaseException):
            raise item
        return ChatReply(content=item, usage=TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15))


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        agent_system="You are a debate participant.",
        agent_follow_up="Please respond considering the above perspectives.",
        moderator_system="You are the debate moderator. Reply in JSON.",
        moderator_instructions="Criteria: alignment, no new arguments, acknowledgment. Answer as JSON.",
        synthesis={
            "neutral": SynthesisPrompt(system="You write a neutral synthesis.", instructions="Summarize neutrally:"),
            "integrative": SynthesisPrompt(system="You write a decisive synthesis.", instructions="Decide:"),
        },
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        models=["deepseek", "supermind-agent-v1"],
        max_rounds=5,
        convergence_threshold=0.8,
        moderator="deepseek",
        synthesizer="deepseek",
        output_dir=tmp_path / "output",
    )


@pytest.fixture
def sample_app_config(sample_defaults_config: DefaultsConfig, sample_prompts_config: PromptsConfig) -> AppConfig:
    return AppConfig(
        client=ClientConfig(base_url="https://example.test/v1", api_key_env="TEST_TOKEN", timeout_sec=30),
        defaults=sample_defaults_config,
        prompts=sample_prompts_config,
        agent_sampling=SamplingConfig(temperature=0.7, max_tokens=1000),
        moderator_sampling=SamplingConfig(temperature=0.3, max_tokens=500),
        synthesizer_sampling=SamplingConfig(temperature=0.7, max_tokens=1000),
        retry=RetryConfig(max_attempts=3, base_delay_sec=0.0),
        api_key_available=True,
    )


@pytest.fixture
def sample_debate_config() -> DebateConfig:
    return DebateConfig(
        topic="What is the best programming language?",
        models=["deepseek", "gpt-5"],
        max_rounds=3,
        convergence_threshold=0.8,
        moderator_model="deepseek",
        synthesizer_model="deepseek",
    )


@pytest.fixture
def sample_session(sample_debate_config: DebateConfig) -> DebateSession:
    return DebateSession(id="session-1", config=sample_debate_config)


@pytest.fixture
def sample_round() -> DebateRound:
    return DebateRound(
        number=1,
        responses=[
            AgentResponse(model="deepseek", content="Python, for its ecosystem."),
            AgentResponse(model="gpt-5", content="It depends on the problem domain."),
        ],
    )


@pytest.fixture
def mock_client() -> MockChatClient:
    return MockChatClient()
