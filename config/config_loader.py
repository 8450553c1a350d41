"""Load settings.yaml into typed dataclasses. Checks the API token at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ClientConfig:
    base_url: str
    api_key_env: str
    timeout_sec: int


@dataclass
class SamplingConfig:
    temperature: float
    max_tokens: int


@dataclass
class RetryConfig:
    max_attempts: int = 3
    base_delay_sec: float = 1.0


@dataclass
class SynthesisPrompt:
    system: str
    instructions: str


@dataclass
class PromptsConfig:
    agent_system: str
    agent_follow_up: str
    moderator_system: str
    moderator_instructions: str
    synthesis: dict[str, SynthesisPrompt] = field(default_factory=dict)


@dataclass
class DefaultsConfig:
    models: list[str]
    max_rounds: int
    convergence_threshold: float
    moderator: str
    synthesizer: str
    output_dir: Path
    synthesis_style: str = "neutral"
    continue_rounds: int = 3


@dataclass
class AppConfig:
    client: ClientConfig
    defaults: DefaultsConfig
    prompts: PromptsConfig
    agent_sampling: SamplingConfig
    moderator_sampling: SamplingConfig
    synthesizer_sampling: SamplingConfig
    retry: RetryConfig = field(default_factory=RetryConfig)
    api_key_available: bool = False


def _sampling(raw: dict) -> SamplingConfig:
    return SamplingConfig(
        temperature=float(raw["temperature"]),
        max_tokens=int(raw["max_tokens"]),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, ValueError if continue_rounds
    or retry.max_attempts is below 1.
    Logs a warning for a missing API token but does not raise; callers check
    api_key_available.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    client_raw = raw["client"]
    client = ClientConfig(
        base_url=str(client_raw["base_url"]),
        api_key_env=str(client_raw["api_key_env"]),
        timeout_sec=int(client_raw["timeout_sec"]),
    )

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        models=list(defaults_raw["models"]),
        max_rounds=int(defaults_raw["max_rounds"]),
        convergence_threshold=float(defaults_raw["convergence_threshold"]),
        moderator=str(defaults_raw["moderator"]),
        synthesizer=str(defaults_raw["synthesizer"]),
        output_dir=Path(defaults_raw["output_dir"]),
        synthesis_style=str(defaults_raw.get("synthesis_style", "neutral")),
        continue_rounds=int(defaults_raw.get("continue_rounds", 3)),
    )

    prompts_raw = raw["prompts"]
    synthesis_raw = prompts_raw.get("synthesis", {})
    prompts = PromptsConfig(
        agent_system=prompts_raw["agent_system"].strip(),
        agent_follow_up=prompts_raw["agent_follow_up"].strip(),
        moderator_system=prompts_raw["moderator_system"].strip(),
        moderator_instructions=prompts_raw["moderator_instructions"].strip(),
        synthesis={
            style: SynthesisPrompt(
                system=str(variant["system"]).strip(),
                instructions=str(variant["instructions"]).strip(),
            )
            for style, variant in synthesis_raw.items()
        },
    )
    if defaults.synthesis_style not in prompts.synthesis:
        logger.warning(
            "Synthesis style '%s' has no prompt variant; available: %s",
            defaults.synthesis_style,
            ", ".join(sorted(prompts.synthesis)) or "none",
        )

    sampling_raw = raw["sampling"]
    retry_raw = raw.get("retry", {})
    retry = RetryConfig(
        max_attempts=int(retry_raw.get("max_attempts", 3)),
        base_delay_sec=float(retry_raw.get("base_delay_sec", 1.0)),
    )

    for name, value in (
        ("defaults.continue_rounds", defaults.continue_rounds),
        ("retry.max_attempts", retry.max_attempts),
    ):
        if value < 1:
            raise ValueError(f"{name} must be at least 1, got {value}")

    api_key = os.environ.get(client.api_key_env, "").strip()
    if api_key:
        logger.info("API token found in %s", client.api_key_env)
    else:
        logger.warning("API token missing, set %s in .env", client.api_key_env)

    return AppConfig(
        client=client,
        defaults=defaults,
        prompts=prompts,
        agent_sampling=_sampling(sampling_raw["agent"]),
        moderator_sampling=_sampling(sampling_raw["moderator"]),
        synthesizer_sampling=_sampling(sampling_raw["synthesizer"]),
        retry=retry,
        api_key_available=bool(api_key),
    )
