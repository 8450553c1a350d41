"""DebateConfig validation and construction from configured defaults."""

import math
from dataclasses import dataclass, field

from config.config_loader import DefaultsConfig
from roundtable.models import AVAILABLE_MODELS, DebateConfig


@dataclass
class ValidationError:
    field: str
    message: str


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[ValidationError] = field(default_factory=list)


class InvalidConfigError(ValueError):
    """Raised when a debate is requested with an invalid configuration."""

    def __init__(self, errors: list[ValidationError]) -> None:
        self.errors = errors
        details = "; ".join(f"{e.field}: {e.message}" for e in errors)
        super().__init__(f"Invalid debate configuration: {details}")


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _known_models() -> str:
    return ", ".join(AVAILABLE_MODELS)


def validate_debate_config(config: DebateConfig) -> ValidationResult:
    """Check every field of a DebateConfig. Pure; never corrects values."""
    errors: list[ValidationError] = []

    topic = config.topic
    if not isinstance(topic, str):
        errors.append(ValidationError("topic", "Topic must be a string"))
    elif not topic.strip():
        errors.append(ValidationError("topic", "Topic cannot be empty or contain only whitespace"))

    models = config.models
    if not isinstance(models, (list, tuple)):
        errors.append(ValidationError("models", "Models must be a list"))
    else:
        if len(models) < 2:
            errors.append(ValidationError("models", "At least 2 models are required for debate"))
        unknown = [str(m) for m in models if m not in AVAILABLE_MODELS]
        if unknown:
            errors.append(
                ValidationError(
                    "models",
                    f"Invalid model identifiers: {', '.join(unknown)}. Available models: {_known_models()}",
                )
            )

    if not isinstance(config.max_rounds, int) or isinstance(config.max_rounds, bool):
        errors.append(ValidationError("max_rounds", "max_rounds must be an integer"))
    elif config.max_rounds <= 0:
        errors.append(ValidationError("max_rounds", "max_rounds must be greater than 0"))

    threshold = config.convergence_threshold
    if not _is_number(threshold):
        errors.append(ValidationError("convergence_threshold", "convergence_threshold must be a number"))
    elif math.isnan(threshold) or not 0 <= threshold <= 1:
        errors.append(
            ValidationError("convergence_threshold", "convergence_threshold must be between 0 and 1 inclusive")
        )

    if config.moderator_model not in AVAILABLE_MODELS:
        errors.append(
            ValidationError(
                "moderator_model",
                f"Invalid moderator model: {config.moderator_model}. Available models: {_known_models()}",
            )
        )
    if config.synthesizer_model not in AVAILABLE_MODELS:
        errors.append(
            ValidationError(
                "synthesizer_model",
                f"Invalid synthesizer model: {config.synthesizer_model}. Available models: {_known_models()}",
            )
        )

    return ValidationResult(is_valid=not errors, errors=errors)


def build_debate_config(
    topic: str,
    defaults: DefaultsConfig,
    *,
    models: list[str] | None = None,
    max_rounds: int | None = None,
    convergence_threshold: float | None = None,
    moderator_model: str | None = None,
    synthesizer_model: str | None = None,
) -> DebateConfig:
    """Build a DebateConfig, filling unset fields from configured defaults. Does not validate."""
    return DebateConfig(
        topic=topic,
        models=tuple(models) if models is not None else tuple(defaults.models),
        max_rounds=max_rounds if max_rounds is not None else defaults.max_rounds,
        convergence_threshold=(
            convergence_threshold if convergence_threshold is not None else defaults.convergence_threshold
        ),
        moderator_model=moderator_model or defaults.moderator,
        synthesizer_model=synthesizer_model or defaults.synthesizer,
    )
