"""Pure dataclasses for the roundtable debate engine. No logic beyond trivial properties."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

# Models served by the chat backend that may take part in a debate
AVAILABLE_MODELS: tuple[str, ...] = (
    "deepseek",
    "supermind-agent-v1",
    "gemini-2.5-pro",
    "gpt-5",
    "grok-4-fast",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DebateStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    CONVERGED = "converged"
    MAX_ROUNDS_REACHED = "max_rounds_reached"
    COMPLETED = "completed"


@dataclass(frozen=True)
class DebateConfig:
    topic: str
    models: tuple[str, ...]       # participant order is response order
    max_rounds: int
    convergence_threshold: float  # 0-1
    moderator_model: str
    synthesizer_model: str

    def __post_init__(self) -> None:
        if isinstance(self.models, list):
            object.__setattr__(self, "models", tuple(self.models))


@dataclass
class AgentResponse:
    model: str
    content: str                  # "" when the agent failed this round
    timestamp: datetime = field(default_factory=_utcnow)
    error: str | None = None
    latency_sec: float = 0.0
    token_count: int | None = None
    attempts: int = 1

    @property
    def failed(self) -> bool:
        return bool(self.error)


@dataclass
class ConvergenceAssessment:
    is_converged: bool
    confidence_score: float       # clamped to [0, 1]
    reasoning: str


@dataclass
class DebateRound:
    number: int                   # 1-based, equals position in session.rounds
    responses: list[AgentResponse] = field(default_factory=list)
    convergence_check: ConvergenceAssessment | None = None


@dataclass
class Intervention:
    text: str
    after_round: int              # rounds completed when the note was given
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class DebateSession:
    id: str
    config: DebateConfig
    rounds: list[DebateRound] = field(default_factory=list)
    status: DebateStatus = DebateStatus.PENDING
    final_answer: str | None = None
    convergence_assessment: ConvergenceAssessment | None = None
    interventions: list[Intervention] = field(default_factory=list)


@dataclass
class DebateResult:
    session: DebateSession
    final_answer: str
    total_rounds: int
    convergence_achieved: bool
    total_duration_sec: float = 0.0
