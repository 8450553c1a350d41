"""Chat client contract shared by every model backend."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    INVALID_REQUEST = "invalid_request"
    INVALID_RESPONSE = "invalid_response"
    UNKNOWN = "unknown"


class ProviderError(Exception):
    """Raised when a chat call fails."""

    def __init__(self, provider_name: str, message: str, kind: ErrorKind = ErrorKind.UNKNOWN) -> None:
        self.provider_name = provider_name
        self.kind = kind
        super().__init__(f"[{provider_name}] {message}")

    @property
    def is_auth_error(self) -> bool:
        return self.kind is ErrorKind.UNAUTHORIZED


@dataclass
class ChatMessage:
    role: str  # "system", "user" or "assistant"
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatReply:
    content: str
    usage: TokenUsage | None = None


class ChatClient(ABC):
    """Abstract base for chat completion backends."""

    @abstractmethod
    def name(self) -> str:
        """Return the short backend name used in logs and errors."""
        ...

    @abstractmethod
    async def chat(
        self,
        model: str,
        messages: list[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatReply:
        """Send one conversation to a named model.

        Args:
            model: Model identifier understood by the backend.
            messages: Ordered role-tagged messages.
            temperature: Optional sampling temperature.
            max_tokens: Optional cap on output length.

        Returns:
            ChatReply with the response text and token usage.

        Raises:
            ProviderError: On API failure, timeout, or invalid response.
        """
        ...
