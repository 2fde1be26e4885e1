"""Base interface and shared types for model services."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class ErrorClass(Enum):
    """Standardized error categories across model services."""
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    INVALID_REQUEST = "invalid_request"
    AUTH_ERROR = "auth_error"
    MODEL_NOT_FOUND = "model_not_found"
    CONTEXT_LENGTH_EXCEEDED = "context_length_exceeded"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


RETRYABLE_CLASSES = {
    ErrorClass.RATE_LIMIT,
    ErrorClass.TIMEOUT,
    ErrorClass.SERVER_ERROR,
    ErrorClass.NETWORK_ERROR,
}


class ModelServiceError(Exception):
    """A classified failure from the model service."""

    def __init__(
        self,
        message: str,
        error_class: ErrorClass = ErrorClass.UNKNOWN,
        retryable: Optional[bool] = None,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_class = error_class
        self.retryable = error_class in RETRYABLE_CLASSES if retryable is None else retryable
        self.status_code = status_code
        self.retry_after = retry_after


class TransientServiceError(ModelServiceError):
    """Network, timeout, rate-limit or overload failure; safe to retry."""

    def __init__(self, message: str, error_class: ErrorClass = ErrorClass.NETWORK_ERROR, **kwargs):
        kwargs["retryable"] = True
        super().__init__(message, error_class=error_class, **kwargs)


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(self.input_tokens + other.input_tokens, self.output_tokens + other.output_tokens)


@dataclass
class TextBlock:
    text: str

    def to_content(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass
class ToolInvocation:
    """A request from the model to run a catalog tool."""
    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)

    def to_content(self) -> Dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


ContentBlock = Union[TextBlock, ToolInvocation]


@dataclass
class Completion:
    """One model response: ordered content blocks plus token usage."""
    blocks: List[ContentBlock] = field(default_factory=list)
    stop_reason: Optional[str] = None
    usage: Usage = field(default_factory=Usage)

    @property
    def text_blocks(self) -> List[TextBlock]:
        return [b for b in self.blocks if isinstance(b, TextBlock)]

    @property
    def tool_invocations(self) -> List[ToolInvocation]:
        return [b for b in self.blocks if isinstance(b, ToolInvocation)]

    @property
    def text(self) -> str:
        return "\n".join(b.text for b in self.text_blocks)

    def to_turn(self) -> Dict[str, Any]:
        """Assistant turn replaying this completion in the conversation."""
        return {"role": "assistant", "content": [b.to_content() for b in self.blocks]}


class ModelService(ABC):
    """Abstract completion service used by the orchestrator.

    Turns use the Anthropic messages shape: ``{"role": "user"|"assistant",
    "content": str | list[block]}`` where blocks are text, tool_use and
    tool_result dicts.
    """

    def __init__(self):
        self.name = "base"
        self.model = ""

    @abstractmethod
    def complete(
        self,
        system_prompt: str,
        turns: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Completion:
        """Request one completion.

        Args:
            system_prompt: System instructions
            turns: Conversation so far
            tools: Optional tool catalog; ``None`` disables tool calling

        Raises:
            ModelServiceError: If the request fails
        """

    @abstractmethod
    def validate_config(self) -> bool:
        """Return True if the service is configured well enough to be called."""

    def classify_error(self, error: Exception) -> ModelServiceError:
        if isinstance(error, ModelServiceError):
            return error
        return ModelServiceError(str(error))
