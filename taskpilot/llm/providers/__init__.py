"""Model service providers."""

from .base import Completion, ModelService, ModelServiceError, TextBlock, ToolInvocation, TransientServiceError, Usage
from .scripted import ScriptedModelService
# AnthropicProvider imports the SDK lazily; import it from .anthropic_provider directly

__all__ = [
    "Completion",
    "ModelService",
    "ModelServiceError",
    "TextBlock",
    "ToolInvocation",
    "TransientServiceError",
    "Usage",
    "ScriptedModelService",
]
