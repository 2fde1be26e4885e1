"""Anthropic model service."""

import re
from typing import Any, Dict, List, Optional

from taskpilot import config
from taskpilot.debug_logger import get_logger
from .base import (
    Completion,
    ErrorClass,
    ModelService,
    ModelServiceError,
    TextBlock,
    ToolInvocation,
    TransientServiceError,
    Usage,
)


_RETRY_AFTER_RE = re.compile(r"retry[_-]?after[:\s]+(\d+)")


class AnthropicProvider(ModelService):
    """Anthropic (Claude) messages API."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, max_tokens: Optional[int] = None):
        super().__init__()
        self.name = "anthropic"
        self.api_key = api_key or config.ANTHROPIC_API_KEY
        self.model = model or config.ANTHROPIC_MODEL
        self.max_tokens = max_tokens or config.ANTHROPIC_MAX_TOKENS
        self._client = None

    def _get_client(self):
        """Lazy initialization of the Anthropic client.

        SDK-level retries are disabled; ``taskpilot.llm.retry`` owns retries.
        """
        if self._client is None:
            try:
                import anthropic
            except ImportError:
                raise ImportError(
                    "Anthropic package not installed. Install with: pip install anthropic"
                )
            self._client = anthropic.Anthropic(api_key=self.api_key, max_retries=0)
        return self._client

    def _build_request(
        self,
        system_prompt: str,
        turns: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
    ) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": turns,
        }
        if system_prompt:
            request["system"] = system_prompt
        if tools:
            request["tools"] = tools
        return request

    def _convert_response(self, response: Any) -> Completion:
        blocks = []
        for block in response.content:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                blocks.append(TextBlock(text=block.text))
            elif block_type == "tool_use":
                blocks.append(ToolInvocation(id=block.id, name=block.name, input=dict(block.input or {})))

        usage = getattr(response, "usage", None)
        return Completion(
            blocks=blocks,
            stop_reason=getattr(response, "stop_reason", None),
            usage=Usage(
                input_tokens=getattr(usage, "input_tokens", 0) or 0,
                output_tokens=getattr(usage, "output_tokens", 0) or 0,
            ),
        )

    def complete(
        self,
        system_prompt: str,
        turns: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Completion:
        debug_logger = get_logger()
        client = self._get_client()
        request = self._build_request(system_prompt, turns, tools)

        debug_logger.log_llm_request(self.model, turns, tools)
        try:
            response = client.messages.create(**request)
        except Exception as e:
            classified = self.classify_error(e)
            debug_logger.log("llm", "ANTHROPIC_ERROR", {
                "error": str(e),
                "error_class": classified.error_class.value,
                "retryable": classified.retryable,
            }, "ERROR")
            raise classified from e

        completion = self._convert_response(response)
        debug_logger.log_llm_response(self.model, completion.stop_reason, completion.usage, completion.tool_invocations)
        return completion

    def validate_config(self) -> bool:
        return bool(self.api_key)

    def classify_error(self, error: Exception) -> ModelServiceError:
        """Map an SDK or transport exception onto ``ModelServiceError``."""
        if isinstance(error, ModelServiceError):
            return error

        error_str = str(error).lower()
        error_type = type(error).__name__.lower()
        status = getattr(error, "status_code", None)
        message = str(error)

        if "timeout" in error_type or "timeout" in error_str or "timed out" in error_str or "etimedout" in error_str:
            return TransientServiceError(message, ErrorClass.TIMEOUT, status_code=status)

        if status == 429 or "rate_limit" in error_str or ("rate" in error_str and "limit" in error_str):
            match = _RETRY_AFTER_RE.search(error_str)
            retry_after = float(match.group(1)) if match else None
            return TransientServiceError(message, ErrorClass.RATE_LIMIT, status_code=status, retry_after=retry_after)

        if status in (500, 502, 503, 504, 529) or any(
            token in error_str for token in ("overloaded_error", "internal server", "502", "503", "529")
        ):
            return TransientServiceError(message, ErrorClass.SERVER_ERROR, status_code=status)

        if "connection" in error_type or any(
            token in error_str for token in ("connection", "econnreset", "enotfound", "network", "unreachable")
        ):
            return TransientServiceError(message, ErrorClass.NETWORK_ERROR, status_code=status)

        if status == 401 or any(token in error_str for token in ("authentication_error", "invalid x-api-key", "api key", "unauthorized")):
            return ModelServiceError(message, ErrorClass.AUTH_ERROR, status_code=status)

        if status == 404 or "not_found_error" in error_str or "model not found" in error_str:
            return ModelServiceError(message, ErrorClass.MODEL_NOT_FOUND, status_code=status)

        if "prompt is too long" in error_str or "context" in error_str and "length" in error_str:
            return ModelServiceError(message, ErrorClass.CONTEXT_LENGTH_EXCEEDED, status_code=status)

        if status == 400 or "invalid_request_error" in error_str:
            return ModelServiceError(message, ErrorClass.INVALID_REQUEST, status_code=status)

        return ModelServiceError(message, ErrorClass.UNKNOWN, status_code=status)
