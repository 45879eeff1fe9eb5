"""
Abstract base class for AI backends with plugin architecture.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger

from ..errors import (
    AuthenticationFailure,
    EndpointConfigurationError,
    ModelBackendError,
    ModelRequestRejected,
    NetworkTimeout,
    RateLimited,
    ToolProtocolUnsupported,
    TransientNetworkError,
)


RETRYABLE_ERRORS = (RateLimited, NetworkTimeout, TransientNetworkError)


@dataclass
class ToolRequest:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatMessage:
    """One turn of a chat transcript."""

    role: str
    content: Optional[str] = None
    tool_calls: List[ToolRequest] = field(default_factory=list)
    tool_call_id: Optional[str] = None


@dataclass
class ChatRequest:
    """Backend-neutral chat completion request."""

    model: str
    messages: List[ChatMessage]
    tools: Optional[List[Dict[str, Any]]] = None
    tool_choice: str = "auto"
    temperature: float = 0.7
    max_tokens: int = 500

    @property
    def offers_tools(self) -> bool:
        return bool(self.tools) and self.tool_choice != "none"


@dataclass
class AIResponse:
    """Structured AI response data."""

    content: str
    model: str
    tool_requests: List[ToolRequest] = field(default_factory=list)
    tokens_used: Optional[int] = None
    response_time: Optional[float] = None
    backend_type: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None

    @property
    def has_tool_requests(self) -> bool:
        return bool(self.tool_requests)


class AIBackend(ABC):
    """Abstract base class for AI backends."""

    def __init__(self, api_url: str, model: str, timeout: float = 60, api_key: str = ""):
        """Initialize the AI backend."""
        self.api_url = api_url.rstrip('/')
        self.model = model
        self.timeout = timeout
        self.api_key = api_key
        self.backend_type = self.__class__.__name__.lower().replace('backend', '')

    @abstractmethod
    async def call_api(self, request: ChatRequest) -> AIResponse:
        """Send one chat request to the backend."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the AI backend is healthy and responsive."""
        pass

    @abstractmethod
    async def list_models(self) -> List[str]:
        """List available models from the backend."""
        pass

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _log_request(self, request: ChatRequest) -> None:
        """Log the API request details."""
        prompt_chars = sum(len(m.content or "") for m in request.messages)
        logger.debug(f"AI API request to {self.backend_type}")
        logger.debug(f"URL: {self.api_url}")
        logger.debug(f"Model: {request.model or self.model}")
        logger.debug(f"Transcript: {len(request.messages)} messages, {prompt_chars} characters")
        logger.debug(f"Tools offered: {request.offers_tools}")
        logger.debug(f"Timeout: {self.timeout}s")

    def _log_response(self, response: AIResponse) -> None:
        """Log the API response details."""
        logger.debug(f"AI API response from {self.backend_type}")
        logger.debug(f"Response length: {len(response.content)} characters")
        if response.tool_requests:
            logger.debug(f"Tool requests: {[t.name for t in response.tool_requests]}")
        if response.tokens_used:
            logger.debug(f"Tokens used: {response.tokens_used}")
        if response.response_time:
            logger.debug(f"Response time: {response.response_time:.2f}s")

    @staticmethod
    def classify_status(status: int, body: str, request: ChatRequest) -> ModelBackendError:
        """Map an HTTP error status to a structured backend error."""
        message = f"API error ({status}): {body[:500]}"

        if status in (401, 403):
            return AuthenticationFailure(message, status=status)
        if status == 404:
            return EndpointConfigurationError(message, status=status)
        if status == 429:
            return RateLimited(message, status=status)
        if status in (400, 422) and request.offers_tools:
            return ToolProtocolUnsupported(message, status=status)
        if 400 <= status < 500:
            return ModelRequestRejected(message, status=status)
        return TransientNetworkError(message, status=status)

    @staticmethod
    async def read_json(response) -> Dict[str, Any]:
        """Decode a successful response body into a JSON object."""
        try:
            data = await response.json(content_type=None)
        except ValueError as e:
            raise ModelRequestRejected(f"Response is not valid JSON: {e}", status=response.status)

        if not isinstance(data, dict):
            raise ModelRequestRejected(
                f"Expected a JSON object, got {type(data).__name__}", status=response.status
            )
        return data

    async def call_with_retry(self, request: ChatRequest, max_retries: int = 2) -> AIResponse:
        """Call the AI API, retrying transient failures with exponential backoff."""
        last_exception: Optional[Exception] = None

        for attempt in range(max_retries):
            try:
                logger.debug(f"AI API attempt {attempt + 1}/{max_retries}")
                start_time = time.time()

                response = await self.call_api(request)
                response.response_time = time.time() - start_time

                self._log_response(response)
                return response

            except RETRYABLE_ERRORS as e:
                last_exception = e
                logger.warning(f"AI API attempt {attempt + 1} failed: {e}")

                if attempt < max_retries - 1:
                    wait_time = 2 ** attempt
                    logger.debug(f"Retrying in {wait_time} seconds...")
                    await asyncio.sleep(wait_time)

        logger.error(f"All {max_retries} AI API attempts failed")
        raise last_exception
