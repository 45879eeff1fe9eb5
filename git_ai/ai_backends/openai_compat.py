"""
OpenAI-compatible chat completions backend.

Covers every hosted provider preset (OpenAI, DeepSeek, Qwen, Moonshot, ...)
and local servers speaking the same protocol (LM Studio, llama.cpp).
"""

import asyncio
import json
from typing import Any, Dict, List

import aiohttp
from loguru import logger

from .base import AIBackend, AIResponse, ChatMessage, ChatRequest, ToolRequest
from ..errors import ModelRequestRejected, NetworkTimeout, TransientNetworkError


class OpenAICompatBackend(AIBackend):
    """OpenAI-compatible AI backend implementation."""

    def __init__(self, api_url: str, model: str, timeout: float = 60, api_key: str = ""):
        super().__init__(api_url, model, timeout, api_key)
        self.backend_type = "openai"

    @staticmethod
    def _message_payload(message: ChatMessage) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": message.role, "content": message.content}
        if message.tool_calls:
            payload["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }
                for call in message.tool_calls
            ]
        if message.tool_call_id:
            payload["tool_call_id"] = message.tool_call_id
        return payload

    def build_payload(self, request: ChatRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": request.model or self.model,
            "messages": [self._message_payload(m) for m in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            "stream": False,
        }
        if request.tools:
            payload["tools"] = request.tools
            payload["tool_choice"] = request.tool_choice
        return payload

    @staticmethod
    def parse_response(data: Dict[str, Any], model: str) -> AIResponse:
        """Extract content or tool requests from a chat completion."""
        choices = data.get("choices") or []
        message = choices[0].get("message", {}) if choices else {}

        tool_requests: List[ToolRequest] = []
        for i, call in enumerate(message.get("tool_calls") or []):
            function = call.get("function", {})
            raw_args = function.get("arguments") or "{}"
            try:
                arguments = json.loads(raw_args) if isinstance(raw_args, str) else dict(raw_args)
            except (json.JSONDecodeError, TypeError, ValueError):
                logger.debug(f"Unparseable tool arguments: {raw_args!r}")
                arguments = {}
            if not isinstance(arguments, dict):
                arguments = {}
            tool_requests.append(ToolRequest(
                id=call.get("id") or f"call_{i}",
                name=function.get("name", ""),
                arguments=arguments,
            ))

        usage = data.get("usage") or {}
        return AIResponse(
            content=(message.get("content") or "").strip(),
            model=data.get("model", model),
            tool_requests=tool_requests,
            tokens_used=usage.get("total_tokens"),
            raw_response=data,
        )

    async def call_api(self, request: ChatRequest) -> AIResponse:
        """Call the chat completions endpoint."""
        self._log_request(request)
        payload = self.build_payload(request)

        async with aiohttp.ClientSession() as session:
            try:
                async with session.post(
                    f"{self.api_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status >= 400:
                        body = await response.text()
                        raise self.classify_status(response.status, body, request)
                    data = await self.read_json(response)

            except asyncio.TimeoutError:
                logger.error(f"OpenAI-compatible API timeout after {self.timeout}s")
                raise NetworkTimeout(f"Request timed out after {self.timeout}s")
            except aiohttp.ClientError as e:
                logger.error(f"OpenAI-compatible API error: {e}")
                raise TransientNetworkError(f"HTTP request failed: {e}")

        result = self.parse_response(data, payload["model"])
        result.backend_type = self.backend_type
        return result

    async def health_check(self) -> bool:
        """Check if the endpoint answers the models listing."""
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    f"{self.api_url}/models",
                    headers=self._headers(),
                    timeout=aiohttp.ClientTimeout(total=5)
                ) as response:
                    return response.status == 200
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"OpenAI-compatible health check failed: {e}")
            return False

    async def list_models(self) -> List[str]:
        """List available models."""
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    f"{self.api_url}/models",
                    headers=self._headers(),
                    timeout=aiohttp.ClientTimeout(total=10)
                ) as response:
                    response.raise_for_status()
                    data = await self.read_json(response)

                    models = [model.get("id", "") for model in data.get("data", [])]
                    return [m for m in models if m]

        except (aiohttp.ClientError, asyncio.TimeoutError, ModelRequestRejected) as e:
            logger.debug(f"Failed to list models: {e}")
            return []
