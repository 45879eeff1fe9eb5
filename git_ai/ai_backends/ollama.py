"""
Ollama AI backend implementation.
"""

import asyncio
from typing import Any, Dict, List

import aiohttp
from loguru import logger

from .base import AIBackend, AIResponse, ChatMessage, ChatRequest, ToolRequest
from ..errors import ModelRequestRejected, NetworkTimeout, TransientNetworkError


class OllamaBackend(AIBackend):
    """Ollama AI backend implementation using the native /api/chat endpoint."""

    @staticmethod
    def _message_payload(message: ChatMessage) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": message.role, "content": message.content or ""}
        if message.tool_calls:
            payload["tool_calls"] = [
                {"function": {"name": call.name, "arguments": call.arguments}}
                for call in message.tool_calls
            ]
        return payload

    def build_payload(self, request: ChatRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": request.model or self.model,
            "messages": [self._message_payload(m) for m in request.messages],
            "stream": False,
            "options": {
                "temperature": request.temperature,
                "num_predict": request.max_tokens,
            }
        }
        # Ollama has no tool_choice; withdrawing tools means not sending them.
        if request.offers_tools:
            payload["tools"] = request.tools
        return payload

    @staticmethod
    def parse_response(data: Dict[str, Any], model: str) -> AIResponse:
        message = data.get("message") or {}

        tool_requests = []
        for i, call in enumerate(message.get("tool_calls") or []):
            function = call.get("function", {})
            arguments = function.get("arguments")
            tool_requests.append(ToolRequest(
                id=f"call_{i}",
                name=function.get("name", ""),
                arguments=arguments if isinstance(arguments, dict) else {},
            ))

        tokens = None
        if "eval_count" in data or "prompt_eval_count" in data:
            tokens = data.get("eval_count", 0) + data.get("prompt_eval_count", 0)

        return AIResponse(
            content=(message.get("content") or "").strip(),
            model=data.get("model", model),
            tool_requests=tool_requests,
            tokens_used=tokens,
            raw_response=data,
        )

    async def call_api(self, request: ChatRequest) -> AIResponse:
        """Call the Ollama chat API."""
        self._log_request(request)
        payload = self.build_payload(request)

        async with aiohttp.ClientSession() as session:
            try:
                async with session.post(
                    f"{self.api_url}/api/chat",
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status >= 400:
                        body = await response.text()
                        raise self.classify_status(response.status, body, request)
                    data = await self.read_json(response)

            except asyncio.TimeoutError:
                logger.error(f"Ollama API timeout after {self.timeout}s")
                raise NetworkTimeout(f"Request timed out after {self.timeout}s")
            except aiohttp.ClientError as e:
                logger.error(f"Ollama API error: {e}")
                raise TransientNetworkError(f"HTTP request failed: {e}")

        result = self.parse_response(data, payload["model"])
        result.backend_type = self.backend_type
        return result

    async def health_check(self) -> bool:
        """Check if Ollama is healthy."""
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    f"{self.api_url}/api/tags",
                    timeout=aiohttp.ClientTimeout(total=5)
                ) as response:
                    return response.status == 200
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"Ollama health check failed: {e}")
            return False

    async def list_models(self) -> List[str]:
        """List available Ollama models."""
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    f"{self.api_url}/api/tags",
                    timeout=aiohttp.ClientTimeout(total=10)
                ) as response:
                    response.raise_for_status()
                    data = await self.read_json(response)

                    models = [model.get("name", "") for model in data.get("models", [])]
                    return [m for m in models if m]

        except (aiohttp.ClientError, asyncio.TimeoutError, ModelRequestRejected) as e:
            logger.error(f"Failed to list Ollama models: {e}")
            return []
