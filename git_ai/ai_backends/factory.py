"""
AI backend factory with provider presets.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from loguru import logger

from .base import AIBackend
from .ollama import OllamaBackend
from .openai_compat import OpenAICompatBackend
from ..config.settings import Settings
from ..errors import ConfigurationMissing


@dataclass(frozen=True)
class ProviderPreset:
    """Endpoint defaults for a known model provider."""

    base_url: str
    model: str
    backend_type: str = "openai"
    requires_key: bool = True


PROVIDER_PRESETS: Dict[str, ProviderPreset] = {
    "deepseek": ProviderPreset("https://api.deepseek.com/v1", "deepseek-chat"),
    "qwen": ProviderPreset("https://dashscope.aliyuncs.com/compatible-mode/v1", "qwen-plus"),
    "zhipu": ProviderPreset("https://open.bigmodel.cn/api/paas/v4", "glm-4"),
    "moonshot": ProviderPreset("https://api.moonshot.cn/v1", "moonshot-v1-8k"),
    "openai": ProviderPreset("https://api.openai.com/v1", "gpt-4-turbo"),
    "siliconflow": ProviderPreset("https://api.siliconflow.cn/v1", "deepseek-ai/deepseek-v2.5"),
    "ollama": ProviderPreset("http://localhost:11434", "llama2", backend_type="ollama", requires_key=False),
    "lm-studio": ProviderPreset("http://localhost:1234/v1", "local-model", requires_key=False),
}


class BackendFactory:
    """Factory for creating AI backends from settings."""

    _backends = {
        "openai": OpenAICompatBackend,
        "ollama": OllamaBackend,
    }

    @classmethod
    def create_backend(
        cls,
        settings: Settings,
        backend_type: Optional[str] = None
    ) -> AIBackend:
        """Create the configured AI backend, filling gaps from the provider preset."""
        provider = (settings.ai.provider or "").lower()
        preset = PROVIDER_PRESETS.get(provider)

        base_url = settings.ai.base_url or (preset.base_url if preset else "")
        model = settings.ai.model or (preset.model if preset else "")

        if not base_url or not model:
            raise ConfigurationMissing(
                "No AI endpoint configured. Set a provider, base URL and model "
                "with `git-ai config` or the GIT_AI_* environment variables."
            )

        requires_key = preset.requires_key if preset else False
        if requires_key and not settings.ai.api_key:
            raise ConfigurationMissing(f"Provider '{provider}' requires an API key.")

        resolved = cls._resolve_backend_type(backend_type, settings, preset, base_url)
        logger.debug(f"Using {resolved} backend for provider '{provider or 'custom'}' at {base_url}")

        return cls._create_backend_instance(resolved, base_url, model, settings)

    @staticmethod
    def _resolve_backend_type(
        backend_type: Optional[str],
        settings: Settings,
        preset: Optional[ProviderPreset],
        base_url: str
    ) -> str:
        # Explicit argument, then configured type, then preset, then URL shape
        if backend_type and backend_type != "auto":
            return backend_type
        if settings.ai.backend_type != "auto":
            return settings.ai.backend_type
        if preset:
            return preset.backend_type
        if ":11434" in base_url and not base_url.rstrip("/").endswith("/v1"):
            return "ollama"
        return "openai"

    @classmethod
    def _create_backend_instance(
        cls, backend_type: str, base_url: str, model: str, settings: Settings
    ) -> AIBackend:
        """Create a backend instance of the specified type."""
        if backend_type not in cls._backends:
            raise ValueError(f"Unknown backend type: {backend_type}")

        backend_class = cls._backends[backend_type]

        return backend_class(
            api_url=base_url,
            model=model,
            timeout=settings.ai.timeout,
            api_key=settings.ai.api_key,
        )

    @classmethod
    def list_supported_backends(cls) -> List[str]:
        """List all supported backend types."""
        return list(cls._backends.keys())

    @staticmethod
    def list_providers() -> List[str]:
        """List the known provider presets."""
        return list(PROVIDER_PRESETS.keys())
