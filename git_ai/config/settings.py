"""
Configuration management with Pydantic validation and environment variable support.
"""

import json
import os
import platform
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from loguru import logger
from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..errors import DEFAULT_FATAL_KINDS, ErrorKind


LOCAL_CONFIG_FILE = ".git-ai.json"


class AISettings(BaseModel):
    """AI backend configuration."""

    model_config = {"populate_by_name": True}

    provider: str = Field(
        default="",
        description="Provider preset name (openai, deepseek, ollama, ...)"
    )
    api_key: str = Field(
        default="",
        validation_alias=AliasChoices("api_key", "apiKey"),
        description="API key for the provider"
    )
    base_url: str = Field(
        default="",
        validation_alias=AliasChoices("base_url", "baseUrl"),
        description="AI server endpoint"
    )
    model: str = Field(
        default="",
        description="Model used for direct generation"
    )
    agent_model: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("agent_model", "agentModel"),
        description="Model used by the tool agent (defaults to model)"
    )
    backend_type: Literal["openai", "ollama", "auto"] = Field(
        default="auto",
        description="Wire protocol of the AI backend"
    )
    locale: Literal["en", "zh"] = Field(
        default="en",
        description="Language of generated messages"
    )
    custom_prompt: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("custom_prompt", "customPrompt"),
        description="Replaces the built-in system prompt"
    )
    timeout: float = Field(
        default=60.0,
        ge=1,
        le=600,
        description="API request timeout in seconds"
    )
    max_retries: int = Field(
        default=2,
        ge=1,
        le=10,
        description="Maximum number of API attempts for transient failures"
    )
    max_output_tokens: int = Field(
        default=500,
        ge=16,
        le=8192,
        description="Completion token limit per requested message"
    )
    enable_footer: bool = Field(
        default=False,
        validation_alias=AliasChoices("enable_footer", "enableFooter"),
        description="Append a generated-by footer to each message"
    )

    @field_validator("custom_prompt", "agent_model", mode="before")
    @classmethod
    def empty_as_none(cls, v):
        """Treat blank strings from config files as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class GitSettings(BaseModel):
    """Change collection configuration."""

    max_diff_chars: int = Field(
        default=15000,
        ge=1000,
        le=500000,
        description="Maximum characters of diff sent to the model"
    )
    batch_max_items: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum paths per git diff invocation"
    )
    batch_max_chars: int = Field(
        default=6000,
        ge=256,
        le=100000,
        description="Maximum cumulative path characters per git diff invocation"
    )
    ignore_file: str = Field(
        default=".git-aiignore",
        description="User ignore-rule file, relative to the repository root"
    )
    use_default_ignores: bool = Field(
        default=True,
        description="Apply the built-in exclusion list"
    )
    recent_commit_days: int = Field(
        default=30,
        ge=1,
        le=3650,
        description="Look-back window for style reference commits"
    )
    recent_commit_limit: int = Field(
        default=10,
        ge=0,
        le=50,
        description="Maximum recent commit subjects passed as style reference"
    )
    search_max_results: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum code search matches returned to the model"
    )
    search_max_chars: int = Field(
        default=4000,
        ge=200,
        le=100000,
        description="Maximum characters of code search output"
    )
    command_timeout: float = Field(
        default=30.0,
        ge=1,
        le=600,
        description="Timeout in seconds for each git command"
    )


class AgentSettings(BaseModel):
    """Strategy selection and tool agent configuration."""

    auto_enrichment: bool = Field(
        default=True,
        description="Use an enriched strategy for truncated diffs and notable branches"
    )
    enriched_strategy: Literal["tool_agent", "heuristic"] = Field(
        default="tool_agent",
        description="Enriched strategy preferred by automatic selection"
    )
    tool_call_budget: int = Field(
        default=6,
        ge=0,
        le=50,
        description="Maximum tool invocations per agent session"
    )
    iteration_cap: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum model round-trips per agent session"
    )
    fatal_errors: List[ErrorKind] = Field(
        default_factory=lambda: list(DEFAULT_FATAL_KINDS),
        description="Error kinds that propagate instead of falling back"
    )
    top_files: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Files ranked by the heuristic analyzer"
    )
    max_symbols: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Candidate symbols searched by the heuristic analyzer"
    )


class UISettings(BaseModel):
    """User interface configuration."""

    use_colors: bool = Field(
        default=True,
        description="Use colored output"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging level"
    )


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    ai: AISettings = Field(default_factory=AISettings)
    git: GitSettings = Field(default_factory=GitSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    ui: UISettings = Field(default_factory=UISettings)

    model_config = {
        "env_prefix": "GIT_AI_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "env_file": ".env",
        "extra": "ignore",
    }

    @classmethod
    def load(cls, repo_path: Optional[Path] = None, config_file: Optional[Path] = None) -> "Settings":
        """Resolve settings from the global file, the local file and the environment."""
        data: Dict[str, Any] = {}

        sources = [config_file] if config_file else [
            cls.default_config_path(),
            (repo_path or Path.cwd()) / LOCAL_CONFIG_FILE,
        ]
        for path in sources:
            _deep_merge(data, _read_config_file(path))

        _deep_merge(data, _read_env_overrides())
        return cls(**data)

    @classmethod
    def from_file(cls, config_path: Path) -> "Settings":
        """Load settings from a configuration file."""
        return cls(**_read_config_file(config_path))

    def save_to_file(self, config_path: Path) -> None:
        """Save current settings to a configuration file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2)

    @staticmethod
    def default_config_path() -> Path:
        """Get the default global config file path."""
        if platform.system() == "Windows":
            base = Path(os.environ.get("APPDATA", "~"))
        else:
            base = Path(os.environ.get("XDG_CONFIG_HOME", "~/.config"))

        return (base / "git-ai" / "config.json").expanduser()

    @property
    def cache_dir(self) -> Path:
        """Get the cache directory."""
        if platform.system() == "Windows":
            base = Path(os.environ.get("LOCALAPPDATA", "~"))
        else:
            base = Path(os.environ.get("XDG_CACHE_HOME", "~/.cache"))

        return (base / "git-ai").expanduser()

    @property
    def log_file(self) -> Path:
        """Get the log file path."""
        return self.cache_dir / "git-ai.log"

    @property
    def agent_model(self) -> str:
        """Model used by the tool agent."""
        return self.ai.agent_model or self.ai.model


_FLAT_AI_KEYS = {
    "provider", "apiKey", "api_key", "baseUrl", "base_url", "model",
    "agentModel", "agent_model", "locale", "customPrompt", "custom_prompt",
    "enableFooter", "enable_footer",
}


def _read_config_file(path: Path) -> Dict[str, Any]:
    """Read a JSON config file, accepting the flat legacy layout."""
    if not path or not path.exists():
        return {}

    try:
        with open(path) as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Ignoring unreadable config file {path}: {e}")
        return {}

    if not isinstance(data, dict):
        return {}

    flat = {k: data.pop(k) for k in list(data) if k in _FLAT_AI_KEYS}
    if flat:
        data.setdefault("ai", {})
        data["ai"] = {**flat, **data["ai"]}

    logger.debug(f"Loaded config from {path}")
    return data


def _parse_bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in ("1", "true", "yes", "y", "on"):
        return True
    if normalized in ("0", "false", "no", "n", "off"):
        return False
    return None


def _read_env_overrides() -> Dict[str, Any]:
    """Handle the flat environment variables used by earlier releases."""
    ai: Dict[str, Any] = {}
    git: Dict[str, Any] = {}
    agent: Dict[str, Any] = {}

    def first(*names: str) -> Optional[str]:
        for name in names:
            value = os.getenv(name)
            if value:
                return value
        return None

    provider = first("GIT_AI_PROVIDER", "OCO_AI_PROVIDER")
    if provider:
        ai["provider"] = provider

    api_key = first("GIT_AI_API_KEY", "OCO_API_KEY")
    if not api_key and provider == "deepseek":
        api_key = os.getenv("DEEPSEEK_API_KEY")
    if not api_key and provider in (None, "openai"):
        api_key = os.getenv("OPENAI_API_KEY")
    if api_key:
        ai["api_key"] = api_key

    for env_name, key in (
        ("GIT_AI_BASE_URL", "base_url"),
        ("GIT_AI_MODEL", "model"),
        ("GIT_AI_AGENT_MODEL", "agent_model"),
        ("GIT_AI_LOCALE", "locale"),
        ("GIT_AI_CUSTOM_PROMPT", "custom_prompt"),
    ):
        value = os.getenv(env_name)
        if value:
            ai[key] = value

    footer = _parse_bool(os.getenv("GIT_AI_ENABLE_FOOTER"))
    if footer is not None:
        ai["enable_footer"] = footer

    timeout_ms = os.getenv("GIT_AI_TIMEOUT_MS")
    if timeout_ms:
        try:
            ai["timeout"] = int(timeout_ms) / 1000
        except ValueError:
            logger.warning(f"Ignoring invalid GIT_AI_TIMEOUT_MS={timeout_ms!r}")

    max_output = first("GIT_AI_MAX_OUTPUT_TOKENS", "OCO_TOKENS_MAX_OUTPUT")
    if max_output and max_output.isdigit():
        ai["max_output_tokens"] = int(max_output)

    max_diff = os.getenv("GIT_AI_MAX_DIFF_CHARS")
    if max_diff and max_diff.isdigit():
        git["max_diff_chars"] = int(max_diff)

    disabled = _parse_bool(os.getenv("GIT_AI_DISABLE_AGENT"))
    auto = _parse_bool(os.getenv("GIT_AI_AUTO_AGENT"))
    if disabled is not None:
        agent["auto_enrichment"] = not disabled
    elif auto is not None:
        agent["auto_enrichment"] = auto

    strategy = os.getenv("GIT_AI_AGENT_STRATEGY")
    if strategy in ("tool_agent", "heuristic"):
        agent["enriched_strategy"] = strategy

    overrides: Dict[str, Any] = {}
    for name, section in (("ai", ai), ("git", git), ("agent", agent)):
        if section:
            overrides[name] = section
    return overrides


def _deep_merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base
