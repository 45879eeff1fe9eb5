"""
Error taxonomy for commit message generation.

Every failure raised by the engine is a ``GitAIError`` carrying an ``ErrorKind``
so callers can decide between propagating and falling back without inspecting
message text.
"""

import re
from typing import Optional
from enum import Enum


class ErrorKind(str, Enum):
    """Structured classification of generation failures."""

    NO_CHANGES = "no_changes_to_process"
    VCS_FAILURE = "vcs_failure"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    CONFIGURATION_MISSING = "configuration_missing"
    AUTHENTICATION_FAILURE = "authentication_failure"
    ENDPOINT_CONFIGURATION = "endpoint_configuration"
    RATE_LIMITED = "rate_limited"
    NETWORK_TIMEOUT = "network_timeout"
    TRANSIENT_NETWORK = "transient_network"
    REQUEST_REJECTED = "request_rejected"
    TOOL_PROTOCOL_UNSUPPORTED = "tool_protocol_unsupported"
    AGENT_BUDGET_EXCEEDED = "agent_budget_exceeded"
    AGENT_ITERATIONS_EXCEEDED = "agent_iterations_exceeded"
    EMPTY_MODEL_RESPONSE = "empty_model_response"
    CANDIDATE_PARSE_FAILURE = "candidate_parse_failure"


# Kinds that must never trigger a simpler-strategy fallback by default.
DEFAULT_FATAL_KINDS = (
    ErrorKind.AUTHENTICATION_FAILURE,
    ErrorKind.ENDPOINT_CONFIGURATION,
)


class GitAIError(Exception):
    """Base exception for git-ai operations."""

    kind: ErrorKind = ErrorKind.VCS_FAILURE

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.kind.value)


class NoChangesToProcess(GitAIError):
    """No staged changes found. Use `git add <files>` first."""

    kind = ErrorKind.NO_CHANGES


class GitRepositoryError(GitAIError):
    """A git command failed."""

    kind = ErrorKind.VCS_FAILURE


class BackendUnavailable(GitRepositoryError):
    """Not a git repository, or the git executable is missing."""

    kind = ErrorKind.BACKEND_UNAVAILABLE


class ConfigurationMissing(GitAIError):
    """Configuration not found. Run `git-ai config` first."""

    kind = ErrorKind.CONFIGURATION_MISSING


class ModelBackendError(GitAIError):
    """The model backend failed to produce a response."""

    kind = ErrorKind.TRANSIENT_NETWORK

    def __init__(self, message: str = "", status: Optional[int] = None):
        super().__init__(redact_secrets(message))
        self.status = status


class AuthenticationFailure(ModelBackendError):
    """The model backend rejected the configured credentials."""

    kind = ErrorKind.AUTHENTICATION_FAILURE


class EndpointConfigurationError(ModelBackendError):
    """The configured model endpoint does not exist."""

    kind = ErrorKind.ENDPOINT_CONFIGURATION


class RateLimited(ModelBackendError):
    """The model backend is rate limiting requests."""

    kind = ErrorKind.RATE_LIMITED


class NetworkTimeout(ModelBackendError):
    """The model backend did not answer within the configured timeout."""

    kind = ErrorKind.NETWORK_TIMEOUT


class TransientNetworkError(ModelBackendError):
    """Connection failure or server-side error from the model backend."""

    kind = ErrorKind.TRANSIENT_NETWORK


class ModelRequestRejected(ModelBackendError):
    """The model backend rejected the request."""

    kind = ErrorKind.REQUEST_REJECTED


class ToolProtocolUnsupported(ModelBackendError):
    """The model or backend does not support tool calling."""

    kind = ErrorKind.TOOL_PROTOCOL_UNSUPPORTED


class EmptyModelResponse(ModelBackendError):
    """The model returned an empty response."""

    kind = ErrorKind.EMPTY_MODEL_RESPONSE


class AgentBudgetExceeded(GitAIError):
    """The tool-call budget for this agent session is spent."""

    kind = ErrorKind.AGENT_BUDGET_EXCEEDED


class AgentIterationsExceeded(GitAIError):
    """The agent did not converge within the iteration cap."""

    kind = ErrorKind.AGENT_ITERATIONS_EXCEEDED


class CandidateParseFailure(GitAIError):
    """Could not split the model response into candidate messages."""

    kind = ErrorKind.CANDIDATE_PARSE_FAILURE


_SECRET_PATTERNS = [
    (re.compile(r"sk-[a-zA-Z0-9]{20,}"), "sk-****..."),
    (re.compile(r"Bearer\s+[a-zA-Z0-9_\-\.]{20,}"), "Bearer ****..."),
]
_LONG_TOKEN = re.compile(r"[a-zA-Z0-9_\-]{24,}")


def redact_secrets(text: str) -> str:
    """Mask API keys and bearer tokens in error text."""
    if not text:
        return text

    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)

    return _LONG_TOKEN.sub(lambda m: f"{m.group(0)[:3]}****{m.group(0)[-3:]}", text)
