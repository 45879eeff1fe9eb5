"""Shared pytest fixtures for git-ai tests.

Provides an in-memory repository and a scripted model backend so the
strategies can be exercised without git or network access.
"""
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import pytest

from git_ai.ai_backends.base import AIBackend, AIResponse, ChatRequest, ToolRequest
from git_ai.config.settings import Settings
from git_ai.errors import GitRepositoryError
from git_ai.git_ops.repository import FileChangeStat


# ============================================================================
# Fake collaborators
# ============================================================================

class FakeRepository:
    """In-memory stand-in for GitRepository."""

    def __init__(
        self,
        diffs: Optional[Dict[str, str]] = None,
        grep: Optional[Dict[str, List[str]]] = None,
        branch: str = "",
        subjects: Optional[List[str]] = None,
        failing_paths: Iterable[str] = (),
        stats: Optional[List[FileChangeStat]] = None,
    ):
        self.root = Path(".")
        self.diffs = diffs or {}
        self.grep = grep or {}
        self.branch = branch
        self.subjects = subjects or []
        self.failing_paths = set(failing_paths)
        self._stats = stats
        self.diff_calls: List[List[str]] = []
        self.search_calls: List[str] = []

    def list_changed_paths(self) -> List[str]:
        return list(self.diffs)

    def file_stats(self) -> List[FileChangeStat]:
        if self._stats is not None:
            return list(self._stats)
        stats = []
        for path, diff in self.diffs.items():
            lines = diff.splitlines()
            insertions = sum(1 for l in lines if l.startswith("+") and not l.startswith("+++"))
            deletions = sum(1 for l in lines if l.startswith("-") and not l.startswith("---"))
            stats.append(FileChangeStat(path, insertions, deletions))
        return stats

    def file_stat(self, path: str) -> FileChangeStat:
        for stat in self.file_stats():
            if stat.path == path:
                return stat
        return FileChangeStat(path)

    def diff_for(self, paths: Sequence[str]) -> str:
        self.diff_calls.append(list(paths))
        if self.failing_paths.intersection(paths):
            raise GitRepositoryError("simulated git diff failure")
        return "\n".join(self.diffs[p] for p in paths if p in self.diffs)

    def search_pattern(self, pattern: str) -> List[str]:
        self.search_calls.append(pattern)
        return list(self.grep.get(pattern, []))

    def current_branch(self) -> str:
        return self.branch

    def recent_subjects(self, since_days: int = 30, limit: int = 10) -> List[str]:
        return self.subjects[:limit]


Scripted = Union[AIResponse, Exception, str]


class ScriptedBackend(AIBackend):
    """Backend that replays canned responses and records every request."""

    def __init__(self, script: Iterable[Scripted] = ()):
        super().__init__(api_url="http://scripted.test", model="scripted-model")
        self.script = list(script)
        self.requests: List[ChatRequest] = []

    async def call_api(self, request: ChatRequest) -> AIResponse:
        self.requests.append(request)
        if not self.script:
            raise AssertionError("ScriptedBackend ran out of responses")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return AIResponse(content=item, model=request.model)
        return item

    async def health_check(self) -> bool:
        return True

    async def list_models(self) -> List[str]:
        return [self.model]


def tool_call(name: str, call_id: str = "call_1", **arguments) -> AIResponse:
    """Model response requesting a single tool."""
    return AIResponse(
        content="",
        model="scripted-model",
        tool_requests=[ToolRequest(id=call_id, name=name, arguments=arguments)],
    )


def tool_calls(*requests: ToolRequest) -> AIResponse:
    return AIResponse(content="", model="scripted-model", tool_requests=list(requests))


# ============================================================================
# Fixtures
# ============================================================================

SAMPLE_DIFFS = {
    "src/auth.py": (
        "diff --git a/src/auth.py b/src/auth.py\n"
        "--- a/src/auth.py\n"
        "+++ b/src/auth.py\n"
        "@@ -1,3 +1,6 @@\n"
        "-def login(user):\n"
        "+def login(user, token):\n"
        "+    return validate(token)\n"
        "+class TokenStore:\n"
    ),
    "README.md": (
        "diff --git a/README.md b/README.md\n"
        "--- a/README.md\n"
        "+++ b/README.md\n"
        "@@ -1 +1 @@\n"
        "-Old intro\n"
        "+New intro\n"
    ),
}


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Settings isolated from the developer's environment."""
    for name in ("GIT_AI_PROVIDER", "GIT_AI_API_KEY", "OPENAI_API_KEY", "DEEPSEEK_API_KEY",
                 "GIT_AI_DISABLE_AGENT", "GIT_AI_AUTO_AGENT", "GIT_AI_AGENT_STRATEGY"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings()
    settings.ai.model = "test-model"
    settings.ai.max_retries = 1
    return settings


@pytest.fixture
def fake_repo() -> FakeRepository:
    return FakeRepository(diffs=dict(SAMPLE_DIFFS), branch="main")
