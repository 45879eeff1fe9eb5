"""
Bounded tool-using conversation with the model.

The conversation is an explicit state machine::

    AWAITING_MODEL -> (TOOL_DISPATCH -> AWAITING_MODEL)* -> FINAL | FAILED

``step()`` consumes one model response and returns the tool invocations to
perform; it never touches the network or the repository. ``ToolAgentLoop``
drives it, performing the invocations and enforcing the tool-call budget and
the iteration cap.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from ..ai_backends.base import AIBackend, AIResponse, ChatMessage, ChatRequest, ToolRequest
from ..errors import (
    AgentBudgetExceeded,
    AgentIterationsExceeded,
    BackendUnavailable,
    EmptyModelResponse,
    GitAIError,
    GitRepositoryError,
)
from ..git_ops.collector import bound_text
from ..git_ops.repository import FileChangeStat, GitRepository
from ..utils.ignore import IgnoreMatcher
from ..utils.message_extractor import message_extractor
from ..utils.prompts import PromptBuilder


class AgentTool(str, Enum):
    """Read-only capabilities the model may request."""

    GET_FILE_DIFF = "get_file_diff"
    SEARCH_CODE = "search_code"

    @property
    def argument(self) -> str:
        if self is AgentTool.GET_FILE_DIFF:
            return "path"
        if self is AgentTool.SEARCH_CODE:
            return "pattern"
        raise ValueError(f"Unhandled tool: {self}")

    @classmethod
    def parse(cls, name: str) -> Optional["AgentTool"]:
        try:
            return cls(name)
        except ValueError:
            return None


TOOL_SCHEMAS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": AgentTool.GET_FILE_DIFF.value,
            "description": "Get the git diff for a specific file to understand the detailed changes.",
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "The file path to get diff for",
                    },
                },
                "required": ["path"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": AgentTool.SEARCH_CODE.value,
            "description": (
                "Search for a string or pattern across the codebase (tracked files). "
                "Useful for finding usages of a function or variable."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "pattern": {
                        "type": "string",
                        "description": "The string or regex pattern to search for",
                    },
                },
                "required": ["pattern"],
            },
        },
    },
]


class AgentState(str, Enum):
    AWAITING_MODEL = "awaiting_model_response"
    TOOL_DISPATCH = "tool_dispatch"
    FINAL = "final"
    FAILED = "failed"


class InvocationStatus(str, Enum):
    EXECUTE = "execute"
    CACHED = "cached"
    OVER_BUDGET = "over_budget"
    UNKNOWN_TOOL = "unknown_tool"
    BAD_ARGUMENTS = "bad_arguments"


@dataclass
class ToolInvocation:
    """One tool request from the model and how it will be answered."""

    call_id: str
    name: str
    arguments: Dict[str, Any]
    tool: Optional[AgentTool] = None
    key: Optional[str] = None
    status: InvocationStatus = InvocationStatus.EXECUTE
    cached_result: Optional[str] = None


@dataclass
class AgentSession:
    """State owned by a single agent run."""

    transcript: List[ChatMessage] = field(default_factory=list)
    iteration_count: int = 0
    tool_call_count: int = 0
    diff_cache: Dict[str, str] = field(default_factory=dict)
    search_cache: Dict[str, str] = field(default_factory=dict)
    state: AgentState = AgentState.AWAITING_MODEL
    tools_withdrawn: bool = False
    final_message: Optional[str] = None

    def cache_for(self, tool: AgentTool) -> Dict[str, str]:
        if tool is AgentTool.GET_FILE_DIFF:
            return self.diff_cache
        if tool is AgentTool.SEARCH_CODE:
            return self.search_cache
        raise ValueError(f"Unhandled tool: {tool}")

    def charge(self, budget: int) -> None:
        """Count one tool invocation against the budget."""
        if self.tool_call_count >= budget:
            raise AgentBudgetExceeded(f"Tool budget of {budget} call(s) exhausted")
        self.tool_call_count += 1

    def budget_exhausted(self, budget: int) -> bool:
        return self.tool_call_count >= budget


@dataclass
class StepOutcome:
    """Result of feeding one model response into the session."""

    state: AgentState
    invocations: List[ToolInvocation] = field(default_factory=list)
    message: Optional[str] = None
    budget_exhausted: bool = False


def _plan_invocation(
    session: AgentSession,
    request: ToolRequest,
    budget: int,
    pending: Dict[AgentTool, set]
) -> ToolInvocation:
    invocation = ToolInvocation(call_id=request.id, name=request.name, arguments=request.arguments)

    tool = AgentTool.parse(request.name)
    if tool is None:
        invocation.status = InvocationStatus.UNKNOWN_TOOL
        return invocation
    invocation.tool = tool

    value = request.arguments.get(tool.argument)
    if not isinstance(value, str) or not value.strip():
        invocation.status = InvocationStatus.BAD_ARGUMENTS
        return invocation
    invocation.key = value.strip()

    cache = session.cache_for(tool)
    if invocation.key in cache:
        invocation.status = InvocationStatus.CACHED
        invocation.cached_result = cache[invocation.key]
        return invocation
    if invocation.key in pending[tool]:
        # Same request earlier in this response; answered once it has run
        invocation.status = InvocationStatus.CACHED
        return invocation

    if session.tools_withdrawn:
        invocation.status = InvocationStatus.OVER_BUDGET
        return invocation

    try:
        session.charge(budget)
    except AgentBudgetExceeded:
        invocation.status = InvocationStatus.OVER_BUDGET
        return invocation

    pending[tool].add(invocation.key)
    return invocation


def step(session: AgentSession, response: AIResponse, budget: int) -> StepOutcome:
    """Advance the session by one model response.

    Appends the assistant turn to the transcript and either finishes the
    session or returns the tool invocations the driver must perform.
    """
    session.iteration_count += 1

    if response.has_tool_requests:
        session.transcript.append(ChatMessage(
            role="assistant",
            content=response.content or None,
            tool_calls=list(response.tool_requests),
        ))

        pending: Dict[AgentTool, set] = {tool: set() for tool in AgentTool}
        invocations = [
            _plan_invocation(session, request, budget, pending)
            for request in response.tool_requests
        ]

        session.state = AgentState.TOOL_DISPATCH
        return StepOutcome(
            state=session.state,
            invocations=invocations,
            budget_exhausted=session.budget_exhausted(budget),
        )

    message = message_extractor.clean_message(response.content)
    if not message:
        session.state = AgentState.FAILED
        raise EmptyModelResponse("The agent returned an empty final answer")

    session.transcript.append(ChatMessage(role="assistant", content=response.content))
    session.final_message = message
    session.state = AgentState.FINAL
    return StepOutcome(state=session.state, message=message)


def format_search_results(lines: Sequence[str], max_results: int = 50, max_chars: int = 4000) -> str:
    """Cap matches by count and characters, noting how many were left out."""
    if not lines:
        return "No matches found."

    shown: List[str] = []
    used = 0
    for line in lines[:max_results]:
        if used + len(line) + 1 > max_chars:
            if not shown:
                shown.append(line[:max_chars])
            break
        shown.append(line)
        used += len(line) + 1

    text = "\n".join(shown)
    remaining = len(lines) - len(shown)
    if remaining > 0:
        text += f"\n... {remaining} more matches"
    return text


class ToolAgentLoop:
    """Drives an AgentSession against a model backend and the repository."""

    def __init__(
        self,
        backend: AIBackend,
        repository: GitRepository,
        model: str,
        ignore_matcher: Optional[IgnoreMatcher] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        tool_call_budget: int = 6,
        iteration_cap: int = 5,
        max_retries: int = 2,
        max_tokens: int = 500,
        temperature: float = 0.2,
        max_diff_chars: int = 15000,
        search_max_results: int = 50,
        search_max_chars: int = 4000
    ):
        self.backend = backend
        self.repository = repository
        self.model = model
        self.ignore_matcher = ignore_matcher or IgnoreMatcher()
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.tool_call_budget = tool_call_budget
        self.iteration_cap = iteration_cap
        self.max_retries = max_retries
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_diff_chars = max_diff_chars
        self.search_max_results = search_max_results
        self.search_max_chars = search_max_chars

    def start_session(self, file_stats: Sequence[FileChangeStat], branch_name: Optional[str] = None) -> AgentSession:
        """Seed a session with the directive and the changed-file summary."""
        return AgentSession(transcript=[
            ChatMessage(role="system", content=self.prompt_builder.agent_system_prompt(self.tool_call_budget)),
            ChatMessage(role="user", content=self.prompt_builder.agent_initial_prompt(file_stats, branch_name)),
        ])

    async def run(self, file_stats: Sequence[FileChangeStat], branch_name: Optional[str] = None) -> str:
        """Converse with the model until it answers; returns the commit message."""
        return await self.run_session(self.start_session(file_stats, branch_name))

    async def run_session(self, session: AgentSession) -> str:
        try:
            while True:
                if session.iteration_count >= self.iteration_cap:
                    session.state = AgentState.FAILED
                    raise AgentIterationsExceeded(
                        f"Agent did not converge within {self.iteration_cap} round-trips "
                        f"({session.tool_call_count} tool call(s) made)"
                    )

                session.state = AgentState.AWAITING_MODEL
                response = await self.backend.call_with_retry(self._build_request(session), self.max_retries)

                outcome = step(session, response, self.tool_call_budget)
                if outcome.state is AgentState.FINAL:
                    logger.debug(
                        f"Agent finished after {session.iteration_count} round-trip(s) "
                        f"and {session.tool_call_count} tool call(s)"
                    )
                    return outcome.message

                self.dispatch(session, outcome.invocations)

                if outcome.budget_exhausted and not session.tools_withdrawn:
                    logger.debug(f"Tool budget of {self.tool_call_budget} exhausted, requesting final answer")
                    session.tools_withdrawn = True
                    session.transcript.append(
                        ChatMessage(role="user", content=self.prompt_builder.force_answer_directive())
                    )
        except GitAIError:
            session.state = AgentState.FAILED
            raise

    def _build_request(self, session: AgentSession) -> ChatRequest:
        return ChatRequest(
            model=self.model,
            messages=list(session.transcript),
            tools=TOOL_SCHEMAS,
            tool_choice="none" if session.tools_withdrawn else "auto",
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

    def dispatch(self, session: AgentSession, invocations: Sequence[ToolInvocation]) -> None:
        """Answer every planned invocation with a tool turn, in request order."""
        for invocation in invocations:
            result = self._resolve(session, invocation)
            session.transcript.append(ChatMessage(role="tool", content=result, tool_call_id=invocation.call_id))

    def _resolve(self, session: AgentSession, invocation: ToolInvocation) -> str:
        status = invocation.status

        if status is InvocationStatus.EXECUTE:
            logger.debug(f"Agent tool call {session.tool_call_count}/{self.tool_call_budget}: "
                         f"{invocation.name}({invocation.key!r})")
            result = self.execute(invocation.tool, invocation.key)
            session.cache_for(invocation.tool)[invocation.key] = result
            return result
        if status is InvocationStatus.CACHED:
            logger.debug(f"Agent tool cache hit: {invocation.name}({invocation.key!r})")
            if invocation.cached_result is not None:
                return invocation.cached_result
            return session.cache_for(invocation.tool)[invocation.key]
        if status is InvocationStatus.OVER_BUDGET:
            return "Tool budget exhausted. Answer with the information you already have."
        if status is InvocationStatus.UNKNOWN_TOOL:
            available = ", ".join(tool.value for tool in AgentTool)
            return f"Unknown tool '{invocation.name}'. Available tools: {available}."
        if status is InvocationStatus.BAD_ARGUMENTS:
            return f"Missing required string argument '{invocation.tool.argument}' for {invocation.name}."
        raise ValueError(f"Unhandled invocation status: {status}")

    def execute(self, tool: AgentTool, value: str) -> str:
        """Run one tool against the repository."""
        if tool is AgentTool.GET_FILE_DIFF:
            return self._file_diff(value)
        if tool is AgentTool.SEARCH_CODE:
            return self._search(value)
        raise ValueError(f"Unhandled tool: {tool}")

    def _file_diff(self, path: str) -> str:
        if self.ignore_matcher.is_ignored(path):
            return f"[Skipped: {path} is excluded from analysis by ignore rules]"

        try:
            diff = self.repository.diff_for([path])
        except BackendUnavailable:
            raise
        except GitRepositoryError as e:
            logger.warning(f"Agent could not read diff for {path}: {e}")
            return f"[Diff unavailable for {path}]"

        if not diff:
            return "(No diff)"
        return bound_text(diff, self.max_diff_chars).text

    def _search(self, pattern: str) -> str:
        try:
            lines = self.repository.search_pattern(pattern)
        except BackendUnavailable:
            raise
        except GitRepositoryError as e:
            logger.warning(f"Agent code search failed for {pattern!r}: {e}")
            return f"[Search failed for pattern {pattern!r}]"

        return format_search_results(lines, self.search_max_results, self.search_max_chars)
