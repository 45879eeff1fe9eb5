"""Tests for the tool-using agent loop."""
import pytest

from conftest import FakeRepository, ScriptedBackend, tool_call, tool_calls
from git_ai.ai_backends.base import AIResponse, ToolRequest
from git_ai.agent.loop import (
    AgentSession,
    AgentState,
    AgentTool,
    InvocationStatus,
    ToolAgentLoop,
    format_search_results,
    step,
)
from git_ai.errors import (
    AgentBudgetExceeded,
    AgentIterationsExceeded,
    AuthenticationFailure,
    EmptyModelResponse,
)
from git_ai.git_ops.repository import FileChangeStat


STATS = [FileChangeStat("src/auth.py", 3, 1), FileChangeStat("README.md", 1, 1)]


def make_loop(backend, repo=None, **kwargs):
    return ToolAgentLoop(
        backend=backend,
        repository=repo or FakeRepository(diffs={"src/auth.py": "+def login(user, token):"}),
        model="agent-model",
        max_retries=1,
        **kwargs,
    )


class TestStep:

    def test_plain_text_is_final(self):
        session = AgentSession()
        outcome = step(session, AIResponse(content="feat: add login", model="m"), budget=6)

        assert outcome.state is AgentState.FINAL
        assert outcome.message == "feat: add login"
        assert session.iteration_count == 1
        assert session.transcript[-1].role == "assistant"

    def test_code_fences_are_stripped(self):
        session = AgentSession()
        outcome = step(session, AIResponse(content="```text\nfix(api): handle nulls\n```", model="m"), budget=6)

        assert outcome.message == "fix(api): handle nulls"

    def test_empty_answer_fails(self):
        session = AgentSession()

        with pytest.raises(EmptyModelResponse):
            step(session, AIResponse(content="   ", model="m"), budget=6)
        assert session.state is AgentState.FAILED

    def test_tool_requests_are_planned_not_executed(self):
        session = AgentSession()
        response = tool_calls(
            ToolRequest("c1", "get_file_diff", {"path": "a.py"}),
            ToolRequest("c2", "search_code", {"pattern": "login"}),
        )

        outcome = step(session, response, budget=6)

        assert outcome.state is AgentState.TOOL_DISPATCH
        assert [i.tool for i in outcome.invocations] == [AgentTool.GET_FILE_DIFF, AgentTool.SEARCH_CODE]
        assert all(i.status is InvocationStatus.EXECUTE for i in outcome.invocations)
        assert session.tool_call_count == 2
        assert session.diff_cache == {}

    def test_unknown_tool_and_bad_arguments_are_not_charged(self):
        session = AgentSession()
        response = tool_calls(
            ToolRequest("c1", "delete_repo", {}),
            ToolRequest("c2", "get_file_diff", {"file": "a.py"}),
        )

        outcome = step(session, response, budget=6)

        assert [i.status for i in outcome.invocations] == [
            InvocationStatus.UNKNOWN_TOOL, InvocationStatus.BAD_ARGUMENTS,
        ]
        assert session.tool_call_count == 0

    def test_cached_arguments_are_not_charged(self):
        session = AgentSession(diff_cache={"a.py": "+cached"}, tool_call_count=1)

        outcome = step(session, tool_call("get_file_diff", path="a.py"), budget=6)

        assert outcome.invocations[0].status is InvocationStatus.CACHED
        assert outcome.invocations[0].cached_result == "+cached"
        assert session.tool_call_count == 1

    def test_duplicate_requests_in_one_turn_charge_once(self):
        session = AgentSession()
        response = tool_calls(
            ToolRequest("c1", "search_code", {"pattern": "login"}),
            ToolRequest("c2", "search_code", {"pattern": "login"}),
        )

        outcome = step(session, response, budget=6)

        assert [i.status for i in outcome.invocations] == [InvocationStatus.EXECUTE, InvocationStatus.CACHED]
        assert session.tool_call_count == 1

    def test_requests_beyond_budget_are_refused(self):
        session = AgentSession(tool_call_count=1)
        response = tool_calls(
            ToolRequest("c1", "get_file_diff", {"path": "a.py"}),
            ToolRequest("c2", "get_file_diff", {"path": "b.py"}),
        )

        outcome = step(session, response, budget=2)

        assert [i.status for i in outcome.invocations] == [InvocationStatus.EXECUTE, InvocationStatus.OVER_BUDGET]
        assert outcome.budget_exhausted is True
        assert session.tool_call_count == 2

    def test_charge_raises_when_budget_spent(self):
        session = AgentSession(tool_call_count=3)
        with pytest.raises(AgentBudgetExceeded):
            session.charge(3)


class TestFormatSearchResults:

    def test_no_matches(self):
        assert format_search_results([]) == "No matches found."

    def test_count_cap_adds_marker(self):
        lines = [f"src/f{i}.py:1:login()" for i in range(60)]
        text = format_search_results(lines, max_results=50, max_chars=100_000)

        assert text.count("\n") == 50
        assert text.endswith("... 10 more matches")

    def test_character_cap_adds_marker(self):
        lines = ["x" * 40 for _ in range(10)]
        text = format_search_results(lines, max_results=50, max_chars=100)

        assert text.startswith("x" * 40 + "\n" + "x" * 40)
        assert text.endswith("... 8 more matches")


class TestToolAgentLoop:

    @pytest.mark.asyncio
    async def test_answers_after_reading_a_diff(self):
        repo = FakeRepository(diffs={"src/auth.py": "+def login(user, token):"})
        backend = ScriptedBackend([
            tool_call("get_file_diff", path="src/auth.py"),
            "feat(auth): require token for login",
        ])

        message = await make_loop(backend, repo).run(STATS, "feature/auth")

        assert message == "feat(auth): require token for login"
        assert repo.diff_calls == [["src/auth.py"]]
        tool_turn = backend.requests[1].messages[-1]
        assert tool_turn.role == "tool"
        assert tool_turn.tool_call_id == "call_1"
        assert "login(user, token)" in tool_turn.content

    @pytest.mark.asyncio
    async def test_initial_turn_lists_stats_without_diff(self):
        backend = ScriptedBackend(["chore: update"])

        await make_loop(backend).run(STATS, "main")

        first = backend.requests[0]
        assert first.model == "agent-model"
        assert first.tool_choice == "auto"
        assert "src/auth.py (+3, -1)" in first.messages[1].content
        assert "README.md (+1, -1)" in first.messages[1].content
        assert "+def login" not in first.messages[1].content

    @pytest.mark.asyncio
    async def test_ignored_paths_are_skipped(self):
        repo = FakeRepository(diffs={"package-lock.json": "+noise"})
        backend = ScriptedBackend([tool_call("get_file_diff", path="package-lock.json"), "chore: bump deps"])

        await make_loop(backend, repo).run(STATS)

        assert repo.diff_calls == []
        assert "Skipped" in backend.requests[1].messages[-1].content

    @pytest.mark.asyncio
    async def test_repeated_calls_hit_the_cache(self):
        repo = FakeRepository(diffs={"src/auth.py": "+x"})
        backend = ScriptedBackend([
            tool_call("get_file_diff", path="src/auth.py"),
            tool_call("get_file_diff", call_id="call_2", path="src/auth.py"),
            "fix: x",
        ])
        loop = make_loop(backend, repo)
        session = loop.start_session(STATS)

        await loop.run_session(session)

        assert repo.diff_calls == [["src/auth.py"]]
        assert session.tool_call_count == 1
        assert session.diff_cache == {"src/auth.py": "+x"}

    @pytest.mark.asyncio
    async def test_budget_exhaustion_withdraws_tools(self):
        repo = FakeRepository(diffs={"a.py": "+a", "b.py": "+b", "c.py": "+c"}, grep={"a": ["a.py:1:a"]})
        backend = ScriptedBackend([
            tool_calls(
                ToolRequest("c1", "get_file_diff", {"path": "a.py"}),
                ToolRequest("c2", "get_file_diff", {"path": "b.py"}),
                ToolRequest("c3", "get_file_diff", {"path": "c.py"}),
            ),
            "refactor: split modules",
        ])
        loop = make_loop(backend, repo, tool_call_budget=2)
        session = loop.start_session(STATS)

        message = await loop.run_session(session)

        assert message == "refactor: split modules"
        assert session.tool_call_count == 2
        assert len(repo.diff_calls) == 2
        assert session.tools_withdrawn is True
        final_request = backend.requests[-1]
        assert final_request.tool_choice == "none"
        assert final_request.messages[-1].role == "user"
        assert "budget" in final_request.messages[-1].content.lower()

    @pytest.mark.asyncio
    async def test_never_exceeds_budget_or_cap(self):
        repo = FakeRepository(diffs={f"f{i}.py": f"+{i}" for i in range(20)})
        script = [tool_call("get_file_diff", call_id=f"c{i}", path=f"f{i}.py") for i in range(20)]
        backend = ScriptedBackend(script)
        loop = make_loop(backend, repo, tool_call_budget=3, iteration_cap=5)
        session = loop.start_session(STATS)

        with pytest.raises(AgentIterationsExceeded):
            await loop.run_session(session)

        assert session.tool_call_count == 3
        assert len(repo.diff_calls) == 3
        assert len(backend.requests) == 5
        assert session.iteration_count == 5
        assert session.state is AgentState.FAILED
        assert session.final_message is None

    @pytest.mark.asyncio
    async def test_search_results_reach_the_model(self):
        repo = FakeRepository(grep={"login": ["src/auth.py:3:def login(", "src/api.py:9:login(user)"]})
        backend = ScriptedBackend([tool_call("search_code", pattern="login"), "feat: x"])

        await make_loop(backend, repo).run(STATS)

        assert repo.search_calls == ["login"]
        assert "src/api.py:9:login(user)" in backend.requests[1].messages[-1].content

    @pytest.mark.asyncio
    async def test_backend_errors_propagate(self):
        backend = ScriptedBackend([AuthenticationFailure("bad key", status=401)])
        loop = make_loop(backend)
        session = loop.start_session(STATS)

        with pytest.raises(AuthenticationFailure):
            await loop.run_session(session)
        assert session.state is AgentState.FAILED

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self):
        backend = ScriptedBackend([tool_call("get_file_diff", path="src/auth.py"), "feat: one"])
        loop = make_loop(backend)
        first = loop.start_session(STATS)
        await loop.run_session(first)

        second = loop.start_session(STATS)

        assert second.diff_cache == {}
        assert second.tool_call_count == 0
        assert first.diff_cache != {}
