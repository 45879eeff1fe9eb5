"""
Core generation engine that sequences strategies and reconciles their failures.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from loguru import logger

from .agent.heuristic import HeuristicAnalyzer
from .agent.loop import ToolAgentLoop
from .agent.strategy import Strategy, StrategySelector
from .ai_backends.base import AIBackend, ChatMessage, ChatRequest
from .ai_backends.factory import BackendFactory
from .config.settings import Settings
from .errors import EmptyModelResponse, ErrorKind, GitAIError, NoChangesToProcess
from .git_ops.collector import ChangeCollector, DiffBundle
from .git_ops.repository import FileChangeStat, GitRepository
from .utils.message_extractor import message_extractor
from .utils.prompts import PromptBuilder


DiffLoader = Callable[[], DiffBundle]


@dataclass
class GenerationRequest:
    """Everything needed to produce commit message candidates."""

    staged_files: List[str]
    diff: Optional[DiffBundle] = None
    diff_loader: Optional[DiffLoader] = None
    branch_name: Optional[str] = None
    recent_commit_subjects: List[str] = field(default_factory=list)
    candidate_count: int = 1
    force_strategy: Optional[Strategy] = None

    @property
    def known_truncated(self) -> bool:
        # Unknown until a lazy loader has run
        return bool(self.diff and self.diff.truncated)


@dataclass
class Advisory:
    """Non-fatal notice that an enriched strategy was abandoned."""

    strategy: Strategy
    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.strategy.value} strategy failed ({self.kind.value}): {self.message}"


@dataclass
class GenerationResult:
    """Ordered, deduplicated commit messages and how they were produced."""

    messages: List[str]
    strategy_used: Strategy
    advisories: List[Advisory] = field(default_factory=list)
    diff: Optional[DiffBundle] = None
    staged_files: List[str] = field(default_factory=list)

    @property
    def fell_back(self) -> bool:
        return bool(self.advisories)

    @property
    def message(self) -> str:
        return self.messages[0]


class GenerationOrchestrator:
    """Public entry point for commit message generation."""

    def __init__(
        self,
        backend: AIBackend,
        repository: GitRepository,
        settings: Optional[Settings] = None,
        collector: Optional[ChangeCollector] = None
    ):
        self.settings = settings or Settings()
        self.backend = backend
        self.repository = repository
        self.collector = collector or ChangeCollector.from_settings(repository, self.settings)
        self.selector = StrategySelector.from_settings(self.settings)
        self.prompt_builder = PromptBuilder(
            locale=self.settings.ai.locale,
            custom_prompt=self.settings.ai.custom_prompt,
            recent_limit=self.settings.git.recent_commit_limit,
        )
        self.fatal_errors = set(self.settings.agent.fatal_errors)

    @classmethod
    def from_settings(cls, settings: Settings, repo_path: Optional[Path] = None) -> "GenerationOrchestrator":
        """Build the orchestrator with the configured backend and repository."""
        repository = GitRepository(repo_path, command_timeout=settings.git.command_timeout)
        backend = BackendFactory.create_backend(settings)
        return cls(backend, repository, settings)

    async def generate_for_staged(
        self,
        candidate_count: int = 1,
        force_strategy: Optional[Strategy] = None
    ) -> GenerationResult:
        """Generate messages for whatever is currently staged."""
        staged = self.collector.staged_paths()
        request = GenerationRequest(
            staged_files=staged,
            diff_loader=lambda: self.collector.collect(staged),
            branch_name=self.repository.current_branch() or None,
            recent_commit_subjects=self.repository.recent_subjects(
                self.settings.git.recent_commit_days,
                self.settings.git.recent_commit_limit,
            ),
            candidate_count=candidate_count,
            force_strategy=force_strategy,
        )
        return await self.generate(request)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Run the selected strategy, falling back to direct generation when allowed."""
        if request.candidate_count < 1:
            raise ValueError("candidate_count must be at least 1")
        if not request.staged_files:
            raise NoChangesToProcess()

        truncated = request.known_truncated
        if request.diff is None and self._truncation_decides(request):
            truncated = self._resolve_diff(request).truncated

        strategy = self.selector.select(
            candidate_count=request.candidate_count,
            truncated=truncated,
            branch_name=request.branch_name,
            force_strategy=request.force_strategy,
        )
        logger.info(f"Generating {request.candidate_count} message(s) with {strategy.value} strategy")

        advisories: List[Advisory] = []
        if strategy.is_enriched:
            try:
                messages = await self._run_enriched(strategy, request)
                return self._result(messages, strategy, request, advisories)
            except GitAIError as e:
                if e.kind in self.fatal_errors:
                    logger.error(f"{strategy.value} strategy failed fatally: {e}")
                    raise
                advisory = Advisory(strategy=strategy, kind=e.kind, message=str(e))
                logger.warning(f"{advisory}; falling back to direct generation")
                advisories.append(advisory)

        messages = await self._run_direct(request)
        return self._result(messages, Strategy.DIRECT, request, advisories)

    def _truncation_decides(self, request: GenerationRequest) -> bool:
        """Whether loading the diff could change the selected strategy."""
        if request.diff_loader is None:
            return False
        options = dict(
            candidate_count=request.candidate_count,
            branch_name=request.branch_name,
            force_strategy=request.force_strategy,
        )
        return self.selector.select(truncated=True, **options) != self.selector.select(truncated=False, **options)

    async def _run_enriched(self, strategy: Strategy, request: GenerationRequest) -> List[str]:
        stats = self._file_stats(request)

        if strategy is Strategy.TOOL_AGENT:
            agent = ToolAgentLoop(
                backend=self.backend,
                repository=self.repository,
                model=self.settings.agent_model,
                ignore_matcher=self.collector.ignore_matcher,
                prompt_builder=self.prompt_builder,
                tool_call_budget=self.settings.agent.tool_call_budget,
                iteration_cap=self.settings.agent.iteration_cap,
                max_retries=self.settings.ai.max_retries,
                max_tokens=self.settings.ai.max_output_tokens,
                max_diff_chars=self.settings.git.max_diff_chars,
                search_max_results=self.settings.git.search_max_results,
                search_max_chars=self.settings.git.search_max_chars,
            )
            return [await agent.run(stats, request.branch_name)]

        if strategy is Strategy.HEURISTIC:
            analyzer = HeuristicAnalyzer(
                self.repository,
                ignore_matcher=self.collector.ignore_matcher,
                top_files=self.settings.agent.top_files,
                max_symbols=self.settings.agent.max_symbols,
                max_usages=self.settings.git.search_max_results,
            )
            hints = analyzer.analyze(stats, request.branch_name)
            return await self._run_direct(request, analysis=hints.to_prompt_section())

        raise ValueError(f"Not an enriched strategy: {strategy}")

    def _file_stats(self, request: GenerationRequest) -> List[FileChangeStat]:
        staged = set(request.staged_files)
        stats = [stat for stat in self.repository.file_stats() if stat.path in staged]
        if not stats:
            raise NoChangesToProcess("No file statistics available for the staged changes")
        return stats

    def _resolve_diff(self, request: GenerationRequest) -> DiffBundle:
        if request.diff is None:
            request.diff = request.diff_loader() if request.diff_loader else DiffBundle(text="")
        return request.diff

    async def _run_direct(self, request: GenerationRequest, analysis: Optional[str] = None) -> List[str]:
        """Single-shot generation from the collected diff bundle."""
        bundle = self._resolve_diff(request)
        count = request.candidate_count

        chat = ChatRequest(
            model=self.settings.ai.model or self.backend.model,
            messages=[
                ChatMessage(role="system", content=self.prompt_builder.system_prompt(count)),
                ChatMessage(role="user", content=self.prompt_builder.build_user_prompt(
                    diff_text=bundle.text,
                    staged_files=request.staged_files,
                    ignored_files=bundle.ignored_paths,
                    truncated=bundle.truncated,
                    branch_name=request.branch_name,
                    recent_subjects=request.recent_commit_subjects,
                    analysis=analysis,
                )),
            ],
            temperature=0.7,
            max_tokens=self.settings.ai.max_output_tokens * count,
        )

        response = await self.backend.call_with_retry(chat, self.settings.ai.max_retries)
        if not response.content.strip():
            raise EmptyModelResponse()

        if count == 1:
            message = message_extractor.clean_message(response.content)
            if not message:
                raise EmptyModelResponse()
            return [message]

        return message_extractor.parse_candidates(response.content)

    def _result(
        self,
        messages: List[str],
        strategy: Strategy,
        request: GenerationRequest,
        advisories: List[Advisory]
    ) -> GenerationResult:
        messages = message_extractor.deduplicate(messages)[:request.candidate_count]
        for message in messages:
            if not message_extractor.is_conventional(message):
                logger.debug(f"Message header is not Conventional Commits: {message.splitlines()[0]!r}")
        if self.settings.ai.enable_footer:
            messages = [message_extractor.add_footer(m) for m in messages]

        return GenerationResult(
            messages=messages,
            strategy_used=strategy,
            advisories=advisories,
            diff=request.diff,
            staged_files=list(request.staged_files),
        )
