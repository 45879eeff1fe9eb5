"""
Staged change collection bounded for the model's context budget.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from loguru import logger

from .repository import GitRepository
from ..errors import BackendUnavailable, GitRepositoryError, NoChangesToProcess
from ..utils.ignore import IgnoreMatcher


TRUNCATION_MARKER = "\n\n...[Diff Truncated]"


@dataclass
class DiffBundle:
    """Bounded diff text plus what was skipped or cut."""

    text: str
    truncated: bool = False
    ignored_paths: List[str] = field(default_factory=list)


def chunk_paths(paths: Sequence[str], max_items: int = 50, max_chars: int = 6000) -> List[List[str]]:
    """Group paths so each git invocation stays under item and argument-length limits."""
    batches: List[List[str]] = []
    current: List[str] = []
    current_chars = 0

    for path in paths:
        # One separator per argument
        path_len = len(path) + 1
        if current and (len(current) >= max_items or current_chars + path_len > max_chars):
            batches.append(current)
            current = []
            current_chars = 0

        current.append(path)
        current_chars += path_len

    if current:
        batches.append(current)

    return batches


def bound_text(text: str, max_chars: int) -> DiffBundle:
    """Cut text to max_chars including the truncation marker."""
    if len(text) <= max_chars:
        return DiffBundle(text=text)

    keep = max(max_chars - len(TRUNCATION_MARKER), 0)
    bounded = (text[:keep] + TRUNCATION_MARKER)[:max_chars]
    return DiffBundle(text=bounded, truncated=True)


class ChangeCollector:
    """Fetches filtered staged diffs in size-bounded batches."""

    def __init__(
        self,
        repository: GitRepository,
        ignore_matcher: Optional[IgnoreMatcher] = None,
        max_diff_chars: int = 15000,
        batch_max_items: int = 50,
        batch_max_chars: int = 6000
    ):
        self.repository = repository
        self.ignore_matcher = ignore_matcher or IgnoreMatcher()
        self.max_diff_chars = max_diff_chars
        self.batch_max_items = batch_max_items
        self.batch_max_chars = batch_max_chars

    @classmethod
    def from_settings(cls, repository: GitRepository, settings) -> "ChangeCollector":
        matcher = IgnoreMatcher.for_repository(
            repository.root,
            ignore_file=settings.git.ignore_file,
            use_defaults=settings.git.use_default_ignores,
        )
        return cls(
            repository,
            ignore_matcher=matcher,
            max_diff_chars=settings.git.max_diff_chars,
            batch_max_items=settings.git.batch_max_items,
            batch_max_chars=settings.git.batch_max_chars,
        )

    def staged_paths(self) -> List[str]:
        """Staged paths, raising NoChangesToProcess when there are none."""
        paths = self.repository.list_changed_paths()
        if not paths:
            raise NoChangesToProcess()
        return paths

    def collect(self, paths: Sequence[str]) -> DiffBundle:
        """Build the bounded diff bundle for the given staged paths."""
        allowed, ignored = self.ignore_matcher.partition(paths)
        if ignored:
            logger.debug(f"Withholding {len(ignored)} ignored file(s): {ignored}")

        parts: List[str] = []
        for batch in chunk_paths(allowed, self.batch_max_items, self.batch_max_chars):
            try:
                diff = self.repository.diff_for(batch)
            except BackendUnavailable:
                raise
            except GitRepositoryError as e:
                logger.warning(f"Diff unavailable for batch of {len(batch)} file(s): {e}")
                parts.append(f"[Diff unavailable for {len(batch)} file(s)]")
                continue
            if diff:
                parts.append(diff)

        bundle = bound_text("\n".join(parts), self.max_diff_chars)
        bundle.ignored_paths = ignored

        if bundle.truncated:
            logger.info(f"Diff truncated to {self.max_diff_chars} characters")
        logger.debug(f"Collected diff: {len(bundle.text)} characters from {len(allowed)} file(s)")
        return bundle
