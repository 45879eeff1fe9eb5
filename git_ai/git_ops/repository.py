"""
Git repository operations used by change collection and the analysis strategies.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo
from git.exc import GitCommandNotFound
from loguru import logger

from ..errors import BackendUnavailable, GitRepositoryError


@dataclass
class FileChangeStat:
    """Insertion and deletion counts of one staged file."""

    path: str
    insertions: int = 0
    deletions: int = 0

    @property
    def impact(self) -> int:
        return self.insertions + self.deletions


class GitRepository:
    """Git repository interface over the staged index."""

    def __init__(self, repo_path: Optional[Path] = None, command_timeout: float = 30.0):
        """Initialize Git repository."""
        self.repo_path = repo_path or Path.cwd()
        self.command_timeout = command_timeout
        self.repo: Optional[Repo] = None
        self._initialize_repo()

    def _initialize_repo(self) -> None:
        """Initialize the Git repository object."""
        try:
            self.repo = Repo(self.repo_path, search_parent_directories=True)
            logger.debug(f"Initialized Git repository at {self.repo.working_dir}")
        except (InvalidGitRepositoryError, NoSuchPathError):
            raise BackendUnavailable(f"Not a Git repository: {self.repo_path}")

        if self.repo.bare:
            raise BackendUnavailable(f"Bare repositories have no working tree: {self.repo_path}")

    @property
    def root(self) -> Path:
        return Path(self.repo.working_dir)

    def _git(self, command: str, *args: str) -> str:
        """Run one git subcommand, bounded by the command timeout."""
        try:
            return getattr(self.repo.git, command)(*args, kill_after_timeout=self.command_timeout)
        except GitCommandNotFound as e:
            raise BackendUnavailable(f"Git executable not found: {e}")
        except GitCommandError as e:
            raise GitRepositoryError(f"git {command} failed: {e.stderr.strip() if e.stderr else e}")

    def list_changed_paths(self) -> List[str]:
        """List the paths staged for the next commit."""
        output = self._git("diff", "--cached", "--name-only", "--no-renames", "-z")
        return [path for path in output.split('\0') if path.strip()]

    def file_stats(self) -> List[FileChangeStat]:
        """Insertion and deletion counts for every staged file."""
        output = self._git("diff", "--cached", "--numstat", "--no-renames", "-z")
        stats = []

        for record in output.split('\0'):
            parts = record.strip('\n').split('\t')
            if len(parts) < 3:
                continue
            # Binary files report "-" for both counts
            insertions = int(parts[0]) if parts[0].isdigit() else 0
            deletions = int(parts[1]) if parts[1].isdigit() else 0
            stats.append(FileChangeStat(path=parts[2], insertions=insertions, deletions=deletions))

        return stats

    def file_stat(self, path: str) -> FileChangeStat:
        """Insertion and deletion counts for one staged file."""
        for stat in self.file_stats():
            if stat.path == path:
                return stat
        return FileChangeStat(path=path)

    def diff_for(self, paths: Sequence[str]) -> str:
        """Staged diff text limited to the given paths."""
        if not paths:
            return ""
        return self._git("diff", "--cached", "--no-renames", "--", *paths)

    def search_pattern(self, pattern: str) -> List[str]:
        """Search tracked files for an extended regular expression."""
        try:
            output = self.repo.git.grep(
                "-n", "-I", "-E", "-e", pattern,
                kill_after_timeout=self.command_timeout
            )
        except GitCommandNotFound as e:
            raise BackendUnavailable(f"Git executable not found: {e}")
        except GitCommandError as e:
            # git grep exits with 1 when nothing matches
            if e.status == 1:
                return []
            raise GitRepositoryError(f"git grep failed: {e.stderr.strip() if e.stderr else e}")

        return [line for line in output.splitlines() if line]

    def current_branch(self) -> str:
        """Name of the checked-out branch, empty when HEAD is detached."""
        try:
            branch = self._git("rev-parse", "--abbrev-ref", "HEAD").strip()
        except GitRepositoryError as e:
            # A fresh repository without commits has no resolvable HEAD
            logger.debug(f"Could not resolve current branch: {e}")
            try:
                return self._git("symbolic-ref", "--short", "HEAD").strip()
            except GitRepositoryError:
                return ""

        return "" if branch == "HEAD" else branch

    def recent_subjects(self, since_days: int = 30, limit: int = 10) -> List[str]:
        """Subjects of recent non-merge commits, newest first."""
        if limit <= 0:
            return []

        try:
            output = self._git(
                "log", f"--since={since_days}.days", "--no-merges",
                f"--max-count={limit}", "--format=%s"
            )
        except GitRepositoryError as e:
            logger.debug(f"Failed to get recent commits: {e}")
            return []

        return [line.strip() for line in output.splitlines() if line.strip()]
