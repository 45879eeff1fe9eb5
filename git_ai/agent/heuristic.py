"""
Single-pass static analysis of staged changes ("agent-lite").

Ranks files by impact, extracts candidate symbols from their diffs, looks for
usages elsewhere in the codebase and summarizes the findings as extra prompt
context. No iterative model conversation is involved.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from ..git_ops.repository import FileChangeStat, GitRepository
from ..utils.ignore import IgnoreMatcher


SCOPE_PREFIXES = ("feature/", "bugfix/", "fix/", "hotfix/", "release/", "docs/")

FUNCTION_PATTERN = re.compile(r"(?:^|\n)\+.*\b(?:fn|function|def)\s+(\w+)\s*\(")
TYPE_PATTERN = re.compile(r"(?:^|\n)\+.*\b(?:class|struct|interface|type)\s+(\w+)")
REMOVED_PUBLIC_PATTERN = re.compile(r"^-\s*(?:export|pub)\s", re.MULTILINE)
REMOVED_FUNCTION_PATTERN = re.compile(r"^-.*\b(?:fn|function|def)\s+(\w+)\s*\(", re.MULTILINE)
ADDED_FUNCTION_PATTERN = re.compile(r"^\+.*\b(?:fn|function|def)\s+(\w+)\s*\(", re.MULTILINE)
SCHEMA_PATTERN = re.compile(r"^\+.*\b(?:DROP|ALTER)\s+TABLE\b", re.MULTILINE | re.IGNORECASE)


@dataclass
class AnalysisHints:
    """Structured context produced by the heuristic analyzer."""

    key_files: List[Tuple[str, int]] = field(default_factory=list)
    symbols: List[str] = field(default_factory=list)
    external_usages: Dict[str, List[str]] = field(default_factory=dict)
    breaking_changes: List[str] = field(default_factory=list)
    scope_hint: Optional[str] = None

    def to_prompt_section(self) -> str:
        lines = ["## Analysis Context"]

        if self.key_files:
            lines.append("\nKey files modified:")
            lines.extend(f"- {path} (impact: {score})" for path, score in self.key_files)

        if self.breaking_changes:
            lines.append("\nPotential breaking changes:")
            lines.extend(f"- {change}" for change in self.breaking_changes)

        if self.scope_hint:
            lines.append(f"\nSuggested scope: {self.scope_hint}")

        if self.external_usages:
            lines.append("\nSymbol usage outside the staged changes:")
            for symbol, locations in self.external_usages.items():
                lines.append(f"- '{symbol}' found in {len(locations)} location(s)")

        return "\n".join(lines)


def rank_files(file_stats: Sequence[FileChangeStat], top_n: int = 5) -> List[FileChangeStat]:
    """Files ordered by insertions plus deletions, highest first."""
    return sorted(file_stats, key=lambda s: s.impact, reverse=True)[:top_n]


def extract_symbols(diff_text: str, limit: int = 3) -> List[str]:
    """Function and type names introduced by added lines."""
    symbols = set(FUNCTION_PATTERN.findall(diff_text))
    symbols.update(TYPE_PATTERN.findall(diff_text))
    return sorted(symbols)[:limit]


def detect_breaking_changes(diff_text: str) -> List[str]:
    changes = []

    if REMOVED_PUBLIC_PATTERN.search(diff_text):
        changes.append("Removed public API")

    changed = sorted(
        set(REMOVED_FUNCTION_PATTERN.findall(diff_text)) & set(ADDED_FUNCTION_PATTERN.findall(diff_text))
    )
    for name in changed:
        changes.append(f"Function signature changed: {name}")

    if SCHEMA_PATTERN.search(diff_text):
        changes.append("Database schema modified")

    return changes


def scope_from_branch(branch_name: Optional[str]) -> Optional[str]:
    """feature/user-auth -> user-auth; unrecognized prefixes give None."""
    if not branch_name:
        return None
    for prefix in SCOPE_PREFIXES:
        if branch_name.startswith(prefix):
            scope = branch_name[len(prefix):].strip("/")
            return scope or None
    return None


class HeuristicAnalyzer:
    """Non-conversational impact analysis over staged changes."""

    def __init__(
        self,
        repository: GitRepository,
        ignore_matcher: Optional[IgnoreMatcher] = None,
        top_files: int = 5,
        max_symbols: int = 3,
        max_usages: int = 50
    ):
        self.repository = repository
        self.ignore_matcher = ignore_matcher or IgnoreMatcher()
        self.top_files = top_files
        self.max_symbols = max_symbols
        self.max_usages = max_usages

    def analyze(self, file_stats: Sequence[FileChangeStat], branch_name: Optional[str] = None) -> AnalysisHints:
        """Rank files, extract symbols, search usages and flag breaking changes."""
        ranked = rank_files(file_stats, self.top_files)
        hints = AnalysisHints(
            key_files=[(stat.path, stat.impact) for stat in ranked],
            scope_hint=scope_from_branch(branch_name),
        )

        readable = [stat.path for stat in ranked if not self.ignore_matcher.is_ignored(stat.path)]
        diff_text = self.repository.diff_for(readable) if readable else ""

        hints.symbols = extract_symbols(diff_text, self.max_symbols)
        hints.breaking_changes = detect_breaking_changes(diff_text)

        staged = {stat.path for stat in file_stats}
        for symbol in hints.symbols:
            matches = self.repository.search_pattern(symbol)[:self.max_usages]
            outside = [m for m in matches if m.split(":", 1)[0] not in staged]
            if outside:
                hints.external_usages[symbol] = outside
                hints.breaking_changes.append(
                    f"'{symbol}' is referenced in {len(outside)} location(s) outside the staged changes"
                )

        logger.debug(
            f"Heuristic analysis: {len(hints.key_files)} key files, symbols={hints.symbols}, "
            f"{len(hints.breaking_changes)} breaking change flag(s), scope={hints.scope_hint}"
        )
        return hints
