"""
Generation strategy selection.
"""

from enum import Enum
from fnmatch import fnmatchcase
from typing import Optional, Tuple

from loguru import logger


class Strategy(str, Enum):
    """Generation approaches, from cheapest to most thorough."""

    DIRECT = "direct"
    HEURISTIC = "heuristic"
    TOOL_AGENT = "tool_agent"

    @property
    def is_enriched(self) -> bool:
        return self is not Strategy.DIRECT


CRITICAL_BRANCH_PATTERNS: Tuple[str, ...] = ("release/*", "hotfix/*", "main", "master")
FEATURE_BRANCH_PATTERNS: Tuple[str, ...] = ("feature/*", "bugfix/*", "dev/*")


def matches_any(branch_name: Optional[str], patterns: Tuple[str, ...]) -> bool:
    if not branch_name:
        return False
    return any(fnmatchcase(branch_name, pattern) for pattern in patterns)


class StrategySelector:
    """Chooses direct, heuristic or tool-agent generation for a request."""

    def __init__(self, auto_enrichment: bool = True, enriched_strategy: Strategy = Strategy.TOOL_AGENT):
        self.auto_enrichment = auto_enrichment
        self.enriched_strategy = Strategy(enriched_strategy)

    @classmethod
    def from_settings(cls, settings) -> "StrategySelector":
        return cls(
            auto_enrichment=settings.agent.auto_enrichment,
            enriched_strategy=Strategy(settings.agent.enriched_strategy),
        )

    def select(
        self,
        candidate_count: int = 1,
        truncated: bool = False,
        branch_name: Optional[str] = None,
        force_strategy: Optional[Strategy] = None
    ) -> Strategy:
        """Pick a strategy; an explicit override always wins."""
        if force_strategy is not None:
            strategy = Strategy(force_strategy)
            logger.debug(f"Strategy forced by caller: {strategy.value}")
            return strategy

        # Enriched strategies only produce a single best answer
        if candidate_count > 1:
            return Strategy.DIRECT

        if not self.auto_enrichment:
            return Strategy.DIRECT

        if truncated:
            reason = "truncated diff"
        elif matches_any(branch_name, CRITICAL_BRANCH_PATTERNS):
            reason = f"critical branch '{branch_name}'"
        elif matches_any(branch_name, FEATURE_BRANCH_PATTERNS):
            reason = f"feature branch '{branch_name}'"
        else:
            return Strategy.DIRECT

        logger.debug(f"Selected {self.enriched_strategy.value} strategy: {reason}")
        return self.enriched_strategy
