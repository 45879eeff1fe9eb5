"""
git-ai - AI-generated Git commit messages.

Collects the staged changes, bounds what is sent to the model, and picks
between single-shot generation, a static impact analysis and a tool-using
agent to produce Conventional Commits messages.
"""

__version__ = "1.0.0"

from git_ai.core import GenerationOrchestrator, GenerationRequest, GenerationResult
from git_ai.config.settings import Settings

__all__ = ["GenerationOrchestrator", "GenerationRequest", "GenerationResult", "Settings"]
