"""
Commit message extraction, candidate parsing and normalization.
"""

import json
import re
from typing import Iterable, List, Optional

from loguru import logger

from ..errors import CandidateParseFailure


FOOTER = "🤖 Generated by git-ai 🚀"


class MessageExtractor:
    """Extract and clean commit messages from AI responses."""

    # Conventional commit types
    COMMIT_TYPES = [
        "feat", "fix", "docs", "style", "refactor",
        "test", "chore", "build", "ci", "perf", "revert"
    ]

    def __init__(self):
        """Initialize message extractor."""
        self._compile_patterns()

    def _compile_patterns(self) -> None:
        """Compile regex patterns for efficient matching."""
        types_pattern = "|".join(self.COMMIT_TYPES)

        self.pattern_header = re.compile(
            rf'^({types_pattern})(\([^)]+\))?!?:\s*\S',
            re.IGNORECASE
        )
        self.opening_fence = re.compile(r'^\s*```[\w-]*[ \t]*\n?')
        self.closing_fence = re.compile(r'\n?```\s*$')
        self.delimiter = re.compile(r'^\s*-{3,}\s*$', re.MULTILINE)

    def clean_message(self, raw_response: str) -> str:
        """Strip code fences, chat template tokens and wrapping quotes."""
        if not raw_response:
            return ""

        cleaned = re.sub(r'<\|im_(start|end)\|>(assistant)?', '', raw_response)
        cleaned = self.opening_fence.sub('', cleaned.strip(), count=1)
        cleaned = self.closing_fence.sub('', cleaned)
        cleaned = cleaned.strip()

        if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in '"\'`':
            cleaned = cleaned[1:-1].strip()

        return cleaned

    def is_conventional(self, message: str) -> bool:
        """Check if the first line follows the Conventional Commits header format."""
        first_line = message.strip().split('\n', 1)[0]
        return bool(self.pattern_header.match(first_line))

    def parse_candidates(self, raw_response: str) -> List[str]:
        """Split a multi-candidate response into messages.

        A JSON array of strings is preferred; a plain ``---`` delimited response
        is accepted as a fallback.
        """
        candidates = self._parse_json_list(raw_response)
        if candidates is None:
            logger.debug("Structured candidate parsing failed, splitting on delimiter")
            candidates = self._split_delimited(raw_response)

        candidates = [c for c in (self.clean_message(c) for c in candidates) if c]
        if not candidates:
            raise CandidateParseFailure(
                f"No commit messages found in model response ({len(raw_response or '')} characters)"
            )

        return candidates

    def _parse_json_list(self, text: str) -> Optional[List[str]]:
        body = self.clean_message(text)
        start, end = body.find('['), body.rfind(']')
        if start == -1 or end <= start:
            return None

        try:
            data = json.loads(body[start:end + 1])
        except (json.JSONDecodeError, ValueError):
            return None

        if not isinstance(data, list) or not data:
            return None

        messages = []
        for item in data:
            if isinstance(item, str):
                messages.append(item)
            elif isinstance(item, dict) and isinstance(item.get("message"), str):
                messages.append(item["message"])
            else:
                return None
        return messages

    def _split_delimited(self, text: str) -> List[str]:
        return [part.strip() for part in self.delimiter.split(self.clean_message(text)) if part.strip()]

    @staticmethod
    def deduplicate(messages: Iterable[str]) -> List[str]:
        """Drop exact duplicates, keeping first-seen order."""
        seen = set()
        unique = []
        for message in messages:
            key = message.strip()
            if key in seen:
                continue
            seen.add(key)
            unique.append(message)
        return unique

    @staticmethod
    def add_footer(message: str) -> str:
        if message.rstrip().endswith(FOOTER):
            return message
        return f"{message}\n\n{FOOTER}"


# Create global instance
message_extractor = MessageExtractor()
