"""
Glob-style exclusion rules deciding which staged files are withheld from the model.

Rules follow ignore-file conventions: ``#`` starts a comment, ``!`` negates,
a leading ``/`` anchors to the repository root, a trailing ``/`` matches the
path itself and everything beneath it, ``*`` and ``?`` stay within one path
segment and ``**`` crosses segments. The last matching rule wins.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple

from loguru import logger


DEFAULT_IGNORE_RULES: Tuple[str, ...] = (
    # Lock files
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "*.lock",
    "go.sum",
    # Build output and vendored dependencies
    "dist/",
    "build/",
    "out/",
    "node_modules/",
    "vendor/",
    "__pycache__/",
    "*.pyc",
    # Generated bundles
    "*.min.js",
    "*.min.css",
    "*.map",
    # Binary assets
    "*.png",
    "*.jpg",
    "*.jpeg",
    "*.gif",
    "*.ico",
    "*.webp",
    "*.woff",
    "*.woff2",
    "*.ttf",
    "*.eot",
    "*.pdf",
)


@dataclass(frozen=True)
class IgnoreRule:
    """One compiled exclusion rule."""

    raw_pattern: str
    matcher: Pattern[str]
    negate: bool = False

    def matches(self, path: str) -> bool:
        return self.matcher.match(path) is not None


def normalize_path(path: str) -> str:
    """Use forward slashes and drop leading ``./`` segments."""
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


def _translate(body: str) -> Optional[str]:
    """Translate a glob body into a regular expression fragment."""
    out = []
    i, n = 0, len(body)

    while i < n:
        c = body[i]
        if c == "*":
            if body.startswith("**", i):
                if i + 2 < n and body[i + 2] == "/":
                    out.append("(?:.*/)?")
                    i += 3
                else:
                    out.append(".*")
                    i += 2
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            j = i + 1
            if j < n and body[j] in "!^":
                j += 1
            if j < n and body[j] == "]":
                j += 1
            j = body.find("]", j)
            if j == -1:
                return None
            members = body[i + 1:j]
            if members.startswith("!"):
                members = "^" + members[1:]
            out.append("[" + members.replace("\\", "\\\\") + "]")
            i = j + 1
            continue
        elif c == "\\" and i + 1 < n:
            out.append(re.escape(body[i + 1]))
            i += 2
            continue
        else:
            out.append(re.escape(c))
        i += 1

    return "".join(out)


def compile_pattern(line: str) -> Optional[IgnoreRule]:
    """Compile one rule line, or return None for blanks, comments and malformed globs."""
    raw = line.rstrip("\r\n")
    pattern = raw.rstrip()

    if not pattern or pattern.startswith("#"):
        return None

    negate = False
    if pattern.startswith("!"):
        negate = True
        pattern = pattern[1:]
    elif pattern.startswith("\\!") or pattern.startswith("\\#"):
        pattern = pattern[1:]

    anchored = pattern.startswith("/")
    body = pattern.strip("/")
    if not body:
        return None

    translated = _translate(body)
    if translated is None:
        logger.debug(f"Dropping malformed ignore pattern: {raw!r}")
        return None

    prefix = "^" if anchored else "^(?:.*/)?"
    suffix = "(?:/.*)?$"

    try:
        matcher = re.compile(prefix + translated + suffix)
    except re.error as e:
        logger.debug(f"Dropping malformed ignore pattern {raw!r}: {e}")
        return None

    return IgnoreRule(raw_pattern=raw, matcher=matcher, negate=negate)


def compile_rules(patterns: Iterable[str]) -> List[IgnoreRule]:
    """Compile rule lines in order, silently skipping the ones that do not compile."""
    rules = []
    for line in patterns:
        rule = compile_pattern(line)
        if rule is not None:
            rules.append(rule)
    return rules


def is_ignored(path: str, rules: Sequence[IgnoreRule]) -> bool:
    """Evaluate every rule in order; the last one that matches decides."""
    candidate = normalize_path(path)
    ignored = False
    for rule in rules:
        if rule.matches(candidate):
            ignored = not rule.negate
    return ignored


@lru_cache(maxsize=32)
def load_rule_file(path: str) -> Tuple[str, ...]:
    """Read a user rule file once per process."""
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            lines = tuple(f.read().splitlines())
    except FileNotFoundError:
        return ()
    except OSError as e:
        logger.warning(f"Could not read ignore file {path}: {e}")
        return ()

    logger.debug(f"Loaded {len(lines)} ignore rule lines from {path}")
    return lines


class IgnoreMatcher:
    """Decides which paths have their contents withheld from the model."""

    def __init__(self, patterns: Iterable[str] = DEFAULT_IGNORE_RULES):
        self.rules = compile_rules(patterns)

    @classmethod
    def for_repository(
        cls,
        root: Path,
        ignore_file: str = ".git-aiignore",
        use_defaults: bool = True
    ) -> "IgnoreMatcher":
        """Built-in defaults followed by the repository's rule file."""
        patterns: List[str] = list(DEFAULT_IGNORE_RULES) if use_defaults else []
        if ignore_file:
            patterns.extend(load_rule_file(str(Path(root) / ignore_file)))
        return cls(patterns)

    def is_ignored(self, path: str) -> bool:
        return is_ignored(path, self.rules)

    def partition(self, paths: Iterable[str]) -> Tuple[List[str], List[str]]:
        """Split paths into (allowed, ignored), keeping input order."""
        allowed, ignored = [], []
        for path in paths:
            (ignored if self.is_ignored(path) else allowed).append(path)
        return allowed, ignored
