"""Tests for commit message cleanup and candidate parsing."""
import json

import pytest

from git_ai.errors import CandidateParseFailure
from git_ai.utils.message_extractor import FOOTER, MessageExtractor


@pytest.fixture
def extractor():
    return MessageExtractor()


class TestCleanMessage:

    @pytest.mark.parametrize("raw,expected", [
        ("feat: add login", "feat: add login"),
        ("```\nfeat: add login\n```", "feat: add login"),
        ("```git-commit\nfix(db): close cursor\n```", "fix(db): close cursor"),
        ("  \"chore: bump deps\"  ", "chore: bump deps"),
        ("<|im_start|>assistant\ndocs: fix typo<|im_end|>", "docs: fix typo"),
        ("", ""),
    ])
    def test_cleanup(self, extractor, raw, expected):
        assert extractor.clean_message(raw) == expected

    def test_body_is_preserved(self, extractor):
        raw = "```\nfeat(auth): require token\n\nCallers must pass a token.\n```"
        assert extractor.clean_message(raw) == "feat(auth): require token\n\nCallers must pass a token."


class TestConventional:

    @pytest.mark.parametrize("message", [
        "feat: add login",
        "fix(api): handle nulls",
        "refactor(core)!: drop legacy loader",
        "Docs: capitalized type",
    ])
    def test_valid_headers(self, extractor, message):
        assert extractor.is_conventional(message)

    @pytest.mark.parametrize("message", ["Add login", "feature: add login", "fix:", ""])
    def test_invalid_headers(self, extractor, message):
        assert not extractor.is_conventional(message)


class TestParseCandidates:

    def test_json_array(self, extractor):
        raw = json.dumps(["feat: a", "fix: b"])
        assert extractor.parse_candidates(raw) == ["feat: a", "fix: b"]

    def test_json_array_in_code_fence(self, extractor):
        raw = "```json\n[\"feat: a\", \"fix: b\"]\n```"
        assert extractor.parse_candidates(raw) == ["feat: a", "fix: b"]

    def test_json_objects_with_message_field(self, extractor):
        raw = json.dumps([{"message": "feat: a"}, {"message": "fix: b"}])
        assert extractor.parse_candidates(raw) == ["feat: a", "fix: b"]

    def test_delimiter_fallback(self, extractor):
        raw = "feat: a\n\nBody of a.\n---\nfix: b\n-----\nchore: c"
        assert extractor.parse_candidates(raw) == ["feat: a\n\nBody of a.", "fix: b", "chore: c"]

    def test_malformed_json_falls_back_to_delimiter(self, extractor):
        raw = "[feat: a\n---\nfix: b"
        assert extractor.parse_candidates(raw) == ["[feat: a", "fix: b"]

    def test_blank_entries_are_dropped(self, extractor):
        assert extractor.parse_candidates(json.dumps(["feat: a", "  ", "fix: b"])) == ["feat: a", "fix: b"]

    @pytest.mark.parametrize("raw", ["", "   ", "---\n---", "```\n```"])
    def test_nothing_usable(self, extractor, raw):
        with pytest.raises(CandidateParseFailure):
            extractor.parse_candidates(raw)


class TestDeduplicate:

    def test_first_occurrence_wins(self):
        messages = ["feat: a", "fix: b", "feat: a", "docs: c", "fix: b"]
        assert MessageExtractor.deduplicate(messages) == ["feat: a", "fix: b", "docs: c"]

    def test_whitespace_only_differences_are_duplicates(self):
        assert MessageExtractor.deduplicate(["feat: a", "feat: a\n"]) == ["feat: a"]

    def test_idempotent(self):
        once = MessageExtractor.deduplicate(["x: 1", "y: 2", "x: 1"])
        assert MessageExtractor.deduplicate(once) == once


class TestFooter:

    def test_appended_once(self):
        message = MessageExtractor.add_footer("feat: a")

        assert message == f"feat: a\n\n{FOOTER}"
        assert MessageExtractor.add_footer(message) == message
