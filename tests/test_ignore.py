"""Tests for ignore-rule compilation and evaluation."""
from pathlib import Path

import pytest

from git_ai.utils.ignore import (
    DEFAULT_IGNORE_RULES,
    IgnoreMatcher,
    compile_pattern,
    compile_rules,
    is_ignored,
    load_rule_file,
    normalize_path,
)


class TestCompilePattern:

    @pytest.mark.parametrize("line", ["", "   ", "# a comment", "#build/"])
    def test_blank_and_comment_lines_are_skipped(self, line):
        assert compile_pattern(line) is None

    def test_escaped_hash_is_a_literal(self):
        rule = compile_pattern("\\#notes.txt")
        assert rule is not None
        assert rule.matches("#notes.txt")

    def test_leading_bang_negates(self):
        rule = compile_pattern("!keep.txt")
        assert rule.negate is True
        assert rule.matches("keep.txt")

    def test_escaped_bang_is_a_literal(self):
        rule = compile_pattern("\\!important.txt")
        assert rule.negate is False
        assert rule.matches("!important.txt")

    def test_unterminated_bracket_is_dropped(self):
        assert compile_pattern("file[abc.txt") is None

    def test_malformed_pattern_does_not_abort_compile(self):
        rules = compile_rules(["*.log", "bad[", "dist/"])
        assert [r.raw_pattern for r in rules] == ["*.log", "dist/"]


class TestMatching:

    @pytest.mark.parametrize("pattern,path,expected", [
        ("*.log", "debug.log", True),
        ("*.log", "logs/debug.log", True),
        ("*.log", "debug.log.txt", False),
        ("src/*.py", "src/app.py", True),
        ("src/*.py", "src/pkg/app.py", False),
        ("src/**/*.py", "src/pkg/deep/app.py", True),
        ("src/**/*.py", "src/app.py", True),
        ("**/fixtures", "tests/unit/fixtures/data.json", True),
        ("file?.txt", "file1.txt", True),
        ("file?.txt", "file10.txt", False),
        ("file?.txt", "dir/file/.txt", False),
        ("[ab].txt", "a.txt", True),
        ("[!ab].txt", "a.txt", False),
        ("[!ab].txt", "c.txt", True),
        ("/config.json", "config.json", True),
        ("/config.json", "nested/config.json", False),
        ("config.json", "nested/config.json", True),
        ("build/", "build/x.txt", True),
        ("vendor/", "vendor", True),
        ("vendor/", "lib/vendor", True),
        ("vendor/", "vendored.py", False),
        ("build/", "src/build/x.txt", True),
        ("build/", "rebuild/x.txt", False),
        ("/build/", "src/build/x.txt", False),
    ])
    def test_glob_semantics(self, pattern, path, expected):
        assert is_ignored(path, compile_rules([pattern])) is expected

    def test_later_negation_reverses_earlier_match(self):
        rules = compile_rules(["build/", "!build/keep.txt"])

        assert is_ignored("build/x.txt", rules) is True
        assert is_ignored("build/keep.txt", rules) is False

    def test_last_matching_rule_wins(self):
        rules = compile_rules(["*.txt", "!notes.txt", "notes.txt"])
        assert is_ignored("notes.txt", rules) is True

    def test_no_rules_means_not_ignored(self):
        assert is_ignored("anything.py", []) is False

    def test_evaluation_is_deterministic(self):
        rules = compile_rules(["dist/", "!dist/keep/", "*.min.js"])
        for path in ["dist/a.js", "dist/keep/b.js", "web/app.min.js", "src/app.js"]:
            assert is_ignored(path, rules) == is_ignored(path, rules)

    @pytest.mark.parametrize("raw,expected", [
        ("./src/app.py", "src/app.py"),
        ("src\\win\\app.py", "src/win/app.py"),
        ("/abs/path.py", "abs/path.py"),
    ])
    def test_normalize_path(self, raw, expected):
        assert normalize_path(raw) == expected

    def test_windows_separators_are_matched(self):
        assert is_ignored("node_modules\\lib\\index.js", compile_rules(["node_modules/"]))


class TestIgnoreMatcher:

    @pytest.mark.parametrize("path", [
        "package-lock.json", "a.lock", "web/yarn.lock", "dist/bundle.js",
        "node_modules/react/index.js", "static/app.min.js", "img/logo.png",
    ])
    def test_default_rules_ignore_generated_files(self, path):
        assert IgnoreMatcher().is_ignored(path)

    @pytest.mark.parametrize("path", ["src/app.ts", "README.md", "b.ts"])
    def test_default_rules_keep_source_files(self, path):
        assert not IgnoreMatcher().is_ignored(path)

    def test_partition_keeps_order(self):
        allowed, ignored = IgnoreMatcher().partition(["a.lock", "b.ts", "c.png", "d.py"])

        assert allowed == ["b.ts", "d.py"]
        assert ignored == ["a.lock", "c.png"]

    def test_repository_rule_file_extends_defaults(self, tmp_path: Path):
        (tmp_path / ".git-aiignore").write_text("# generated\ndocs/api/\n!yarn.lock\n")

        matcher = IgnoreMatcher.for_repository(tmp_path)

        assert matcher.is_ignored("docs/api/index.html")
        assert matcher.is_ignored("dist/out.js")
        assert not matcher.is_ignored("yarn.lock")

    def test_defaults_can_be_disabled(self, tmp_path: Path):
        matcher = IgnoreMatcher.for_repository(tmp_path, use_defaults=False)
        assert not matcher.is_ignored("package-lock.json")

    def test_missing_rule_file_yields_no_rules(self, tmp_path: Path):
        assert load_rule_file(str(tmp_path / "absent")) == ()

    def test_defaults_all_compile(self):
        assert len(compile_rules(DEFAULT_IGNORE_RULES)) == len(DEFAULT_IGNORE_RULES)
