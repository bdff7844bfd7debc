"""Tests for ignore-rule parsing and evaluation."""

import pytest

from repoforge.core.pattern_matcher import IgnoreRule, PatternMatcher, match_wildcard


@pytest.fixture
def matcher():
    return PatternMatcher()


class TestIgnoreRule:
    def test_parse_plain(self):
        rule = IgnoreRule.parse("build")
        assert rule.pattern == "build"
        assert not rule.negated
        assert not rule.directory_only
        assert not rule.anchored

    def test_parse_negated_directory(self):
        rule = IgnoreRule.parse("!logs/")
        assert rule.pattern == "logs"
        assert rule.negated
        assert rule.directory_only

    def test_parse_anchored(self):
        rule = IgnoreRule.parse("/config.yml")
        assert rule.anchored
        assert rule.pattern == "config.yml"

    def test_str_round_trips_display_form(self):
        assert str(IgnoreRule.parse("!/out/")) == "!/out/"
        assert str(IgnoreRule.parse("*.log", is_global=True)) == "*.log (global)"


class TestMatchWildcard:
    def test_suffix(self):
        assert match_wildcard("app.log", "*.log")
        assert not match_wildcard("app.logs", "*.log")

    def test_prefix(self):
        assert match_wildcard("temp_file", "temp*")
        assert not match_wildcard("my_temp", "temp*")

    def test_embedded(self):
        assert match_wildcard("test_foo_spec.js", "test*spec.js")
        assert not match_wildcard("spec_test.js", "test*spec.js")
        assert match_wildcard("a-b-c", "*b*")

    def test_star_alone(self):
        assert match_wildcard("anything", "*")

    def test_trailing_tilde(self):
        assert match_wildcard("notes.txt~", "*~")


class TestPatternMatcher:
    def test_directory_rule_matches_ancestor(self, matcher):
        assert matcher.should_ignore("node_modules/foo.js", False)

    def test_global_extension_rule(self, matcher):
        assert matcher.should_ignore("a.log", False)
        assert matcher.should_ignore("deep/nested/a.log", False)

    def test_negation_last_match_wins(self, matcher):
        matcher.load_rules("*.txt\n!keep.txt\n")
        assert not matcher.should_ignore("keep.txt", False)
        assert matcher.should_ignore("other.txt", False)

    def test_order_matters(self, matcher):
        matcher.load_rules("!keep.txt\n*.txt\n")
        assert matcher.should_ignore("keep.txt", False)

    def test_global_rules_cannot_be_negated(self, matcher):
        matcher.load_rules("!debug.log\n")
        assert matcher.should_ignore("debug.log", False)

    def test_directory_only_rule_ignores_directory_not_file(self, matcher):
        matcher.load_rules("cache/\n")
        assert matcher.should_ignore("cache", True)
        assert not matcher.should_ignore("cache", False)
        assert matcher.should_ignore("src/cache/data.json", False)

    def test_plain_name_matches_basename_and_ancestors(self, matcher):
        matcher.load_rules("secrets\n")
        assert matcher.should_ignore("secrets", False)
        assert matcher.should_ignore("config/secrets", False)
        assert matcher.should_ignore("secrets/key.pem", False)
        assert not matcher.should_ignore("secrets.py", False)

    def test_anchored_rule(self, matcher):
        matcher.load_rules("/config.yml\n/generated\n")
        assert matcher.should_ignore("config.yml", False)
        assert not matcher.should_ignore("sub/config.yml", False)
        assert matcher.should_ignore("generated/out.py", False)

    def test_pattern_with_slash(self, matcher):
        matcher.load_rules("docs/api\n")
        assert matcher.should_ignore("docs/api", True)
        assert matcher.should_ignore("docs/api/index.html", False)
        assert not matcher.should_ignore("docs/guide.md", False)

    def test_wildcard_on_full_path(self, matcher):
        matcher.load_rules("src/*.gen.ts\n")
        assert matcher.should_ignore("src/types.gen.ts", False)

    def test_comments_and_blanks_skipped(self, matcher):
        matcher.load_rules("# comment\n\n   \n*.bak\n")
        assert len(matcher.rules) == 1
        assert matcher.should_ignore("x.bak", False)

    def test_load_rules_replaces_previous(self, matcher):
        matcher.load_rules("*.bak\n")
        matcher.load_rules("*.orig\n")
        assert not matcher.should_ignore("x.bak", False)
        assert matcher.should_ignore("x.orig", False)

    def test_add_rules_appends(self, matcher):
        matcher.load_rules("*.bak\n")
        matcher.add_rules(["*.orig"])
        assert matcher.should_ignore("x.bak", False)
        assert matcher.should_ignore("x.orig", False)

    def test_empty_local_rules(self, matcher):
        assert not matcher.should_ignore("src/main.py", False)

    def test_root_path_never_ignored(self, matcher):
        matcher.load_rules("*\n")
        assert not matcher.should_ignore("", True)

    def test_leading_and_trailing_slashes_ignored(self, matcher):
        assert matcher.should_ignore("/node_modules/", True)

    def test_without_global_rules(self):
        matcher = PatternMatcher(global_patterns=[])
        assert not matcher.should_ignore("a.log", False)

    def test_active_patterns(self, matcher):
        matcher.load_rules("*.bak\n!keep.bak\nout/\n")
        assert matcher.active_patterns() == ["*.bak", "!keep.bak", "out/"]

    def test_filtering_stats(self, matcher):
        matcher.load_rules("*.bak\n")
        stats = matcher.filtering_stats(["a.py", "b.bak", "node_modules/", "src/"])
        assert stats == {"ignored": 2, "allowed": 2}
