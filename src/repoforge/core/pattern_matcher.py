"""
Ignore-file rule evaluation.

Supports the practical subset of ``.gitignore`` syntax that repositories
actually use: comments, negation (``!``), directory-only rules (trailing
``/``), root-anchored rules (leading ``/``) and ``*`` wildcards as prefix,
suffix or ordered-substring globs. Character classes and ``**`` are not
interpreted specially.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List

logger = logging.getLogger(__name__)


# Always active, regardless of the repository's own ignore file
GLOBAL_IGNORE_PATTERNS = [
    ".DS_Store",
    "Thumbs.db",
    "*.log",
    "*.tmp",
    "*.temp",
    "*.cache",
    "*.swp",
    "*.swo",
    "*~",
    ".git/",
    ".svn/",
    ".hg/",
    "node_modules/",
    "__pycache__/",
    "*.pyc",
    "*.pyo",
    ".pytest_cache/",
    ".coverage",
    ".nyc_output/",
    "coverage/",
    ".sass-cache/",
    ".nuxt/",
    ".next/",
    "build/",
    "dist/",
    "target/",
    "bin/",
    "obj/",
    ".vscode/",
    ".idea/",
    "vendor/",
    "Pods/",
    "DerivedData/",
    ".build/",
    "Package.resolved",
]


@dataclass(frozen=True)
class IgnoreRule:
    """A single parsed ignore pattern."""

    pattern: str
    negated: bool = False
    directory_only: bool = False
    anchored: bool = False
    is_global: bool = False

    @classmethod
    def parse(cls, line: str, is_global: bool = False) -> 'IgnoreRule':
        text = line.strip()
        negated = text.startswith("!")
        if negated:
            text = text[1:]
        directory_only = text.endswith("/")
        if directory_only:
            text = text.rstrip("/")
        anchored = text.startswith("/")
        if anchored:
            text = text.lstrip("/")
        return cls(
            pattern=text,
            negated=negated,
            directory_only=directory_only,
            anchored=anchored,
            is_global=is_global,
        )

    @property
    def has_wildcard(self) -> bool:
        return "*" in self.pattern

    def __str__(self) -> str:
        result = ("!" if self.negated else "") + ("/" if self.anchored else "") + self.pattern
        if self.directory_only:
            result += "/"
        if self.is_global:
            result += " (global)"
        return result


def match_wildcard(text: str, pattern: str) -> bool:
    """
    Match ``text`` against a ``*`` glob.

    ``*.ext`` is a suffix match, ``prefix*`` a prefix match, and any other
    wildcard pattern an ordered substring match of its literal parts.
    """
    if pattern == "*":
        return True
    if pattern.startswith("*.") and pattern.count("*") == 1:
        return text.endswith(pattern[1:])
    if pattern.endswith("*") and pattern.count("*") == 1:
        return text.startswith(pattern[:-1])
    if "*" in pattern:
        parts = [part for part in pattern.split("*") if part]
        position = 0
        if not pattern.startswith("*") and not text.startswith(parts[0]):
            return False
        for part in parts:
            index = text.find(part, position)
            if index < 0:
                return False
            position = index + len(part)
        if not pattern.endswith("*") and parts and not text.endswith(parts[-1]):
            return False
        return True
    return text == pattern


class PatternMatcher:
    """
    Decides whether a repository path is ignored.

    Holds a fixed global rule set and a local rule set loaded from one
    ignore file. Within each set the last matching rule wins. Global rules
    are evaluated in a separate first pass; a path they ignore stays
    ignored whatever the local rules say.
    """

    def __init__(self, global_patterns: Iterable[str] = GLOBAL_IGNORE_PATTERNS):
        self.global_rules: List[IgnoreRule] = [
            IgnoreRule.parse(pattern, is_global=True) for pattern in global_patterns
        ]
        self.rules: List[IgnoreRule] = []

    def load_rules(self, text: str) -> None:
        """Replace the local rule set with the rules parsed from ignore-file text."""
        self.rules = []
        self.add_rules(text.splitlines())

    def add_rules(self, lines: Iterable[str]) -> None:
        """Append rules, skipping blanks and comments."""
        for line in lines:
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            self.rules.append(IgnoreRule.parse(stripped))
        logger.debug("Loaded %d local ignore rules", len(self.rules))

    def should_ignore(self, path: str, is_directory: bool) -> bool:
        """Return True if ``path`` is ignored by the global or local rules."""
        path = path.strip("/")
        if not path:
            return False
        if self._evaluate(path, is_directory, self.global_rules):
            return True
        return self._evaluate(path, is_directory, self.rules)

    def _evaluate(self, path: str, is_directory: bool, rules: List[IgnoreRule]) -> bool:
        ignored = False
        for rule in rules:
            if self.matches(path, is_directory, rule):
                ignored = not rule.negated
        return ignored

    @staticmethod
    def matches(path: str, is_directory: bool, rule: IgnoreRule) -> bool:
        """Check a single rule against a slash-separated relative path."""
        segments = path.split("/")
        name = segments[-1]

        if rule.directory_only:
            # A directory rule hits the path itself only if it is a directory,
            # and any path below a matching ancestor directory.
            candidates = segments if is_directory else segments[:-1]
            if rule.anchored or "/" in rule.pattern:
                prefixes = ["/".join(segments[:i + 1]) for i in range(len(candidates))]
                return any(_match_text(prefix, rule.pattern) for prefix in prefixes)
            return any(_match_text(segment, rule.pattern) for segment in candidates)

        if rule.anchored:
            return _match_text(path, rule.pattern) or path.startswith(rule.pattern + "/")

        if rule.has_wildcard:
            return _match_text(name, rule.pattern) or _match_text(path, rule.pattern)

        if rule.pattern == name or rule.pattern == path:
            return True
        if "/" in rule.pattern:
            return path.endswith("/" + rule.pattern) or path.startswith(rule.pattern + "/")
        # A bare name also ignores everything beneath a directory of that name
        return rule.pattern in segments[:-1]

    def active_patterns(self) -> List[str]:
        """Local rules in display form."""
        return [str(rule) for rule in self.rules]

    def filtering_stats(self, paths: Iterable[str]) -> Dict[str, int]:
        """Count ignored and allowed paths; a trailing slash marks a directory."""
        ignored = 0
        allowed = 0
        for path in paths:
            if self.should_ignore(path, path.endswith("/")):
                ignored += 1
            else:
                allowed += 1
        return {"ignored": ignored, "allowed": allowed}


def _match_text(text: str, pattern: str) -> bool:
    if "*" in pattern:
        return match_wildcard(text, pattern)
    return text == pattern
