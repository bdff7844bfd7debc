"""Tests for tree rendering and streaming output assembly."""

import asyncio
import random
import threading
from datetime import datetime

from conftest import make_dir, make_file
from repoforge.adapters.base import FetchedContent
from repoforge.core.aggregator import add_child, set_inclusion
from repoforge.core.assembler import (
    ProgressReporter,
    StreamingAssembler,
    collect_file_references,
    format_file_section,
    generate_header,
    generate_tree_string,
)
from repoforge.core.content_loader import ContentLoader
from repoforge.core.models import CANCELLED_OUTPUT, Config, Node, NodeKind, RepositoryInfo


class DelayedAdapter:
    """Returns ``content of <path>`` after a random delay."""

    def __init__(self, seed=0, config=None, cancel_after=None, cancel_event=None):
        self.config = config or Config()
        self.rng = random.Random(seed)
        self.fetched = []
        self.cancel_after = cancel_after
        self.cancel_event = cancel_event

    async def fetch_content(self, node):
        self.fetched.append(node.path)
        if self.cancel_after is not None and len(self.fetched) >= self.cancel_after:
            self.cancel_event.set()
        await asyncio.sleep(self.rng.random() / 200)
        return FetchedContent(f"content of {node.path}".encode())


def assemble(tree, adapter, **kwargs):
    assembler = StreamingAssembler(ContentLoader(adapter))
    return asyncio.run(assembler.assemble(tree, **kwargs))


def section_paths(text):
    return [line.split(" ")[1] for line in text.splitlines() if line.startswith("File: ")]


class TestTreeString:
    def test_sorted_by_name_with_connectors(self, tree):
        assert generate_tree_string(tree) == "\n".join([
            "repo",
            "├── docs",
            "│   └── d.md",
            "├── e.txt",
            "└── src",
            "    ├── a.py",
            "    └── lib",
            "        ├── b.py",
            "        └── c.py",
        ])

    def test_excluded_nodes_are_hidden(self, tree):
        set_inclusion(tree.find("src/lib"), False)
        set_inclusion(tree.find("docs"), False)
        assert generate_tree_string(tree) == "repo\n├── e.txt\n└── src\n    └── a.py"

    def test_tree_string_ignores_child_order(self, tree):
        before = generate_tree_string(tree)
        tree.children.reverse()
        assert generate_tree_string(tree) == before


class TestFileReferences:
    def test_sorted_by_estimate_descending(self, tree):
        refs = collect_file_references(tree)
        assert [r.node.path for r in refs] == ["docs/d.md", "src/lib/c.py", "src/lib/b.py", "src/a.py", "e.txt"]

    def test_ties_broken_by_path(self):
        root = make_dir("r", "")
        add_child(root, make_file("b", "b", 5))
        add_child(root, make_file("a", "a", 5))
        assert [r.node.path for r in collect_file_references(root)] == ["a", "b"]

    def test_zero_tokens_fall_back_to_size(self):
        root = make_dir("r", "")
        add_child(root, make_file("small", "small", 0, size=3))
        add_child(root, make_file("big", "big", 0, size=400))
        refs = collect_file_references(root)
        assert [(r.node.path, r.estimated_tokens) for r in refs] == [("big", 100), ("small", 1)]

    def test_excluded_files_skipped(self, tree):
        set_inclusion(tree.find("src"), False)
        assert [r.node.path for r in collect_file_references(tree)] == ["docs/d.md", "e.txt"]


class TestFormatting:
    def test_file_section(self):
        assert format_file_section("src/a.py", "x = 1", 2, 1, 3) == (
            "---\nFile: src/a.py (Tokens: 2, File: 1/3)\n---\nx = 1"
        )

    def test_header(self, tree):
        info = RepositoryInfo(name="repo", full_name="user/repo", description=None, language=None)
        header = generate_header(info, tree, generated_at=datetime(2024, 1, 2, 3, 4))
        lines = header.splitlines()
        assert lines[0] == "Repository: user/repo"
        assert "Description: No description available" in lines
        assert "Language: Mixed" in lines
        assert "Total Files: 5" in lines
        assert lines[-1] == "Generated: 2024-01-02 03:04"

    def test_header_without_timestamp(self, tree):
        header = generate_header(RepositoryInfo(name="r", full_name="r"), tree)
        assert "Generated" not in header


class TestProgressReporter:
    def test_throttled_and_monotonic(self):
        seen = []
        reporter = ProgressReporter(lambda f, m: seen.append((f, m)), total=12, interval=5)
        for _ in range(12):
            reporter.file_done()
        assert [m for _, m in seen] == ["Processed 5/12 files", "Processed 10/12 files", "Processed 12/12 files"]
        fractions = [f for f, _ in seen]
        assert fractions == sorted(fractions)

    def test_never_goes_backwards(self):
        seen = []
        reporter = ProgressReporter(lambda f, m: seen.append(f), total=1)
        reporter.report(0.8, "late")
        reporter.report(0.2, "early")
        assert seen == [0.8, 0.8]

    def test_without_callback(self):
        reporter = ProgressReporter(None, total=3)
        reporter.file_done()
        assert reporter.completed == 1


class TestStreamingAssembler:
    def test_document_layout(self, tree):
        result = assemble(tree, DelayedAdapter(), repository=RepositoryInfo(name="repo", full_name="user/repo"))

        assert not result.cancelled
        assert result.file_count == 5
        assert result.tree_string == generate_tree_string(tree)
        text = result.text
        assert text.startswith("Repository: user/repo\n")
        assert "\nFile Tree Structure:\nrepo\n" in text
        assert "\nRepository Contents:\n\n---\nFile: " in text
        assert "---\nFile: e.txt (Tokens: 4, File: 5/5)\n---\ncontent of e.txt" in text

    def test_order_independent_of_fetch_timing(self, tree):
        outputs = []
        for seed in range(5):
            # Fresh tree per run so every run fetches
            fresh = make_dir("repo", "")
            for name, tokens in [("a", 3), ("b", 30), ("c", 300), ("d", 30), ("e", 7)]:
                add_child(fresh, make_file(name, name, tokens))
            result = assemble(fresh, DelayedAdapter(seed=seed), concurrency=3)
            outputs.append(result.text)

        assert len(set(outputs)) == 1
        assert section_paths(outputs[0]) == ["c", "b", "d", "e", "a"]

    def test_content_replaces_estimates(self, tree):
        assemble(tree, DelayedAdapter())
        # "content of src/lib/c.py" is 23 characters
        assert tree.find("src/lib/c.py").token_count == 6
        assert tree.total_token_count == sum(n.token_count for n in tree.iter_leaves())

    def test_already_loaded_content_is_not_refetched(self, tree):
        tree.find("e.txt").content = "preloaded"
        adapter = DelayedAdapter()
        result = assemble(tree, adapter)
        assert "e.txt" not in adapter.fetched
        assert "---\ncontent of e.txt" not in result.text
        assert "preloaded" in result.text

    def test_concurrency_bound(self, tree):
        in_flight = 0
        peak = 0

        class CountingAdapter(DelayedAdapter):
            async def fetch_content(self, node):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                try:
                    return await super().fetch_content(node)
                finally:
                    in_flight -= 1

        assemble(tree, CountingAdapter(), concurrency=2)
        assert peak <= 2

    def test_progress_reaches_completion(self, tree):
        seen = []
        assemble(tree, DelayedAdapter(), on_progress=lambda f, m: seen.append((f, m)))
        fractions = [f for f, _ in seen]
        assert fractions == sorted(fractions)
        assert seen[-1][0] == 1.0
        assert seen[-1][1].startswith("Output ready")

    def test_cancel_before_start(self, tree):
        cancel = threading.Event()
        cancel.set()
        adapter = DelayedAdapter()
        result = assemble(tree, adapter, cancel_event=cancel)
        assert result.cancelled
        assert result.text == CANCELLED_OUTPUT
        assert adapter.fetched == []

    def test_cancel_midway_returns_sentinel(self, tree):
        cancel = threading.Event()
        adapter = DelayedAdapter(cancel_after=2, cancel_event=cancel)
        result = assemble(tree, adapter, concurrency=1, cancel_event=cancel)
        assert result.cancelled
        assert result.text == CANCELLED_OUTPUT
        assert len(adapter.fetched) == 2

    def test_empty_tree(self):
        result = assemble(make_dir("empty", ""), DelayedAdapter())
        assert result.file_count == 0
        assert "Repository Contents:" in result.text

    def test_non_file_entries_get_placeholder(self):
        root = make_dir("repo", "")
        add_child(root, Node(name="link", path="link", kind=NodeKind.SYMLINK))
        adapter = DelayedAdapter()
        result = assemble(root, adapter)
        assert adapter.fetched == []
        assert "---\nFile: link (Tokens: 0, File: 1/1)\n---\n// Content not available" in result.text
