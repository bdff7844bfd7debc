import pytest
import tempfile
import shutil
from pathlib import Path

from repoforge.core.aggregator import add_child
from repoforge.core.models import Node, NodeKind


@pytest.fixture
def temp_workspace():
    """Create a temporary directory for test files."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def sample_repo(temp_workspace):
    """Create a sample repository structure for testing."""
    repo_root = temp_workspace / "sample_repo"
    repo_root.mkdir()

    # Create directory structure
    (repo_root / "src").mkdir()
    (repo_root / "src" / "utils").mkdir()
    (repo_root / "tests").mkdir()
    (repo_root / "docs").mkdir()
    (repo_root / ".git").mkdir()
    (repo_root / "node_modules").mkdir()

    # Create files
    (repo_root / "README.md").write_text("# Sample Repository\n\nTest repository for repoforge")
    (repo_root / "setup.py").write_text("from setuptools import setup\n\nsetup(name='sample')")
    (repo_root / "src" / "__init__.py").write_text("")
    (repo_root / "src" / "main.py").write_text("def main():\n    print('Hello, World!')")
    (repo_root / "src" / "utils" / "helpers.py").write_text("def helper():\n    return 42")
    (repo_root / "tests" / "test_main.py").write_text("def test_main():\n    assert True")
    (repo_root / "docs" / "notes.txt").write_text("scratch notes")
    (repo_root / ".git" / "config").write_text("[core]\n    repositoryformatversion = 0")
    (repo_root / "node_modules" / "package.json").write_text('{"name": "test"}')

    # Create binary files
    (repo_root / "image.png").write_bytes(b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR')
    (repo_root / "blob.dat").write_bytes(b'\x00\x01\x02\x03' * 64)

    (repo_root / ".gitignore").write_text("docs/\n*.tmp\n")

    return repo_root


def make_file(name: str, path: str, tokens: int, size: int = 0) -> Node:
    return Node(name=name, path=path, kind=NodeKind.FILE, size=size or tokens * 4, token_count=tokens)


def make_dir(name: str, path: str) -> Node:
    return Node(name=name, path=path, kind=NodeKind.DIRECTORY)


@pytest.fixture
def tree():
    """
    A small in-memory tree::

        repo/
          src/
            a.py (10)
            lib/
              b.py (20)
              c.py (30)
          docs/
            d.md (40)
          e.txt (5)
    """
    root = make_dir("repo", "")
    src = make_dir("src", "src")
    lib = make_dir("lib", "src/lib")
    docs = make_dir("docs", "docs")

    add_child(root, src)
    add_child(src, make_file("a.py", "src/a.py", 10))
    add_child(src, lib)
    add_child(lib, make_file("b.py", "src/lib/b.py", 20))
    add_child(lib, make_file("c.py", "src/lib/c.py", 30))
    add_child(root, docs)
    add_child(docs, make_file("d.md", "docs/d.md", 40))
    add_child(root, make_file("e.txt", "e.txt", 5))
    return root
