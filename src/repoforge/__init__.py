"""repoforge - flatten a repository into one LLM-ready text document."""

__version__ = "1.0.0"
