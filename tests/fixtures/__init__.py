"""Shared testing fixtures for the adaptive_quiz test suite."""

from .questions import SAMPLE_CSV, make_bank  # noqa: F401
from .workspace import WorkspaceBuilder, build_tree  # noqa: F401

__all__ = [
    "SAMPLE_CSV",
    "WorkspaceBuilder",
    "build_tree",
    "make_bank",
]
