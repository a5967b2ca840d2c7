from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Iterator

import pytest

TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

ROOT = TESTS_DIR.parent
for extra in (ROOT, ROOT / "src"):
    path_str = str(extra)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from fixtures import SAMPLE_CSV, WorkspaceBuilder  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_workspace(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Iterator[None]:
    """Keep every test away from the real ~/.adaptive-quiz-data."""

    monkeypatch.setenv("ADAPTIVE_QUIZ_DATA_HOME", str(tmp_path / "data-home"))
    monkeypatch.delenv("ADAPTIVE_QUIZ_CONFIG", raising=False)
    yield
    logger = logging.getLogger("adaptive_quiz.quizzer")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.propagate = True


@pytest.fixture
def workspace(tmp_path: Path) -> WorkspaceBuilder:
    """Provide a helper bound to pytest's per-test tmp directory."""

    return WorkspaceBuilder(tmp_path)


@pytest.fixture
def bank_csv(workspace: WorkspaceBuilder) -> Path:
    """A small question bank in the semicolon CSV format."""

    return workspace.write("q.csv", SAMPLE_CSV)
