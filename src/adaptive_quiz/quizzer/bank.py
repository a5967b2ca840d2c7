"""Question bank model and the loaders that build it from disk.

The bank is loaded once per session and never re-ordered: a question's index
is its identity for weight persistence. Source rows that do not describe a
valid question are dropped with a DEBUG log entry rather than aborting the
whole load.
"""

from __future__ import annotations

import csv
import hashlib
import io
import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence

__all__ = [
    "MAX_OPTIONS",
    "Question",
    "QuestionBank",
    "QuestionSourceError",
    "build_question",
    "load_bank",
    "parse_csv",
    "parse_jsonl",
]

MAX_OPTIONS = 7
# prompt + MAX_OPTIONS option columns + correct-position column
_CSV_MIN_COLUMNS = MAX_OPTIONS + 2
_CSV_DELIMITER = ";"

logger = logging.getLogger(__name__)


class QuestionSourceError(RuntimeError):
    """Raised when the question source cannot be read at all."""


@dataclass(frozen=True)
class Question:
    """A single multiple-choice / multiple-select question."""

    id: int
    prompt: str
    options: tuple[str, ...]
    correct: frozenset[int]

    @property
    def content_key(self) -> str:
        """Stable hash of the prompt and options, independent of bank order."""

        digest = hashlib.sha1()
        digest.update(self.prompt.encode("utf-8"))
        for option in self.options:
            digest.update(b"\x1f")
            digest.update(option.encode("utf-8"))
        return digest.hexdigest()


class QuestionBank:
    """Ordered, fixed-size question list with a weight per question."""

    def __init__(
        self, questions: Sequence[Question], *, initial_weight: float = 1.0
    ) -> None:
        self._questions = tuple(questions)
        self._weights = [float(initial_weight)] * len(self._questions)

    def __len__(self) -> int:
        return len(self._questions)

    def __iter__(self) -> Iterator[Question]:
        return iter(self._questions)

    def __getitem__(self, index: int) -> Question:
        return self._questions[index]

    @property
    def questions(self) -> tuple[Question, ...]:
        return self._questions

    @property
    def weights(self) -> list[float]:
        """Return a copy of the weight vector in bank order."""

        return list(self._weights)

    def weight(self, index: int) -> float:
        return self._weights[index]

    def set_weight(self, index: int, value: float) -> None:
        if value <= 0:
            raise ValueError("Question weights must be positive.")
        self._weights[index] = float(value)

    def reset_weights(self, value: float) -> None:
        self._weights = [float(value)] * len(self._questions)

    def apply_weights(
        self,
        saved: Optional[Sequence[Any]],
        *,
        min_weight: float,
        max_weight: float,
    ) -> int:
        """Overwrite weights positionally from ``saved``.

        Only indices present in ``saved`` are touched; entries that are not
        positive finite numbers keep their current weight. Accepted values are
        clamped into ``[min_weight, max_weight]``. Returns how many entries were
        applied.
        """

        if not saved:
            return 0
        applied = 0
        for index, value in enumerate(saved[: len(self._weights)]):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            number = float(value)
            if not math.isfinite(number) or number <= 0:
                continue
            self._weights[index] = min(max_weight, max(min_weight, number))
            applied += 1
        return applied

    def content_keys(self) -> list[str]:
        return [question.content_key for question in self._questions]


def build_question(
    index: int,
    prompt: object,
    options: Iterable[object],
    correct: Iterable[object],
) -> Optional[Question]:
    """Validate raw fields and build a :class:`Question`, or ``None``."""

    text = str(prompt or "").strip()
    cleaned = [str(opt).strip() for opt in options if str(opt or "").strip()]
    positions: set[int] = set()
    for raw in correct:
        try:
            positions.add(int(str(raw).strip()))
        except ValueError:
            continue
    if not text or not cleaned or not positions:
        return None
    if len(cleaned) > MAX_OPTIONS:
        return None
    if any(pos < 1 or pos > len(cleaned) for pos in positions):
        return None
    return Question(
        id=index,
        prompt=text,
        options=tuple(cleaned),
        correct=frozenset(positions),
    )


def parse_csv(text: str) -> list[Question]:
    """Parse the semicolon-separated question format.

    The first row is a header. Each data row holds the prompt, up to seven
    option cells (blank cells are ignored) and a comma-separated list of
    1-based correct positions in the ninth column.
    """

    questions: list[Question] = []
    reader = csv.reader(io.StringIO(text), delimiter=_CSV_DELIMITER)
    for line_no, row in enumerate(reader, start=1):
        if line_no == 1:
            continue
        cols = [col.strip() for col in row]
        if not any(cols):
            continue
        if len(cols) < _CSV_MIN_COLUMNS:
            logger.debug(
                "Skipping short question row",
                extra={"line": line_no, "columns": len(cols)},
            )
            continue
        question = build_question(
            len(questions),
            cols[0],
            cols[1 : MAX_OPTIONS + 1],
            cols[MAX_OPTIONS + 1].split(","),
        )
        if question is None:
            logger.debug("Skipping malformed question row", extra={"line": line_no})
            continue
        questions.append(question)
    return questions


def parse_jsonl(text: str) -> list[Question]:
    """Parse one JSON object per line with ``prompt``/``options``/``correct``."""

    questions: list[Question] = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping invalid JSON line", extra={"line": line_no})
            continue
        if not isinstance(record, Mapping):
            continue
        options = record.get("options")
        correct = record.get("correct")
        if not isinstance(options, list) or not isinstance(correct, list):
            logger.debug("Skipping malformed question record", extra={"line": line_no})
            continue
        question = build_question(
            len(questions), record.get("prompt"), options, correct
        )
        if question is None:
            logger.debug("Skipping malformed question record", extra={"line": line_no})
            continue
        questions.append(question)
    return questions


def load_bank(path: Path, *, initial_weight: float = 1.0) -> QuestionBank:
    """Read ``path`` and build a :class:`QuestionBank`.

    ``.jsonl`` files use :func:`parse_jsonl`; anything else is treated as the
    semicolon CSV format. An unreadable file raises
    :class:`QuestionSourceError`; an empty result is returned as an empty bank
    so the caller decides how to report it.
    """

    try:
        text = Path(path).read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise QuestionSourceError(
            f"Unable to read question source {path}: {exc}"
        ) from exc
    if Path(path).suffix.lower() == ".jsonl":
        questions = parse_jsonl(text)
    else:
        questions = parse_csv(text)
    logger.info(
        "Loaded question bank",
        extra={"path": str(path), "questions": len(questions)},
    )
    return QuestionBank(questions, initial_weight=initial_weight)
