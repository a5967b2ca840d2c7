"""Weight adjustment rule and weight-vector persistence."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

__all__ = [
    "AdjustmentPolicy",
    "KeyedWeightStore",
    "PRESETS",
    "WeightStore",
    "adjust",
]


@dataclass(frozen=True)
class AdjustmentPolicy:
    """Step size and clamp bounds for the additive weight update."""

    step: float
    min_weight: float
    max_weight: float

    def __post_init__(self) -> None:
        if self.step <= 0:
            raise ValueError("step must be positive.")
        if not (0 < self.min_weight <= self.max_weight):
            raise ValueError("weights must satisfy 0 < min <= max.")

    def apply(self, current: float, verdict: bool) -> float:
        return adjust(
            current, verdict, self.step, self.min_weight, self.max_weight
        )

    def clamp(self, value: float) -> float:
        return min(self.max_weight, max(self.min_weight, value))


PRESETS: Mapping[str, AdjustmentPolicy] = {
    "gentle": AdjustmentPolicy(step=0.1, min_weight=0.1, max_weight=2.0),
    "steep": AdjustmentPolicy(step=0.4, min_weight=0.1, max_weight=3.0),
}


def adjust(
    current: float,
    verdict: bool,
    step: float,
    min_weight: float,
    max_weight: float,
) -> float:
    """Return the new weight after a verdict.

    A correct answer lowers the weight by ``step``, an incorrect one raises it
    by ``step``. The result is always inside ``[min_weight, max_weight]``, even
    when ``current`` started outside it.
    """

    if verdict:
        value = max(min_weight, current - step)
    else:
        value = min(max_weight, current + step)
    return min(max_weight, max(min_weight, value))


class WeightStore:
    """Persist the weight vector as a JSON array of numbers.

    Failures are logged and swallowed: a session keeps running on in-memory
    weights when the file cannot be read or written.
    """

    def __init__(
        self, path: Path, *, logger: Optional[logging.Logger] = None
    ) -> None:
        self._path = Path(path)
        self._logger = logger or logging.getLogger(__name__)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[list[Any]]:
        payload = self._read()
        if payload is None:
            return None
        if not isinstance(payload, list):
            self._logger.warning(
                "Ignoring saved weights with unexpected shape",
                extra={"weights_path": str(self._path)},
            )
            return None
        return payload

    def save(self, vector: Sequence[float]) -> bool:
        return self._write([float(value) for value in vector])

    def clear(self) -> bool:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            self._logger.warning(
                "Failed to remove saved weights: %s",
                exc,
                extra={"weights_path": str(self._path)},
            )
            return False
        return True

    def _read(self) -> Any:
        if not self._path.is_file():
            return None
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            self._logger.warning(
                "Failed to load saved weights: %s",
                exc,
                extra={"weights_path": str(self._path)},
            )
            return None

    def _write(self, payload: Any) -> bool:
        try:
            _atomic_write_json(self._path, payload)
        except (OSError, TypeError, ValueError) as exc:
            self._logger.warning(
                "Failed to save weights: %s",
                exc,
                extra={"weights_path": str(self._path)},
            )
            return False
        return True


class KeyedWeightStore(WeightStore):
    """Persist weights keyed by question content instead of bank position.

    ``keys`` lists one stable key per bank index. On load the stored mapping
    is projected back onto bank order; questions without a stored entry get
    ``None`` so the bank keeps their default weight.
    """

    def __init__(
        self,
        path: Path,
        keys: Sequence[str],
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(path, logger=logger)
        self._keys = list(keys)

    def load(self) -> Optional[list[Any]]:
        payload = self._read()
        if payload is None:
            return None
        if not isinstance(payload, Mapping):
            self._logger.warning(
                "Ignoring saved weights with unexpected shape",
                extra={"weights_path": str(self._path)},
            )
            return None
        return [payload.get(key) for key in self._keys]

    def save(self, vector: Sequence[float]) -> bool:
        existing = self._read()
        merged: dict[str, Any] = (
            dict(existing) if isinstance(existing, Mapping) else {}
        )
        merged.update(
            {key: float(value) for key, value in zip(self._keys, vector)}
        )
        return self._write(merged)


def _atomic_write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        "w",
        delete=False,
        encoding="utf-8",
        dir=str(path.parent),
        suffix=".tmp",
    )
    try:
        json.dump(payload, handle)
        handle.flush()
        os.fsync(handle.fileno())
    finally:
        handle.close()
    try:
        os.replace(handle.name, path)
    except OSError:
        Path(handle.name).unlink(missing_ok=True)
        raise
