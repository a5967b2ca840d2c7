from __future__ import annotations

from typing import AbstractSet, Iterable, Sequence

from .sampler import PresentedOption

__all__ = ["evaluate", "option_flags", "slots_to_positions"]


def evaluate(selected: AbstractSet[int], correct: AbstractSet[int]) -> bool:
    """Exact-match verdict: no partial credit, no subset or superset."""

    return set(selected) == set(correct)


def slots_to_positions(
    presented: Sequence[PresentedOption], slots: Iterable[int]
) -> set[int]:
    """Map 1-based display slots back to canonical option positions.

    Unknown slots raise ``ValueError``.
    """

    by_slot = {option.slot: option.position for option in presented}
    positions: set[int] = set()
    for slot in slots:
        try:
            positions.add(by_slot[int(slot)])
        except KeyError as exc:
            raise ValueError(f"Unknown option slot: {slot}") from exc
    return positions


def option_flags(
    presented: Sequence[PresentedOption], correct: AbstractSet[int]
) -> list[bool]:
    """Per displayed option, whether it belongs to the correct set."""

    return [option.position in correct for option in presented]
