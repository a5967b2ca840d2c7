"""Weighted question selection and per-round option shuffling."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional, Sequence

__all__ = [
    "PresentedOption",
    "pick",
    "present_options",
]


@dataclass(frozen=True)
class PresentedOption:
    """An option as shown to the user.

    ``slot`` is the 1-based display position, ``position`` the 1-based
    position in the question's canonical option list.
    """

    slot: int
    position: int
    text: str


def pick(
    weights: Sequence[float], rng: Optional[random.Random] = None
) -> int:
    """Return an index drawn with probability proportional to its weight.

    Linear scan over ``weights`` in order: draw ``r`` in ``[0, total)`` and
    subtract each weight until the remainder is ``<= 0``. If rounding leaves
    a positive remainder after the last weight, the last index is returned.
    Previous picks are not remembered, so repeats are possible.
    """

    if not weights:
        raise ValueError("Cannot pick from an empty weight vector.")
    total = sum(weights)
    if total <= 0:
        raise ValueError("Weights must sum to a positive value.")
    rng = rng or random.Random()
    remainder = rng.random() * total
    for index, weight in enumerate(weights):
        remainder -= weight
        if remainder <= 0:
            return index
    return len(weights) - 1


def present_options(
    options: Sequence[str], rng: Optional[random.Random] = None
) -> list[PresentedOption]:
    """Shuffle ``options`` for display, keeping each original position."""

    rng = rng or random.Random()
    order = list(range(1, len(options) + 1))
    for i in range(len(order) - 1, 0, -1):
        j = rng.randint(0, i)
        order[i], order[j] = order[j], order[i]
    return [
        PresentedOption(slot=slot, position=position, text=options[position - 1])
        for slot, position in enumerate(order, start=1)
    ]
