"""
Sources of nondeterminism.

Every nondeterministic decision in a run
(which item the network delivers, which derivation the attacker performs,
which data it invents, which role moves next)
goes through a `Chooser`.
Swapping the chooser replays a specific interleaving or derivation sequence.
"""

import random
from collections.abc import Iterator
from dataclasses import dataclass, field
from itertools import count
from typing import Protocol

__all__ = [
    "Chooser",
    "RandomChooser",
    "ScriptedChooser",
    "LatestChooser",
    "ScriptExhausted",
]


class Chooser(Protocol):
    def choose_int(self) -> int:
        """An arbitrary integer (e.g. the value of invented data)."""
        ...

    def choose_action(self, n: int) -> int:
        """One of `n` alternatives, `0 <= result < n`."""
        ...

    def choose_index(self, n: int) -> int:
        """Index of one of `n > 0` candidates (e.g. items on the wire)."""
        ...


class RandomChooser:
    rng: random.Random
    int_range: tuple[int, int]

    def __init__(
        self, seed: int | None = None, int_range: tuple[int, int] = (-8, 64)
    ) -> None:
        self.rng = random.Random(seed)
        self.int_range = int_range

    def choose_int(self) -> int:
        return self.rng.randint(*self.int_range)

    def choose_action(self, n: int) -> int:
        return self.rng.randrange(n)

    def choose_index(self, n: int) -> int:
        return self.rng.randrange(n)


class ScriptExhausted(IndexError):
    pass


@dataclass
class ScriptedChooser:
    """
    Replays fixed choices.
    Negative indices count from the most recent candidate.
    """

    ints: list[int] = field(default_factory=list)
    actions: list[int] = field(default_factory=list)
    indices: list[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.ints = list(self.ints)
        self.actions = list(self.actions)
        self.indices = list(self.indices)

    def choose_int(self) -> int:
        return self._pop(self.ints, "ints")

    def choose_action(self, n: int) -> int:
        action = self._pop(self.actions, "actions")
        assert 0 <= action < n, f"Scripted action {action} out of range {n}"
        return action

    def choose_index(self, n: int) -> int:
        index = self._pop(self.indices, "indices")
        assert -n <= index < n, f"Scripted index {index} out of range {n}"
        return index % n

    @staticmethod
    def _pop(script: list[int], name: str) -> int:
        if not script:
            raise ScriptExhausted(f"No more scripted {name}")
        return script.pop(0)


class LatestChooser:
    """
    An honest network:
    always delivers the most recently observed item
    and cycles through the alternatives in order.
    """

    data: int
    _ticks: Iterator[int]

    def __init__(self, data: int = 0) -> None:
        self.data = data
        self._ticks = count()

    def choose_int(self) -> int:
        return self.data

    def choose_action(self, n: int) -> int:
        return next(self._ticks) % n

    def choose_index(self, n: int) -> int:
        return n - 1
