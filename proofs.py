"""
This module contains the framework
for proving safety properties
over transition systems.
A proof is a subclass of the `Proof` class,
parameterized by the transition system (`ts.TransitionSystem`) it is about,
that lists candidate invariants with [`@invariant`](#invariant).
The proof succeeds when the conjunction of the invariants is inductive:
every invariant holds in the initial states,
and is preserved by every transition
from any state satisfying all of them.
"""

import time
from abc import ABC
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from functools import cached_property
from typing import ClassVar, cast, Any, Self

import z3

from helpers import expr_size
from metadata import add_marker, get_methods
from ts import (
    BaseTransitionSystem,
    TSFormula,
    TransitionSystem,
    universal_closure,
    ts_term,
)

__all__ = [
    "Proof",
    "invariant",
]


@dataclass(frozen=True)
class Invariant:
    source: TSFormula

    def formula[T: TransitionSystem](self, ts: "Proof[T]") -> z3.BoolRef:
        return universal_closure(self.source, ts)

    def count[T: TransitionSystem](self, ts: "Proof[T]") -> int:
        formula = self.source(ts)
        if z3.is_and(formula):
            return len(formula.children())
        return 1

    def size[T: TransitionSystem](self, ts: "Proof[T]") -> int:
        return expr_size(self.source(ts))


class Proof[T: TransitionSystem](BaseTransitionSystem, ABC):
    """
    Base class for proving safety properties over transition systems.

    The symbols, initial states, axioms and transitions of a proof
    are those of the underlying system, available as `self.sys`.

    Example:
    ```python
    class Exchange(TransitionSystem):
        accepted: Rel[Term]
        request: Immutable[Rel[Term]]

    class ExchangeProof(Proof[Exchange]):
        @invariant
        def only_requested(self, R: Term) -> BoolRef:
            return Implies(self.sys.accepted(R), self.sys.request(R))
    ```
    """

    ts: ClassVar[type[TransitionSystem]]
    _cache: ClassVar[dict[type[BaseTransitionSystem], type]] = {}

    def __init__(self, suffix: str = "") -> None:
        super().__init__(suffix)

    @property
    def symbols(self) -> dict[str, z3.FuncDeclRef]:
        return self.sys.symbols

    def clone(self, suffix: str) -> Self:
        return self.__class__(suffix)

    @property
    def inits(self) -> dict[str, z3.BoolRef]:
        return self.sys.inits

    @property
    def axioms(self) -> dict[str, z3.BoolRef]:
        return self.sys.axioms

    @property
    def transitions(self) -> dict[str, z3.BoolRef]:
        return self.sys.transitions

    @classmethod
    def __class_getitem__(cls, item: type[BaseTransitionSystem]) -> "type[Proof[T]]":
        if item not in cls._cache:
            cls._cache[item] = type(f"ProofOf{item.__name__}", (cls,), {"ts": item})

        return cls._cache[item]

    @cached_property
    def sys(self) -> T:
        return cast(T, self.__class__.ts(self.suffix))

    @cached_property
    def invariants(self) -> dict[str, Invariant]:
        return {
            name: Invariant(method)
            for name, method in _get_methods(self, _PROOF_INVARIANT)
        }

    @cached_property
    def invariant(self) -> z3.BoolRef:
        return z3.And(*(inv.formula(self) for inv in self.invariants.values()))

    @cached_property
    def invariant_count(self) -> int:
        return sum(inv.count(self) for inv in self.invariants.values())

    @cached_property
    def invariant_size(self) -> int:
        return sum(1 + inv.size(self) for inv in self.invariants.values())

    def check(self) -> bool:
        """
        Check all proof obligations:
        - System sanity (initial state and transitions are satisfiable)
        - Invariant inductiveness (invariants hold initially and are preserved)

        :return: True if all checks pass, False otherwise.
        """
        print(f"Running proof of {self}")
        start_time = time.monotonic()
        if not self.sys.sanity_check():
            print("fail: sanity")
            return False

        if not self._check_inv():
            print("fail: inv")
            return False

        end_time = time.monotonic()
        self.print_stats(end_time - start_time)
        return True

    def print_stats(self, duration: float | None = None) -> None:
        print(f"Proof of {self}", end="")

        if duration is not None:
            print(": all passed!")
            print(f"Time: {duration:.3f} seconds")
        else:
            print()

        print(f"Invariant count: {self.invariant_count}")
        print(f"Invariant size: {self.invariant_size}")

    def _check_inv(self) -> bool:
        results = []
        for name, inv in self.invariants.items():
            results.append(
                self.check_inductiveness(
                    lambda this: inv.formula(this),
                    name,
                    lambda this: this.invariant,
                )
            )
        return all(results)

    def check_inductiveness(
        self,
        inv: Callable[[Self], z3.BoolRef],
        inv_name: str = "?",
        assumption: Callable[[Self], z3.BoolRef] | None = None,
    ) -> bool:
        if assumption is None:
            assumption = inv

        results = []
        results.append(
            self.check_and_print(
                f"{inv_name} in init",
                self.axiom,
                self.init,
                z3.Not(inv(self)),
            )
        )

        for name, trans in self.transitions.items():
            results.append(
                self.check_and_print(
                    f"{inv_name} in {name}",
                    self.axiom,
                    self.next.axiom,
                    assumption(self),
                    trans,
                    z3.Not(inv(self.next)),
                    with_next=True,
                )
            )

        return all(results)

    def __str__(self) -> str:
        return f"{self.__class__.__name__} for {self.sys.__class__.__name__}"


type TypedProofFormula[T: Proof[Any], *Ts] = Callable[[T, *Ts], z3.BoolRef]


def invariant[T: Proof[Any], *Ts](
    fun: TypedProofFormula[T, *Ts], /
) -> TypedProofFormula[T, *Ts]:
    """
    Decorator for defining invariants.
    Parameters to the decorated method are implicitly universally quantified.

    Example:
    ```python
    class ExchangeProof(Proof[Exchange]):
        @invariant
        def sent_is_public(self) -> BoolRef:
            return self.sys.pub(self.sys.sent)
    ```
    """
    return add_marker(fun, _PROOF_INVARIANT)


_PROOF_INVARIANT = object()


def _get_methods(ts: Proof[Any], marker: object) -> Iterable[tuple[str, TSFormula]]:
    for name, member in get_methods(ts, marker):
        yield name, ts_term(member)
