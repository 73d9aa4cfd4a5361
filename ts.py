"""
This module provides the framework for easily defining
protocols as transition systems
and transition-system (parametric) formulas.

A transition-system formula (`TSFormula`) can be thought of
as a formula with "holes"
for transition-system symbols
(constants, functions, relations)
and free variables.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from functools import cached_property
from inspect import signature
from types import MethodType
from typing import (
    Annotated,
    Self,
    get_type_hints,
    get_origin,
    get_args,
    Any,
    TypeAliasType,
    cast,
    Protocol,
)

import z3

from helpers import (
    quantify,
    unsat_check,
    print_model_in_order,
    sat_check,
    print_unsat_core,
)
from metadata import get_methods, add_marker
from typed_z3 import Fun, Expr, Sort

__all__ = [
    "BaseTransitionSystem",
    "Params",
    "ParamSpec",
    "TSTerm",
    "TSFormula",
    "Immutable",
    "TransitionSystem",
    "init",
    "transition",
    "axiom",
]


class BaseTransitionSystem(ABC):
    """
    Abstract base class for transition systems.
    The fields of a `BaseTransitionSystem` represent a state in the system.
    """

    suffix: str

    def __init__(self, suffix: str) -> None:
        self.suffix = suffix

    @property
    @abstractmethod
    def symbols(self) -> dict[str, z3.FuncDeclRef]: ...

    @abstractmethod
    def clone(self, suffix: str) -> Self: ...

    @cached_property
    def next(self) -> Self:
        """
        :return: a post-state version of the transition system.
        """
        return self.clone(self.suffix + "'")

    @property
    @abstractmethod
    def inits(self) -> dict[str, z3.BoolRef]: ...

    @cached_property
    def init(self) -> z3.BoolRef:
        return z3.And(*self.inits.values())

    @property
    @abstractmethod
    def axioms(self) -> dict[str, z3.BoolRef]: ...

    @cached_property
    def axiom(self) -> z3.BoolRef:
        return z3.And(*self.axioms.values())

    @property
    @abstractmethod
    def transitions(self) -> dict[str, z3.BoolRef]: ...

    def check_and_print(
        self,
        name: str,
        *args: z3.BoolRef,
        with_next: bool = False,
    ) -> bool:
        print(f"Checking {name}: ", end="", flush=True)
        result = unsat_check(args)
        if result.unsat:
            print("passed")
            return True
        elif result.timeout:
            print("timeout")
            return False
        else:
            symbols = {symbol for symbol in self.symbols.values()}
            if with_next:
                symbols |= {
                    symbol
                    for symbol in self.next.symbols.values()
                    if symbol not in symbols
                }
            print("failed")
            print_model_in_order(result, symbols, name)
            return False

    def sanity_check(self) -> bool:
        """
        Provides a simple sanity check for the system:
        - Checking the initial state is satisfiable
        - Checking every transition is satisfiable
        - Checking the initial state & disjunction of all transitions is satisfiable
        :return: whether the system is sane
        """
        if not _check_sat("init", self.axiom, self.init):
            return False

        for name, tr in self.transitions.items():
            if not _check_sat(name, self.axiom, self.next.axiom, tr):
                return False

        if not _check_sat(
            "init and tr",
            self.axiom,
            self.next.axiom,
            self.init,
            z3.Or(*self.transitions.values()),
        ):
            return False

        return True


type TypedTerm[TR: BaseTransitionSystem, *Ts, E: z3.ExprRef] = Callable[[TR, *Ts], E]
type TypedFormula[TR: BaseTransitionSystem, *Ts] = TypedTerm[TR, *Ts, z3.BoolRef]
type RawTSTerm[T] = Callable[[BaseTransitionSystem, Params], T]


class Params(Protocol):
    """
    A protocol representing parameters
    (free variables)
    of a parametric term.
    Can be thought of as a mapping of names (`str`) to Z3 expressions (`z3.ExprRef`).
    """

    def items(self) -> Iterable[tuple[str, z3.ExprRef]]: ...

    def __getitem__(self, item: str) -> z3.ExprRef: ...

    def __contains__(self, item: str) -> bool: ...


class ParamSpec(dict[str, Sort]):
    """
    A specification of parameters:
    a mapping of names (`str`) to sorts (`typed_z3.Sort`, classes derived from `typed_z3.Expr`).
    """

    def params(self) -> dict[str, Expr]:
        return {param: sort(param) for param, sort in self.items()}

    def consts(self) -> list[Expr]:
        return [sort(param) for param, sort in self.items()]


@dataclass(frozen=True)
class TSTerm[T]:
    """
    A transition-system term, producing a term of type `T`.
    """

    spec: ParamSpec
    """The specification for the parameters (free variables) of the term."""

    fun: RawTSTerm[T]
    name: str

    @cached_property
    def params(self) -> Params:
        return self.spec.params()

    def __call__(self, ts: BaseTransitionSystem, params: Params | None = None) -> T:
        return self.fun(ts, params or self.params)


type TSFormula = TSTerm[z3.BoolRef]
"""Shorthand for a `TSTerm` the returns a formula (`z3.BoolRef`)."""


def universal_closure(formula: TSFormula, ts: BaseTransitionSystem) -> z3.BoolRef:
    return quantify(True, formula.spec.consts(), formula(ts), qid=formula.name)


def existential_closure(formula: TSFormula, ts: BaseTransitionSystem) -> z3.BoolRef:
    return quantify(False, formula.spec.consts(), formula(ts), qid=formula.name)


type Immutable[T] = Annotated[T, "immutable"]
"""
Annotation for immutable symbols in a user-defined transition system
(see `TransitionSystem`).
"""


class TransitionSystem(BaseTransitionSystem, ABC):
    """
    User-defined transition system.
    A transition system is defined by subclassing this class,
    declaring the signature using fields,
    and annotating methods as
    conjuncts of the initial state ([`@init`](#init)),
    transitions ([`@transition`](#transition)),
    or axioms ([`@axiom`](#axiom)).

    Symbols (constants, functions, relations)
    in the vocabulary of the transition system's state
    are declared with fields, annotated with their sort:
    ```python
    class Principal(Int): ...

    class Exchange(TransitionSystem):
        # An immutable constant of sort Principal
        client: Immutable[Principal]

        # An immutable unary relation over principals
        bad: Immutable[Rel[Principal]]

        # A mutable constant of sort Term (an item)
        sent: Term

        # A mutable set of items
        accepted: Rel[Term]
    ```

    See also:
    `typed_z3.Expr`, `typed_z3.Fun`, `typed_z3.Rel`,
    `axiom`, `init`, `transition`.
    """

    def __init__(self, suffix: str = "") -> None:
        super().__init__(suffix)
        _ = self.symbols  # init self.symbols

    def clone(self, suffix: str) -> Self:
        return self.__class__(suffix)

    @cached_property
    def symbols(self) -> dict[str, z3.FuncDeclRef]:
        symbols = {}
        for field, hint in get_type_hints(self.__class__, include_extras=True).items():
            origin = get_origin(hint) or hint
            mutable = True
            if origin is Immutable:
                mutable = False
                origin = get_args(hint)[0]

            if not isinstance(origin, type):
                continue

            name = field
            if mutable:
                name += self.suffix

            if issubclass(origin, Expr):
                symbol = origin(name, mutable=mutable)
                symbols[field] = symbol.fun_ref
            elif issubclass(origin, Fun):
                symbol = origin(name, mutable=mutable)
                symbols[field] = symbol.fun
            else:
                continue
            object.__setattr__(self, field, symbol)

        return symbols

    @cached_property
    def inits(self) -> dict[str, z3.BoolRef]:
        return {
            name: universal_closure(method, self)
            for name, method in _get_methods(self, _TS_INIT)
        }

    @cached_property
    def axioms(self) -> dict[str, z3.BoolRef]:
        return {
            name: universal_closure(method, self)
            for name, method in _get_methods(self, _TS_AXIOM)
        }

    @cached_property
    def transitions(self) -> dict[str, z3.BoolRef]:
        return {
            name: existential_closure(method, self)
            for name, method in _get_methods(self, _TS_TRANSITION)
        }


def ts_term(term: Callable[..., Any], /) -> TSTerm[Any]:
    """
    Convert a (bound or unbound) method of a transition system,
    whose parameters are annotated with sorts,
    to a `TSTerm`.
    """
    if isinstance(term, TSTerm):
        return term
    if isinstance(term, MethodType):
        term = unbind(term)
    spec = get_spec(term, z3.ExprRef)
    raw_term = compile_with_spec(term, spec)
    return TSTerm(spec, raw_term, term.__name__)


def unbind[T: BaseTransitionSystem, *Ts, R](
    fun: Callable[[*Ts], R],
) -> Callable[[T, *Ts], R]:
    assert isinstance(fun, MethodType), f"{fun} is not a bound method"
    return cast(Callable[[T, *Ts], R], fun.__func__)


def init[T: BaseTransitionSystem, *Ts](
    fun: TypedFormula[T, *Ts],
) -> TypedFormula[T, *Ts]:
    """
    Annotation (decorator) for defining a initial-state conjunct.
    Should only be used inside a subclass of `TransitionSystem`.
    Parameters to the decorated method are implicitly universally quantified.

    ```python
    class Exchange(TransitionSystem):
        # snip...

        @init
        def nothing_accepted(self, R: Term) -> BoolRef:
            return Not(self.accepted(R))
    ```
    """
    return add_marker(fun, _TS_INIT)


def axiom[T: BaseTransitionSystem, *Ts](
    fun: TypedFormula[T, *Ts],
) -> TypedFormula[T, *Ts]:
    """
    Annotation (decorator) for defining a axiom.
    Should only be used inside a subclass of `TransitionSystem`.
    Parameters to the decorated method are implicitly universally quantified.

    ```python
    class Exchange(TransitionSystem):
        # snip...

        @axiom
        def client_is_good(self) -> BoolRef:
            return Not(self.bad(self.client))
    ```
    """
    return add_marker(fun, _TS_AXIOM)


def transition[T: BaseTransitionSystem, *Ts](
    fun: TypedFormula[T, *Ts],
) -> TypedFormula[T, *Ts]:
    """
    Annotation (decorator) for defining a transition.
    Should only be used inside a subclass of `TransitionSystem`.
    Parameters to the decorated method are implicitly existentially quantified.

    ```python
    class Exchange(TransitionSystem):
        # snip...

        @transition
        def accept(self, r: Term) -> BoolRef:
            return And(
                self.sent.unchanged(),
                self.accepted.update({(r,): true}),
            )
    ```
    """
    return add_marker(fun, _TS_TRANSITION)


def get_spec[T: BaseTransitionSystem, *Ts, R: z3.ExprRef](
    term: TypedTerm[T, *Ts, R], *returns: type[z3.ExprRef]
) -> ParamSpec:
    sig = signature(term)
    return_hint = _resolve_type(sig.return_annotation)
    name = term.__name__

    assert any(
        issubclass(return_hint, expected_return) for expected_return in returns
    ), f"{name} returns {return_hint} instead of {", ".join(map(str, returns))}"

    params = list(sig.parameters.values())
    assert params, f"{name} must take at least one argument for the transition system"

    first_hint = _resolve_type(get_origin(params[0].annotation) or params[0].annotation)
    assert params[0].name == "self" or issubclass(
        first_hint, BaseTransitionSystem
    ), f"{name}'s first argument must be self or annotated with a transition system"

    params.pop(0)
    spec = {}
    for param in params:
        hint = _resolve_type(param.annotation)
        assert issubclass(
            hint, Expr
        ), f"parameter {param.name} of {name} must be annotated with a sort"
        spec[param.name] = hint

    return ParamSpec(spec)


def compile_with_spec[T: BaseTransitionSystem, *Ts, R: z3.ExprRef](
    formula: TypedTerm[T, *Ts, R], spec: ParamSpec
) -> RawTSTerm[R]:
    def compiled(ts: BaseTransitionSystem, params: Params) -> R:
        args = []
        for key in spec:
            args.append(params[key])

        return formula(ts, *args)  # type: ignore

    return compiled


_TS_INIT = object()
_TS_AXIOM = object()
_TS_TRANSITION = object()


def _get_methods(
    ts: BaseTransitionSystem, marker: object
) -> Iterable[tuple[str, TSFormula]]:
    for name, member in get_methods(ts, marker):
        yield name, ts_term(member)


def _resolve_type(t: Any) -> type:
    if isinstance(t, TypeAliasType):
        return _resolve_type(t.__value__)
    elif isinstance(t, type):
        return t
    assert False, f"Unresolvable type {t}"


def _check_sat(name: str, *args: z3.BoolRef) -> bool:
    result = sat_check(args)
    if result.sat:
        print(f"Checking sat {name}: passed")
        return True
    elif result.result == z3.unknown:
        print(f"Checking sat {name}: unknown")
        return False
    else:
        print(f"Checking sat {name}: failed")
        print_unsat_core(result, name)
        return False
