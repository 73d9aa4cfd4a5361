"""
The `prelude` module re-exports all necessary symbols
so one can simple write `from prelude import *`
and starting working with the library.
"""

from z3 import (
    BoolRef,
    ExprRef,
    And,
    Implies,
    Or,
    Not,
    ForAll,
    If,
    Exists,
)

from items import ItemSort
from proofs import Proof, invariant
from pub import symbolic_pub, REQUEST_TAG, RESPONSE_TAG
from ts import (
    TransitionSystem,
    Immutable,
    axiom,
    init,
    transition,
    ParamSpec,
    TSTerm,
    TSFormula,
    BaseTransitionSystem,
)
from typed_z3 import (
    Expr,
    Rel,
    Fun,
    Bool,
    Int,
    Term,
    Enum,
    true,
)

__all__ = [
    # typed Z3
    "Expr",
    "Rel",
    "Fun",
    "Bool",
    "Int",
    "Term",
    "Enum",
    "true",
    # Transition systems
    "BaseTransitionSystem",
    "TransitionSystem",
    "Immutable",
    "axiom",
    "init",
    "transition",
    "ParamSpec",
    "TSTerm",
    "TSFormula",
    # Safety proof
    "Proof",
    "invariant",
    # Items and pub
    "ItemSort",
    "symbolic_pub",
    "REQUEST_TAG",
    "RESPONSE_TAG",
    # re-exported Z3
    "BoolRef",
    "ExprRef",
    "And",
    "Implies",
    "Or",
    "Not",
    "ForAll",
    "If",
    "Exists",
]
