import io
from collections.abc import Iterable
from dataclasses import dataclass
from functools import cached_property
from os import getenv
from pathlib import Path

import z3


@dataclass(frozen=True)
class UnsatResult:
    result: z3.CheckSatResult
    model: z3.ModelRef | None = None

    @cached_property
    def unsat(self) -> bool:
        return self.result == z3.unsat

    @cached_property
    def timeout(self) -> bool:
        return self.result == z3.unknown


def unsat_check(
    constraints: Iterable[z3.BoolRef],
    *,
    find_model: bool = True,
) -> UnsatResult:
    solver = default_solver()
    for c in constraints:
        solver.add(c)

    result = solver.check()
    if result == z3.unsat:
        return UnsatResult(z3.unsat)

    if result == z3.unknown:
        return UnsatResult(z3.unknown)

    if not find_model:
        return UnsatResult(z3.sat)

    model = None
    try:
        model = solver.model()
    except z3.Z3Exception as e:
        print(f"sat but no model: {e}")

    return UnsatResult(z3.sat, model)


@dataclass(frozen=True)
class SatResult:
    result: z3.CheckSatResult
    core: list[z3.BoolRef]

    @cached_property
    def sat(self) -> bool:
        return self.result == z3.sat


def sat_check(constraints: Iterable[z3.BoolRef]) -> SatResult:
    solver = default_solver()
    named_constraints = {str(i): c for i, c in enumerate(constraints)}
    # Enable unsat core tracking
    solver.set(unsat_core=True)
    for name, c in named_constraints.items():
        solver.assert_and_track(c, name)

    result = solver.check()
    core: list[z3.BoolRef] = []
    if result == z3.unsat:
        for clause in solver.unsat_core():
            core.append(named_constraints[str(clause)])
    return SatResult(result, core)


_DEFAULT_TIMEOUT = int(getenv("TIMEOUT_MS", "300_000"))  # 5 minute timeout


def default_solver() -> z3.Solver:
    z3.set_param("timeout", _DEFAULT_TIMEOUT)
    solver = z3.Solver()
    solver.set(mbqi=True)
    return solver


_model_counter = 0


def print_model_in_order(
    result: UnsatResult,
    symbols: Iterable[z3.FuncDeclRef],
    name: str = "",
) -> None:
    if result.model is None:
        return

    model = result.model
    buffer = io.StringIO()

    for symbol in symbols:
        if symbol in model:  # type: ignore
            print(symbol, ":", model[symbol], file=buffer)
        else:
            print(f"Missing {symbol} in model", file=buffer)

    global _model_counter
    _model_counter += 1
    path = _write(f"models/{_model_counter}-{name.replace(" ", "-")}.txt", buffer)
    print(f"Model written to {path.absolute()}")


_core_counter = 0


def print_unsat_core(result: SatResult, name: str = "") -> None:
    if not result.core:
        return

    buffer = io.StringIO()

    for clause in result.core:
        print(clause, file=buffer)

    global _core_counter
    _core_counter += 1
    path = _write(f"cores/{_core_counter}-{name.replace(" ", "-")}.txt", buffer)
    print(f"Unsat core written to {path.absolute()}")


def _write(file_name: str, buffer: io.StringIO) -> Path:
    path = Path(file_name)
    path.parent.mkdir(exist_ok=True)
    path.write_text(buffer.getvalue())
    return path


def quantify(
    is_forall: bool, variables: Iterable[z3.ExprRef], body: z3.BoolRef, *, qid: str = ""
) -> z3.BoolRef:
    quant_vars = list(variables)
    if not quant_vars:
        return body
    if is_forall:
        return z3.ForAll(quant_vars, body, qid=qid)
    else:
        return z3.Exists(quant_vars, body, qid=qid)


def expr_size(expr: z3.ExprRef) -> int:
    if z3.is_quantifier(expr):
        return 1 + expr_size(expr.body())
    return 1 + sum(expr_size(child) for child in expr.children())
