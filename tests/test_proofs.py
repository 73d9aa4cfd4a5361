import z3

from helpers import (
    print_model_in_order,
    print_unsat_core,
    quantify,
    sat_check,
    unsat_check,
)
from items import ItemSort
from rpc_model import (
    ClientPhase,
    RpcIntegrityProof,
    RpcProtocol,
    UncheckedTagProof,
    UncheckedTagProtocol,
)
from typed_z3 import Rel, Term, true

TRANSITIONS = {
    "client_send",
    "client_await",
    "client_accept",
    "client_abort",
    "server_respond",
    "attacker_leak_key",
    "attacker_publish_data",
    "attacker_pair",
    "attacker_hash",
    "attacker_split_first",
    "attacker_split_second",
}


def test_protocol_structure():

    sys = RpcProtocol()
    assert set(sys.transitions) == TRANSITIONS
    assert set(sys.axioms) == {"key_binding", "request_recorded", "request_is_public"}
    assert set(sys.inits) == {"initial"}

    assert sys.symbols["sent"].name() == "sent"
    assert sys.next.symbols["sent"].name() == "sent'"
    # immutable symbols are shared by both states
    assert sys.next.symbols["bad"].name() == "bad"

    assert set(UncheckedTagProtocol().transitions) == TRANSITIONS


def test_proof_invariants():

    proof = RpcIntegrityProof()
    assert set(proof.invariants) == {
        "sent_is_public",
        "client_integrity",
        "server_integrity",
    }
    assert proof.sys.__class__ is RpcProtocol
    assert UncheckedTagProof().sys.__class__ is UncheckedTagProtocol
    assert str(proof) == "RpcIntegrityProof for RpcProtocol"


def test_enum_values_are_distinct():

    assert unsat_check([ClientPhase.idle == ClientPhase.done]).unsat
    assert len(ClientPhase.enum_values) == 5


def test_rel_update():

    accepted = Rel[Term]("accepted_test")
    one = ItemSort.data(1)
    two = ItemSort.data(2)

    update = accepted.update({(one,): true})
    assert unsat_check([update, z3.Not(accepted.next(one))]).unsat
    assert unsat_check(
        [update, z3.Not(accepted(two)), accepted.next(two)]
    ).unsat
    assert unsat_check(
        [accepted.unchanged(), accepted(one), z3.Not(accepted.next(one))]
    ).unsat


def test_counter_model_is_written(in_tmp):

    x = z3.Int("x")
    result = unsat_check([quantify(True, [], x > 3)])
    assert not result.unsat
    print_model_in_order(result, [x.decl()], "x above three")

    (path,) = (in_tmp / "models").iterdir()
    assert path.name.endswith("-x-above-three.txt")
    assert "x : " in path.read_text()


def test_unsat_core_is_written(in_tmp, capsys):

    x = z3.Int("x")
    result = sat_check([x > 0, x < 0])
    assert not result.sat
    assert len(result.core) == 2
    print_unsat_core(result, "x both signs")

    (path,) = (in_tmp / "cores").iterdir()
    assert path.name.endswith("-x-both-signs.txt")
    assert "x > 0" in path.read_text()
    assert "Unsat core written to" in capsys.readouterr().out


def test_satisfiable_has_no_core(in_tmp):

    x = z3.Int("x")
    result = sat_check([x > 0])
    assert result.sat
    print_unsat_core(result, "x positive")
    assert not (in_tmp / "cores").exists()


def test_responses_are_public(in_tmp, capsys):

    proof = RpcIntegrityProof()
    sent_is_public = proof.invariants["sent_is_public"]

    # inductive on its own: the server only seals public responses
    assert proof.check_inductiveness(
        lambda this: sent_is_public.formula(this), "sent_is_public"
    )
    out = capsys.readouterr().out
    assert "Checking sent_is_public in server_respond: passed" in out


def test_rpc_integrity(in_tmp, capsys):

    assert RpcIntegrityProof().check()
    out = capsys.readouterr().out
    for name in ("sent_is_public", "client_integrity", "server_integrity"):
        assert f"Checking {name} in init: passed" in out
        assert f"Checking {name} in server_respond: passed" in out
    assert "Checking client_integrity in client_accept: passed" in out
    assert "failed" not in out
    assert "all passed!" in out


def test_unchecked_tag_fails(in_tmp, capsys):

    assert not UncheckedTagProof().check()
    out = capsys.readouterr().out
    # a reflected response is accepted as a request that was never made
    assert "Checking server_integrity in server_respond: failed" in out
    assert "Checking sent_is_public in server_respond: passed" in out
    assert "Checking client_integrity in server_respond: passed" in out
    assert out.count(": failed") == 1
    assert "fail: inv" in out
