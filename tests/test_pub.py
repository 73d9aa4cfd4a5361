import pytest
import z3

from environment import Environment, EventLedger, NOT_SHARED
from helpers import unsat_check
from items import Data, Hmac, Key, Pair
from pub import (
    REQUEST_TAG,
    RESPONSE_TAG,
    key_is_public,
    pub,
    symbolic_environment,
    symbolic_pub,
)
from roles import seal


def test_environment(env):

    assert env.shared_with(1, 0) == 2
    assert env.shared_with(1, 1) == NOT_SHARED
    assert not env.is_bad(1)
    assert env.with_bad(3).is_bad(3)
    assert not env.is_bad(3)
    with pytest.raises(TypeError):
        env.shared[(5, 5)] = 6


def test_keys(env):

    assert not pub(env, EventLedger(), Key(1, 0))
    assert pub(env.with_bad(1), EventLedger(), Key(1, 0))
    # the partner leaks the key as well
    assert pub(env.with_bad(2), EventLedger(), Key(1, 0))
    assert key_is_public(env.with_bad(2), 1, 0)
    assert not pub(env.with_bad(2), EventLedger(), Key(1, 1))


def test_data_is_public(env):

    for value in (-1, 0, 1, 42):
        assert pub(env, EventLedger(), Data(value))


def test_request_hash(env, ledger, key):

    assert pub(env, ledger, seal(key, REQUEST_TAG, Data(42)))
    assert not pub(env, ledger, seal(key, REQUEST_TAG, Data(43)))
    # same body, wrong tag
    assert not pub(env, ledger, seal(key, RESPONSE_TAG, Data(42)))
    # no event for an unshared key
    assert not pub(env, ledger, seal(Key(1, 1), REQUEST_TAG, Data(42)))


def test_response_hash(env, ledger, key):

    message = seal(key, RESPONSE_TAG, Pair(Data(42), Data(7)))
    assert not pub(env, ledger, message)

    ledger.record_response(1, 2, Data(42), Data(7))
    assert pub(env, ledger, message)
    assert not pub(env, ledger, seal(key, RESPONSE_TAG, Pair(Data(42), Data(8))))
    assert not pub(env, ledger, seal(key, RESPONSE_TAG, Data(42)))


def test_leaked_hash(env, ledger):

    mac = Hmac(3, 0, Data(99))
    assert not pub(env, ledger, mac)
    assert pub(env.with_bad(3), ledger, mac)


def test_pair_needs_both(env, ledger):

    assert pub(env, ledger, Pair(Data(1), Data(2)))
    assert not pub(env, ledger, Pair(Data(1), Key(1, 0)))
    assert not pub(env, ledger, Pair(Key(1, 0), Data(1)))


ITEMS = [
    Data(3),
    Key(1, 0),
    Key(3, 0),
    Hmac(3, 0, Data(1)),
    Hmac(1, 0, Pair(Data(0), Data(42))),
    Hmac(1, 0, Pair(Data(1), Pair(Data(42), Data(7)))),
    Hmac(1, 0, Pair(Data(0), Data(9))),
    Pair(Data(1), Hmac(1, 0, Pair(Data(0), Data(42)))),
    Pair(Key(3, 0), Pair(Data(2), Key(1, 0))),
]


def test_monotone(env, ledger):

    before = {item for item in ITEMS if pub(env, ledger, item)}

    ledger.record_response(1, 2, Data(42), Data(7))
    ledger.record_request(1, 2, Data(9))
    grown = env.with_bad(3)
    after = {item for item in ITEMS if pub(grown, ledger, item)}

    assert before <= after
    assert Hmac(3, 0, Data(1)) in after - before


@pytest.mark.parametrize("bad", [(), (3,), (2,)])
def test_symbolic_agrees(env, ledger, bad):

    env = env.with_bad(*bad)
    ledger.record_response(1, 2, Data(42), Data(7))
    pub_decl = symbolic_pub(*symbolic_environment(env, ledger))

    for item in ITEMS:
        expected = z3.BoolVal(pub(env, ledger, item))
        result = unsat_check([pub_decl(item.to_z3()) != expected], find_model=False)
        assert result.unsat, f"pub disagrees on {item}"


def test_symbolic_pub_is_cached():

    env = Environment(frozenset({4}))
    facts = symbolic_environment(env, EventLedger())
    assert symbolic_pub(*facts).eq(symbolic_pub(*facts))
