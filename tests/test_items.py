import pytest
import z3

from errors import TypeMismatch, VerifyFailure
from items import (
    Data,
    Hmac,
    ItemSort,
    Key,
    Pair,
    as_data,
    as_key,
    create_key,
    create_pair,
    equals,
    hmac,
    pair_first,
    pair_second,
    verify_hmac,
)
from principals import PrincipalRegistry


def test_keys_are_unique(registry):

    first = create_key(registry[1])
    second = create_key(registry[1])
    other = create_key(registry[2])

    assert first == Key(1, 0)
    assert second == Key(1, 1)
    assert other == Key(2, 0)
    assert len({first, second, other}) == 3
    assert registry[1].key_counter == 2


def test_registry_ids():

    registry = PrincipalRegistry()
    ids = [registry.create_principal().id for _ in range(4)]
    assert ids == [0, 1, 2, 3]
    assert registry.count == 4


def test_pair_accessors():

    pair = create_pair(Data(1), Key(2, 3))
    assert pair_first(pair) == Data(1)
    assert pair_second(pair) == Key(2, 3)
    assert equals(pair, Pair(Data(1), Key(2, 3)))
    assert not equals(pair, Pair(Key(2, 3), Data(1)))


@pytest.mark.parametrize(
    "accessor, item",
    [
        (pair_first, Data(1)),
        (pair_second, Key(0, 0)),
        (as_key, Data(1)),
        (as_key, Hmac(0, 0, Data(1))),
        (as_data, Key(0, 0)),
        (as_data, Pair(Data(1), Data(2))),
    ],
)
def test_accessor_type_mismatch(accessor, item):

    with pytest.raises(TypeMismatch) as info:
        accessor(item)
    assert info.value.item == item


def test_hash_is_bound_to_key_and_payload():

    payload = Pair(Data(0), Data(42))
    mac = hmac(Key(1, 0), payload)

    assert mac == Hmac(1, 0, payload)
    assert mac != hmac(Key(1, 1), payload)
    assert mac != hmac(Key(3, 0), payload)
    assert mac != hmac(Key(1, 0), Pair(Data(0), Data(43)))

    verify_hmac(mac, Key(1, 0), payload)
    with pytest.raises(VerifyFailure):
        verify_hmac(mac, Key(3, 0), payload)
    with pytest.raises(VerifyFailure):
        verify_hmac(mac, Key(1, 0), Pair(Data(1), Data(42)))
    with pytest.raises(VerifyFailure):
        verify_hmac(Data(7), Key(1, 0), payload)


def test_hmac_requires_a_key():

    with pytest.raises(TypeMismatch):
        hmac(Data(5), Data(6))


def test_str():

    item = Pair(Hmac(1, 0, Pair(Data(0), Data(42))), Key(3, 1))
    assert str(item) == "<hmac(1,0,<data(0), data(42)>), key(3,1)>"


def test_to_z3():

    item = Pair(Hmac(1, 0, Data(42)), Key(3, 1))
    term = item.to_z3()

    assert term.sort() == ItemSort
    assert z3.simplify(ItemSort.pair_second(term)).eq(Key(3, 1).to_z3())
    assert z3.simplify(ItemSort.hmac_payload(ItemSort.pair_first(term))).eq(
        Data(42).to_z3()
    )
    assert z3.is_true(z3.simplify(ItemSort.is_hmac(ItemSort.pair_first(term))))
    assert not Data(1).to_z3().eq(Data(2).to_z3())
