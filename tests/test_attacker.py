import pytest

from attacker import Attacker, AttackerAction
from choice import RandomChooser, ScriptedChooser
from errors import TypeMismatch
from items import Data, Hmac, Key, Pair
from pub import REQUEST_TAG
from roles import seal


def test_publish_data(make_world, registry):

    world = make_world(ScriptedChooser(ints=[7], actions=[AttackerAction.PUBLISH_DATA]))
    adversary = Attacker(world, registry)

    assert adversary.step()
    assert adversary.published == [Data(7)]
    assert world.observed == (Data(7),)
    assert not adversary.finished
    assert adversary.error is None


def test_bad_persona_leaks_its_key(make_world, registry):

    world = make_world(ScriptedChooser(actions=[AttackerAction.LEAK_KEY]), bad=(3,))
    adversary = Attacker(world, registry)
    assert adversary.persona.id == 3

    adversary.step()
    assert world.observed == (Key(3, 0),)


def test_good_persona_keeps_its_key(make_world, registry):

    world = make_world(ScriptedChooser(actions=[AttackerAction.LEAK_KEY]))
    adversary = Attacker(world, registry)

    adversary.step()
    assert world.observed == ()
    assert adversary.persona.key_counter == 1


def test_pair_and_split(make_world, registry):

    chooser = ScriptedChooser(
        actions=[AttackerAction.PAIR, AttackerAction.SPLIT],
        indices=[1, 0, -1],
    )
    world = make_world(chooser)
    world.send(Data(1))
    world.send(Data(2))
    adversary = Attacker(world, registry)

    adversary.step()
    assert adversary.published == [Pair(Data(2), Data(1))]

    adversary.step()
    assert adversary.published[1:] == [Data(2), Data(1)]
    assert world.observed == (Data(1), Data(2), Pair(Data(2), Data(1)))


def test_hash_with_leaked_key(make_world, registry):

    chooser = ScriptedChooser(
        actions=[AttackerAction.LEAK_KEY, AttackerAction.HASH],
        indices=[-1, 0],
    )
    world = make_world(chooser, bad=(3,))
    world.send(Data(9))
    adversary = Attacker(world, registry)

    adversary.step()
    adversary.step()
    assert adversary.published == [Key(3, 0), Hmac(3, 0, Data(9))]


def test_failed_derivation_retires_persona(make_world, registry):

    chooser = ScriptedChooser(actions=[AttackerAction.HASH], indices=[0, 0])
    world = make_world(chooser)
    world.send(Data(1))
    adversary = Attacker(world, registry)

    assert adversary.step()
    ((persona, error),) = adversary.retired
    assert persona.id == 3
    assert isinstance(error, TypeMismatch)
    assert adversary.persona.id == 4
    assert registry.count == 5


def test_split_of_sealed_request(make_world, registry, key):

    chooser = ScriptedChooser(actions=[AttackerAction.SPLIT], indices=[0])
    world = make_world(chooser)
    message = seal(key, REQUEST_TAG, Data(42))
    world.send(message)
    adversary = Attacker(world, registry)

    adversary.step()
    assert adversary.published == [message.first, message.second]


@pytest.mark.parametrize("seed", range(5))
def test_cannot_forge(make_world, registry, seed):

    # every persona is bad, so the attacker holds keys of its own
    world = make_world(RandomChooser(seed), bad=tuple(range(3, 310)))
    world.send(seal(Key(1, 0), REQUEST_TAG, Data(42)))
    adversary = Attacker(world, registry)

    for _ in range(300):
        adversary.step()

    assert len(world.ledger) == 1
    assert Key(1, 0) not in world.observed
    for item in world.observed:
        if isinstance(item, Hmac) and item.key_creator == 1:
            assert item == Hmac(1, 0, Pair(Data(0), Data(42)))
