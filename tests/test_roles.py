import pytest

from errors import EqualityMismatch, TypeMismatch, VerifyFailure
from items import Data, Key, Pair, create_key, hmac
from pub import REQUEST_TAG, RESPONSE_TAG
from roles import (
    Client,
    ClientState,
    Server,
    ServerState,
    client,
    recording_responder,
    seal,
    serve,
    unseal,
)


def echo(world):
    return recording_responder(world, lambda request: Pair(Data(1), request))


def test_seal(key):

    message = seal(key, REQUEST_TAG, Data(42))
    payload = Pair(Data(0), Data(42))
    assert message == Pair(hmac(key, payload), payload)
    assert unseal(key, message, REQUEST_TAG) == Data(42)

    with pytest.raises(EqualityMismatch):
        unseal(key, message, RESPONSE_TAG)
    with pytest.raises(VerifyFailure):
        unseal(Key(1, 1), message, REQUEST_TAG)


def test_round_trip(registry, world):

    key = create_key(registry[1])
    server = Server(2, key, world, echo(world))

    result = client(world, 2, key, Data(42), between=server.step)

    assert result == Pair(Data(1), Data(42))
    assert server.served == [(Data(42), result)]
    assert world.ledger.has_response(1, 2, Data(42), result)
    assert world.observed == (
        seal(key, REQUEST_TAG, Data(42)),
        seal(key, RESPONSE_TAG, Pair(Data(42), result)),
    )


def test_client_states(world, key):

    role = Client(world, 2, key, Data(42))
    assert role.state is ClientState.IDLE

    assert role.step()
    assert role.state is ClientState.SENT
    assert world.observed == (seal(key, REQUEST_TAG, Data(42)),)

    assert role.step()
    assert role.state is ClientState.AWAITING_RESPONSE
    assert not role.finished


def test_client_rejects_own_request(world, key):

    # the only item on the wire is the client's own request
    with pytest.raises(EqualityMismatch):
        client(world, 2, key, Data(42))


def test_client_rejects_other_request(world, key):

    world.ledger.record_request(1, 2, Data(7))
    world.ledger.record_response(1, 2, Data(7), Data(0))

    role = Client(world, 2, key, Data(42))
    role.step()
    world.send(seal(key, RESPONSE_TAG, Pair(Data(7), Data(0))))
    role.step()
    role.step()

    assert role.state is ClientState.ABORTED
    assert isinstance(role.error, EqualityMismatch)
    assert role.error.expected == Data(42)
    assert role.error.actual == Data(7)
    assert role.result is None
    assert not role.step()


def test_client_rejects_forged_hash(make_world, key):

    world = make_world(bad=(3,))
    payload = Pair(Data(1), Pair(Data(42), Data(666)))
    forged = Pair(hmac(Key(3, 0), payload), payload)

    role = Client(world, 2, key, Data(42))
    role.step()
    world.send(forged)
    role.step()
    role.step()

    assert role.state is ClientState.ABORTED
    assert isinstance(role.error, VerifyFailure)
    assert not world.ledger.has_response(1, 2, Data(42), Data(666))


def test_client_rejects_data(world, key):

    role = Client(world, 2, key, Data(42))
    role.step()
    world.send(Data(5))
    role.step()
    role.step()

    assert isinstance(role.error, TypeMismatch)


def test_client_requires_recorded_request(world, key):

    with pytest.raises(AssertionError):
        Client(world, 2, key, Data(43))
    with pytest.raises(AssertionError):
        Client(world, 3, key, Data(42))


def test_server_stops(world, key):

    server = Server(2, key, world, echo(world))
    world.send(Data(5))

    assert server.step()
    assert server.state is ServerState.STOPPED
    assert isinstance(server.error, TypeMismatch)
    assert server.served == []
    assert not server.step()
    assert len(world.ledger) == 1


def test_server_rejects_responses(world, key):

    world.ledger.record_response(1, 2, Data(42), Data(7))
    world.send(seal(key, RESPONSE_TAG, Pair(Data(42), Data(7))))

    server = Server(2, key, world, echo(world))
    server.step()

    assert isinstance(server.error, EqualityMismatch)
    assert not world.ledger.has_response(
        1, 2, Pair(Data(42), Data(7)), Pair(Data(1), Pair(Data(42), Data(7)))
    )


def test_serve_raises(world, key):

    world.send(Data(5))
    with pytest.raises(TypeMismatch):
        serve(2, key, world, echo(world))


def test_server_requires_shared_key(world):

    with pytest.raises(AssertionError):
        Server(2, Key(1, 1), world, echo(world))
