"""
The two honest roles of the RPC protocol.

Every message on the network has the shape
`<hmac(key, <data(tag), body>), <data(tag), body>>`:
a request has tag `0` and the raw request as body,
a response has tag `1` and `<request, response>` as body.

The client performs a single round trip;
the server answers requests forever.
Both are state machines advanced one step at a time (`step`),
so a `simulation.Simulation` can interleave them with other roles;
`client` and `serve` run a single role on its own.
Any `errors.ProtocolError` ends the role for good.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import NoReturn, Protocol

from errors import ProtocolError, EqualityMismatch
from items import (
    Item,
    Key,
    Data,
    create_pair,
    hmac,
    verify_hmac,
    pair_first,
    pair_second,
    as_data,
    equals,
)
from pub import REQUEST_TAG, RESPONSE_TAG
from world import World

__all__ = [
    "ClientState",
    "ServerState",
    "Client",
    "Server",
    "Responder",
    "recording_responder",
    "client",
    "serve",
    "seal",
    "unseal",
]


def seal(key: Key, tag: int, body: Item) -> Item:
    """
    :return: `<hmac(key, payload), payload>` where `payload = <data(tag), body>`.
    """
    payload = create_pair(Data(tag), body)
    return create_pair(hmac(key, payload), payload)


def unseal(key: Key, message: Item, tag: int) -> Item:
    """
    Check that `message` was sealed with `key` and `tag`.

    :return: the body of the message.
    """
    hash_item = pair_first(message)
    payload = pair_second(message)
    verify_hmac(hash_item, key, payload)
    tag_item = as_data(pair_first(payload))
    if tag_item.value != tag:
        raise EqualityMismatch(Data(tag), tag_item)
    return pair_second(payload)


class ClientState(Enum):
    IDLE = auto()
    SENT = auto()
    AWAITING_RESPONSE = auto()
    DONE = auto()
    ABORTED = auto()


@dataclass
class Client:
    """
    Requires that the key is shared with `server`
    and that the application already recorded `request(key.creator, server, request)`.

    If the client reaches `DONE` with `result`,
    then `bad(key.creator)`, `bad(server)`,
    or `response(key.creator, server, request, result)` holds.
    """

    world: World
    server: int
    key: Key
    request: Item
    state: ClientState = ClientState.IDLE
    result: Item | None = None
    error: ProtocolError | None = None

    def __post_init__(self) -> None:
        creator = self.key.creator
        assert (
            self.world.env.shared_with(creator, self.key.seq) == self.server
        ), f"{self.key} is not shared with server {self.server}"
        assert self.world.ledger.has_request(
            creator, self.server, self.request
        ), f"Missing request({creator}, {self.server}, {self.request})"

    @property
    def finished(self) -> bool:
        return self.state in (ClientState.DONE, ClientState.ABORTED)

    def step(self) -> bool:
        """
        Perform a single transition of the client.

        :return: whether the client moved.
        """
        if self.finished:
            return False

        try:
            match self.state:
                case ClientState.IDLE:
                    self.world.send(seal(self.key, REQUEST_TAG, self.request))
                    self.state = ClientState.SENT
                case ClientState.SENT:
                    self.state = ClientState.AWAITING_RESPONSE
                case ClientState.AWAITING_RESPONSE:
                    self.result = self._accept(self.world.receive())
                    self.state = ClientState.DONE
        except ProtocolError as e:
            self.error = e
            self.state = ClientState.ABORTED
        return True

    def _accept(self, message: Item) -> Item:
        request_response = unseal(self.key, message, RESPONSE_TAG)
        echoed = pair_first(request_response)
        response = pair_second(request_response)
        if not equals(self.request, echoed):
            raise EqualityMismatch(self.request, echoed)
        return response


def client(
    world: World,
    server: int,
    key: Key,
    request: Item,
    between: Callable[[], object] | None = None,
) -> Item:
    """
    Run one request/response round trip.

    :param between: run once after the request was sent and before
    the response is received, e.g. to let a server take a step.
    :return: the response.
    :raises errors.ProtocolError: when the client aborts.
    """
    role = Client(world, server, key, request)
    while not role.finished:
        role.step()
        if role.state is ClientState.SENT and between is not None:
            between()

    if role.error is not None:
        raise role.error
    assert role.result is not None
    return role.result


class Responder(Protocol):
    """
    The server application (`compute_response`).

    Given the server key and an authenticated request,
    returns a public response and records
    `response(key.creator, shared_with(key), request, result)`.
    """

    def __call__(self, key: Key, request: Item) -> Item: ...


def recording_responder(world: World, compute: Callable[[Item], Item]) -> Responder:
    def respond(key: Key, request: Item) -> Item:
        response = compute(request)
        partner = world.env.shared_with(key.creator, key.seq)
        world.ledger.record_response(key.creator, partner, request, response)
        return response

    return respond


class ServerState(Enum):
    SERVING = auto()
    STOPPED = auto()


@dataclass
class Server:
    """
    Assumes, without authenticating it,
    that `key` is shared with `server_id` (and so was created by the client).
    Any malformed or unauthentic input stops the server.
    """

    server_id: int
    key: Key
    world: World
    responder: Responder
    state: ServerState = ServerState.SERVING
    error: ProtocolError | None = None
    served: list[tuple[Item, Item]] = field(default_factory=list)

    def __post_init__(self) -> None:
        # assumed environment fact
        assert (
            self.world.env.shared_with(self.key.creator, self.key.seq)
            == self.server_id
        ), f"{self.key} is not shared with server {self.server_id}"

    @property
    def finished(self) -> bool:
        return self.state is ServerState.STOPPED

    def step(self) -> bool:
        """
        Serve a single request.

        :return: whether the server moved.
        """
        if self.finished:
            return False

        try:
            request = unseal(self.key, self.world.receive(), REQUEST_TAG)
            response = self.responder(self.key, request)
            self.world.send(
                seal(self.key, RESPONSE_TAG, create_pair(request, response))
            )
            self.served.append((request, response))
        except ProtocolError as e:
            self.error = e
            self.state = ServerState.STOPPED
        return True


def serve(server_id: int, key: Key, world: World, responder: Responder) -> NoReturn:
    """
    Serve forever.

    :raises errors.ProtocolError: the failure that stopped the server.
    """
    server = Server(server_id, key, world, responder)
    while True:
        server.step()
        if server.error is not None:
            raise server.error
