"""
The network attacker.

The attacker performs, in any order and any number of times,
exactly the derivations available to a Dolev-Yao adversary over public items:
1. leak its own keys, when it (or the key's partner) is bad;
2. invent data;
3. pair two public items;
4. hash a public item with a public key;
5. split a public pair.
It acts under arbitrarily many identities (personas),
goes through the same `world.World` gate as the honest roles,
and never records events.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import NoReturn

from errors import ProtocolError
from items import (
    Item,
    create_key,
    create_data,
    create_pair,
    hmac,
    as_key,
    pair_first,
    pair_second,
)
from principals import Principal, PrincipalRegistry
from pub import key_is_public
from world import World

__all__ = [
    "AttackerAction",
    "Attacker",
    "attacker",
]


class AttackerAction(IntEnum):
    LEAK_KEY = 0
    PUBLISH_DATA = 1
    PAIR = 2
    HASH = 3
    SPLIT = 4


@dataclass
class Attacker:
    world: World
    registry: PrincipalRegistry
    persona: Principal = field(init=False)
    retired: list[tuple[Principal, ProtocolError]] = field(default_factory=list)
    published: list[Item] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.persona = self.registry.create_principal()

    @property
    def finished(self) -> bool:
        return False

    @property
    def error(self) -> ProtocolError | None:
        # retired personas are replaced, the attacker itself never stops
        return None

    def step(self) -> bool:
        """
        Perform one derivation, chosen by the world's chooser.
        A failed derivation retires the current persona
        and a fresh one takes over.
        """
        action = AttackerAction(self.world.chooser.choose_action(len(AttackerAction)))
        try:
            self.perform(action)
        except ProtocolError as e:
            self.retired.append((self.persona, e))
            self.persona = self.registry.create_principal()
        return True

    def perform(self, action: AttackerAction) -> None:
        match action:
            case AttackerAction.LEAK_KEY:
                key = create_key(self.persona)
                # bad principals leak their keys, good ones keep them
                if key_is_public(self.world.env, key.creator, key.seq):
                    self._publish(key)
            case AttackerAction.PUBLISH_DATA:
                self._publish(create_data(self.world.chooser.choose_int()))
            case AttackerAction.PAIR:
                first = self.world.receive()
                second = self.world.receive()
                self._publish(create_pair(first, second))
            case AttackerAction.HASH:
                key = self.world.receive()
                payload = self.world.receive()
                self._publish(hmac(as_key(key), payload))
            case AttackerAction.SPLIT:
                pair = self.world.receive()
                first = pair_first(pair)
                second = pair_second(pair)
                self._publish(first)
                self._publish(second)

    def _publish(self, item: Item) -> None:
        self.world.send(item)
        self.published.append(item)


def attacker(world: World, registry: PrincipalRegistry) -> NoReturn:
    role = Attacker(world, registry)
    while True:
        role.step()
