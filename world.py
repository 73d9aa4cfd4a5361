"""
The public world: the network, where the attacker lives.

The world is a gate, not a message queue.
`send` only checks that the item satisfies `pub`;
`receive` yields *some* item satisfying `pub`,
with no ordering, delivery or freshness guarantees,
so reordering, replay and injection are all implicitly possible.
It is the only point where the client, the server and the attacker meet,
and all of them go through the same gate.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

from choice import Chooser
from environment import Environment, EventLedger
from errors import NotPublic
from items import Item, Data
from pub import pub

__all__ = [
    "World",
]


@dataclass
class World:
    env: Environment
    ledger: EventLedger
    chooser: Chooser
    _wire: list[Item] = field(default_factory=list)
    _seen: set[Item] = field(default_factory=set)
    _sent: list[Item] = field(default_factory=list)

    def pub(self, item: Item) -> bool:
        return pub(self.env, self.ledger, item)

    def send(self, item: Item) -> None:
        if not self.pub(item):
            raise NotPublic(item)
        self._sent.append(item)
        if item not in self._seen:
            self._seen.add(item)
            self._wire.append(item)

    def receive(self) -> Item:
        """
        Never blocks and never fails:
        the adversary can always replay an observed item,
        or offer invented data when nothing was observed yet.
        """
        if self._wire:
            item = self._wire[self.chooser.choose_index(len(self._wire))]
        else:
            item = Data(self.chooser.choose_int())
        # `pub` is persistent: once sent, always public
        assert self.pub(item), f"Received non-public item {item}"
        return item

    @property
    def observed(self) -> Sequence[Item]:
        """Items seen on the wire, oldest first."""
        return tuple(self._wire)

    @property
    def sent(self) -> Sequence[Item]:
        """Every successful send, duplicates included."""
        return tuple(self._sent)
