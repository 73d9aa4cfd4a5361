"""
Facts about the world a run happens in.

`Environment` holds the facts fixed before a run starts:
which principals are bad, and with whom each key is shared.
`EventLedger` holds the event facts `request` and `response`,
which only the application logic driving the client and server records.
Neither the protocol roles nor the attacker ever write to the ledger,
and facts are never retracted.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Self

from items import Item

__all__ = [
    "NOT_SHARED",
    "Environment",
    "EventLedger",
]

NOT_SHARED = -1
"""The partner of a key that was never shared."""


@dataclass(frozen=True)
class Environment:
    bad: frozenset[int] = frozenset()
    shared: Mapping[tuple[int, int], int] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "bad", frozenset(self.bad))
        object.__setattr__(self, "shared", MappingProxyType(dict(self.shared)))

    def is_bad(self, principal: int) -> bool:
        return principal in self.bad

    def shared_with(self, creator: int, seq: int) -> int:
        return self.shared.get((creator, seq), NOT_SHARED)

    def share(self, creator: int, seq: int, partner: int) -> Self:
        """
        :return: a copy of this environment where key `seq` of `creator`
        is shared with `partner`.
        """
        return self.__class__(self.bad, {**self.shared, (creator, seq): partner})

    def with_bad(self, *principals: int) -> Self:
        return self.__class__(self.bad | set(principals), self.shared)


type RequestFact = tuple[int, int, Item]
type ResponseFact = tuple[int, int, Item, Item]


@dataclass
class EventLedger:
    _requests: set[RequestFact] = field(default_factory=set)
    _responses: set[ResponseFact] = field(default_factory=set)

    def record_request(self, client: int, server: int, request: Item) -> None:
        self._requests.add((client, server, request))

    def record_response(
        self, client: int, server: int, request: Item, response: Item
    ) -> None:
        self._responses.add((client, server, request, response))

    def has_request(self, client: int, server: int, request: Item) -> bool:
        return (client, server, request) in self._requests

    def has_response(
        self, client: int, server: int, request: Item, response: Item
    ) -> bool:
        return (client, server, request, response) in self._responses

    @property
    def requests(self) -> Iterable[RequestFact]:
        return frozenset(self._requests)

    @property
    def responses(self) -> Iterable[ResponseFact]:
        return frozenset(self._responses)

    def __len__(self) -> int:
        return len(self._requests) + len(self._responses)
