"""
The symbolic term model.

Messages are not bitstrings but structured values (items).
Cryptography is assumed perfect, which falls out of the representation:
- the `n`-th key generated by principal `p` is `Key(p, n)`,
  so two keys are equal exactly when their creators and sequence numbers are;
- a keyed hash is `Hmac(p, n, payload)`,
  so it is bound to the identity of its key and to its exact payload
  (no collisions).

Items are immutable and compared structurally.
The same algebra is available to the solver as the z3 datatype `ItemSort`,
and `Item.to_z3` embeds a concrete item as a ground term of that sort.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

import z3

from errors import TypeMismatch, VerifyFailure

if TYPE_CHECKING:
    from principals import Principal

__all__ = [
    "Item",
    "Key",
    "Data",
    "Hmac",
    "Pair",
    "ItemSort",
    "create_key",
    "create_data",
    "create_pair",
    "hmac",
    "verify_hmac",
    "pair_first",
    "pair_second",
    "as_key",
    "as_data",
    "equals",
]


def _declare_item_sort() -> z3.DatatypeSortRef:
    item = z3.Datatype("Item")
    item.declare("key", ("key_creator", z3.IntSort()), ("key_seq", z3.IntSort()))
    item.declare("data", ("data_value", z3.IntSort()))
    item.declare(
        "hmac",
        ("hmac_creator", z3.IntSort()),
        ("hmac_seq", z3.IntSort()),
        ("hmac_payload", item),
    )
    item.declare("pair", ("pair_first", item), ("pair_second", item))
    return item.create()


ItemSort = _declare_item_sort()
"""
The z3 algebraic datatype of items.
Constructors: `key`, `data`, `hmac`, `pair`;
recognizers: `is_key`, `is_data`, `is_hmac`, `is_pair`.
"""


class Item(ABC):
    """Base class of the four item kinds."""

    @abstractmethod
    def to_z3(self) -> z3.DatatypeRef: ...


@dataclass(frozen=True)
class Key(Item):
    creator: int
    seq: int

    def to_z3(self) -> z3.DatatypeRef:
        return ItemSort.key(self.creator, self.seq)

    def __str__(self) -> str:
        return f"key({self.creator},{self.seq})"


@dataclass(frozen=True)
class Data(Item):
    value: int

    def to_z3(self) -> z3.DatatypeRef:
        return ItemSort.data(self.value)

    def __str__(self) -> str:
        return f"data({self.value})"


@dataclass(frozen=True)
class Hmac(Item):
    key_creator: int
    key_seq: int
    payload: Item

    def to_z3(self) -> z3.DatatypeRef:
        return ItemSort.hmac(self.key_creator, self.key_seq, self.payload.to_z3())

    def __str__(self) -> str:
        return f"hmac({self.key_creator},{self.key_seq},{self.payload})"


@dataclass(frozen=True)
class Pair(Item):
    first: Item
    second: Item

    def to_z3(self) -> z3.DatatypeRef:
        return ItemSort.pair(self.first.to_z3(), self.second.to_z3())

    def __str__(self) -> str:
        return f"<{self.first}, {self.second}>"


def create_key(principal: "Principal") -> Key:
    """
    Generate a fresh key for `principal`,
    consuming its next unused sequence number.
    """
    return Key(principal.id, principal.next_key_seq())


def create_data(value: int) -> Data:
    return Data(value)


def create_pair(first: Item, second: Item) -> Pair:
    return Pair(first, second)


def hmac(key: Item, payload: Item) -> Hmac:
    key = as_key(key)
    return Hmac(key.creator, key.seq, payload)


def verify_hmac(hash_item: Item, key: Item, payload: Item) -> None:
    """
    Succeeds iff `hash_item` is exactly the hash of `payload` under `key`.
    This is the only way to rely on a hash's authenticity.
    """
    expected = hmac(key, payload)
    if hash_item != expected:
        raise VerifyFailure(hash_item, expected)


def pair_first(item: Item) -> Item:
    if not isinstance(item, Pair):
        raise TypeMismatch("pair", item)
    return item.first


def pair_second(item: Item) -> Item:
    if not isinstance(item, Pair):
        raise TypeMismatch("pair", item)
    return item.second


def as_key(item: Item) -> Key:
    if not isinstance(item, Key):
        raise TypeMismatch("key", item)
    return item


def as_data(item: Item) -> Data:
    if not isinstance(item, Data):
        raise TypeMismatch("data", item)
    return item


def equals(first: Item, second: Item) -> bool:
    return first == second
