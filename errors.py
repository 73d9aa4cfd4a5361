"""
Failures of the protocol roles.

Every error here is terminal for the role that hits it:
a client stops without a response, a server stops serving,
and an attacker persona is retired.
None of them is ever retried inside the core.
"""

__all__ = [
    "ProtocolError",
    "TypeMismatch",
    "VerifyFailure",
    "EqualityMismatch",
    "NotPublic",
]


class ProtocolError(Exception):
    """Base class for all role-terminating failures."""


class TypeMismatch(ProtocolError):
    """An item did not carry the tag the operation expected."""

    def __init__(self, expected: str, item: object) -> None:
        super().__init__(f"expected {expected}, got {item}")
        self.expected = expected
        self.item = item


class VerifyFailure(ProtocolError):
    """A keyed hash does not match the key and payload it was checked against."""

    def __init__(self, hash_item: object, expected: object) -> None:
        super().__init__(f"hash {hash_item} does not match {expected}")
        self.hash_item = hash_item
        self.expected = expected


class EqualityMismatch(ProtocolError):
    """
    A structural comparison failed,
    e.g. the echoed request differs from the one sent,
    or a tag has the wrong value.
    """

    def __init__(self, expected: object, actual: object) -> None:
        super().__init__(f"expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class NotPublic(ProtocolError):
    """An attempted send would put a non-public item on the network."""

    def __init__(self, item: object) -> None:
        super().__init__(f"{item} may not appear on the network")
        self.item = item
