"""
Principals and the registry issuing their identities.

A principal is owned by exactly one role (a client, a server,
or one attacker persona); only that role advances its key counter.
The registry only ever grows: principals are never destroyed,
an attacker persona that stops is simply retired (leaked).
"""

from dataclasses import dataclass, field

__all__ = [
    "Principal",
    "PrincipalRegistry",
]


@dataclass
class Principal:
    id: int
    key_counter: int = 0

    def next_key_seq(self) -> int:
        """
        :return: the sequence number of the next key, which is then consumed.
        """
        seq = self.key_counter
        self.key_counter += 1
        return seq


@dataclass
class PrincipalRegistry:
    """
    Issues principal ids `0, 1, 2, ...`, each exactly once.
    """

    principals: list[Principal] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.principals)

    def create_principal(self) -> Principal:
        principal = Principal(self.count)
        self.principals.append(principal)
        return principal

    def __getitem__(self, principal_id: int) -> Principal:
        return self.principals[principal_id]
