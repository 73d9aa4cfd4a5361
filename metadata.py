"""
Markers attached to methods by decorators
(`ts.init`, `ts.axiom`, `ts.transition`, `proofs.invariant`)
and looked up again when a system or proof collects its formulas.
"""

import inspect
from collections.abc import Iterator
from typing import Any

_METADATA = "__dy_metadata__"


def add_marker[T](obj: T, marker: object) -> T:
    markers: set[object] | None = getattr(obj, _METADATA, None)
    if markers is None:
        markers = set()
        setattr(obj, _METADATA, markers)

    markers.add(marker)
    return obj


def get_methods(obj: object, marker: object) -> Iterator[tuple[str, Any]]:
    """
    Yield `(name, member)` for every member of `obj`'s class carrying `marker`,
    in name order (inherited members included).
    """
    for name, member in inspect.getmembers(obj.__class__):
        if has_marker(member, marker):
            yield name, member


def has_marker(obj: object, marker: object) -> bool:
    return marker in getattr(obj, _METADATA, ())
