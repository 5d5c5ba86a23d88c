"""Per-session handle tables for the distributed objects a worker holds."""

from __future__ import annotations

import enum
from typing import Any, Dict, List


class Kind(enum.Enum):
    MAP = "map"
    VECTOR = "vector"
    GRAPH = "graph"
    MATRIX = "matrix"


class InvalidHandle(LookupError):
    pass


class Registry:
    """Four append-only tables, one handle space per kind.

    A handle is the length of its table at creation time, so handles run
    0, 1, 2, ... per kind and are never reused. Nothing is ever removed:
    objects live as long as the session that created them.
    """

    def __init__(self):
        self._tables: Dict[Kind, List[Any]] = {kind: [] for kind in Kind}

    def next_handle(self, kind: Kind) -> int:
        return len(self._tables[kind])

    def allocate(self, kind: Kind, obj) -> int:
        table = self._tables[kind]
        handle = len(table)
        table.append(obj)
        return handle

    def resolve(self, kind: Kind, handle: int):
        table = self._tables[kind]
        handle = int(handle)
        if not 0 <= handle < len(table):
            raise InvalidHandle(f"no {kind.value} with handle {handle} ({len(table)} allocated)")
        return table[handle]

    def count(self, kind: Kind) -> int:
        return len(self._tables[kind])
