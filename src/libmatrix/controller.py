"""Root side of every command exchange, for drivers and tests."""

from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np

from .protocol import (
    COMMAND_DTYPE,
    GLOBAL_DTYPE,
    HANDLE_DTYPE,
    P2P_TAG,
    QUIT,
    SCALAR_DTYPE,
    SIZE_DTYPE,
    Command,
    is_command,
)
from .transport import ProtocolDesync


def partition_ranges(n: int, parts: int) -> List[Tuple[int, int]]:
    base = n // parts
    remainder = n % parts
    ranges: List[Tuple[int, int]] = []
    start = 0
    for i in range(parts):
        size = base + (1 if i < remainder else 0)
        end = start + size
        ranges.append((start, end))
        start = end
    return ranges


def block_partition(n: int, parts: int) -> List[np.ndarray]:
    """Contiguous per-worker id lists covering ``range(n)``."""
    return [np.arange(start, end, dtype=GLOBAL_DTYPE) for start, end in partition_ranges(n, parts)]


def assemble(fragments: Sequence[np.ndarray], parts: Sequence[Sequence[int]], size: int) -> np.ndarray:
    """Place each worker's fragment at the global ids that worker owns."""
    if len(fragments) != len(parts):
        raise ValueError("need one id list per fragment")
    full = np.zeros(size, dtype=SCALAR_DTYPE)
    for fragment, ids in zip(fragments, parts):
        ids = np.asarray(ids, dtype=GLOBAL_DTYPE)
        if ids.size != np.size(fragment):
            raise ValueError(f"fragment of {np.size(fragment)} values for {ids.size} ids")
        full[ids] = fragment
    return full


class Controller:
    """Issues commands over a controller endpoint in the workers' exchange order.

    It decides nothing; callers choose which commands to send.
    """

    def __init__(self, endpoint):
        self.endpoint = endpoint

    @property
    def size(self) -> int:
        return self.endpoint.size

    def _command(self, command: Command):
        self.endpoint.bcast(int(command), COMMAND_DTYPE)

    def _handle(self) -> int:
        handles = self.endpoint.gather(HANDLE_DTYPE)
        if len(set(handles.tolist())) != 1:
            raise ProtocolDesync(f"workers returned different handles: {handles.tolist()}")
        return int(handles[0])

    def new_map(self, size: int, parts: Sequence[Sequence[int]]) -> int:
        chunks = [np.asarray(p, dtype=GLOBAL_DTYPE).reshape(-1) for p in parts]
        if len(chunks) != self.size:
            raise ValueError(f"need one id list per worker ({self.size}), got {len(chunks)}")
        total = sum(c.size for c in chunks)
        if total != size:
            raise ValueError(f"map of size {size} partitioned into {total} ids")
        if np.unique(np.concatenate(chunks)).size != total:
            raise ValueError("id lists must not overlap between workers")
        self._command(Command.NEW_MAP)
        self.endpoint.bcast(size, SIZE_DTYPE)
        self.endpoint.scatter([c.size for c in chunks], SIZE_DTYPE)
        self.endpoint.scatterv(chunks, GLOBAL_DTYPE)
        return self._handle()

    def new_vector(self, imap: int) -> int:
        self._command(Command.NEW_VECTOR)
        self.endpoint.bcast(imap, HANDLE_DTYPE)
        return self._handle()

    def add_evec(self, rank: int, ivec: int, indices: Sequence[int], values: Sequence[float]) -> None:
        indices = np.asarray(indices, dtype=GLOBAL_DTYPE).reshape(-1)
        values = np.asarray(values, dtype=SCALAR_DTYPE).reshape(-1)
        if indices.size != values.size:
            raise ValueError("indices and values must have the same length")
        if not 0 <= rank < self.size:
            raise ValueError(f"target rank {rank} outside worker group of {self.size}")
        self._command(Command.ADD_EVEC)
        self.endpoint.bcast(rank, SIZE_DTYPE)
        self.endpoint.send(rank, [ivec], HANDLE_DTYPE, tag=P2P_TAG)
        self.endpoint.send(rank, [indices.size], SIZE_DTYPE, tag=P2P_TAG)
        self.endpoint.send(rank, indices, GLOBAL_DTYPE, tag=P2P_TAG)
        self.endpoint.send(rank, values, SCALAR_DTYPE, tag=P2P_TAG)

    def get_vector(self, ivec: int) -> List[np.ndarray]:
        self._command(Command.GET_VECTOR)
        self.endpoint.bcast(ivec, HANDLE_DTYPE)
        return self.endpoint.gatherv(SCALAR_DTYPE)

    def new_graph(self, imap: int, rows: Sequence[Sequence[Sequence[int]]]) -> int:
        """``rows[w]`` lists the column ids of each row worker ``w`` owns, in map order."""
        if len(rows) != self.size:
            raise ValueError(f"need one row list per worker ({self.size}), got {len(rows)}")
        counts = [np.array([len(r) for r in worker_rows], dtype=SIZE_DTYPE) for worker_rows in rows]
        columns = [
            np.concatenate([np.asarray(r, dtype=GLOBAL_DTYPE) for r in worker_rows])
            if len(worker_rows) else np.empty(0, dtype=GLOBAL_DTYPE)
            for worker_rows in rows
        ]
        self._command(Command.NEW_GRAPH)
        self.endpoint.bcast(imap, HANDLE_DTYPE)
        self.endpoint.scatterv(counts, SIZE_DTYPE)
        self.endpoint.scatterv(columns, GLOBAL_DTYPE)
        return self._handle()

    def new_matrix(self, igraph: int) -> int:
        self._command(Command.NEW_MATRIX)
        self.endpoint.bcast(igraph, HANDLE_DTYPE)
        return self._handle()

    def quit(self, code: int = QUIT) -> None:
        if is_command(code):
            raise ValueError(f"{code} is a command code, not a session end")
        self.endpoint.bcast(code, COMMAND_DTYPE)
