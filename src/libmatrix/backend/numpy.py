"""
NumPy-backed objects (one worker's partition, no inter-worker traffic).

Every object only knows the rows its worker owns; accumulating into an
id owned elsewhere is rejected rather than forwarded.
"""

from typing import Dict, List, Optional, Sequence

import numpy as np

from ..protocol import GLOBAL_DTYPE, SCALAR_DTYPE
from .base import (
    Backend,
    ConnectivityGraph,
    DistributedMatrix,
    DistributedVector,
    GraphSealedError,
    IndexSpace,
    NotOwnedError,
)


def _check_columns(columns: np.ndarray, size: int):
    if columns.size and (columns.min() < 0 or columns.max() >= size):
        raise ValueError(f"column ids must lie in [0, {size})")


class ArrayIndexSpace(IndexSpace):
    def __init__(self, size: int, element_ids: Sequence[int]):
        if size < 0:
            raise ValueError("index space size must be non-negative")
        ids = np.array(element_ids, dtype=GLOBAL_DTYPE).reshape(-1)
        if ids.size and (ids.min() < 0 or ids.max() >= size):
            raise ValueError(f"element ids must lie in [0, {size})")
        if np.unique(ids).size != ids.size:
            raise ValueError("element ids must not repeat within a worker")
        ids.setflags(write=False)
        self.size = int(size)
        self._ids = ids
        self._lookup: Dict[int, int] = {int(gid): lid for lid, gid in enumerate(ids)}

    @property
    def num_local(self) -> int:
        return int(self._ids.size)

    @property
    def global_ids(self) -> np.ndarray:
        return self._ids

    def owns(self, gid: int) -> bool:
        return int(gid) in self._lookup

    def local_index(self, gid: int) -> int:
        try:
            return self._lookup[int(gid)]
        except KeyError:
            raise NotOwnedError(f"global id {gid} is not owned by this worker") from None

    def __repr__(self):
        return f"ArrayIndexSpace(size={self.size}, num_local={self.num_local})"


class ArrayGraph(ConnectivityGraph):
    """Row lists while open, CSR arrays (sorted, unique columns) once filled.

    ``entries_per_row`` is the allocation for each owned row; a row may not
    receive more column ids than it was allocated.
    """

    def __init__(self, index_space: IndexSpace, entries_per_row: Sequence[int]):
        allocated = np.array(entries_per_row, dtype=np.int64).reshape(-1)
        if allocated.size != index_space.num_local:
            raise ValueError(
                f"expected {index_space.num_local} row allocations, got {allocated.size}"
            )
        if allocated.size and allocated.min() < 0:
            raise ValueError("row allocations must be non-negative")
        self.index_space = index_space
        self._allocated = allocated
        self._rows: Optional[List[List[int]]] = [[] for _ in range(allocated.size)]
        self._indptr: Optional[np.ndarray] = None
        self._indices: Optional[np.ndarray] = None

    def insert_global_indices(self, row: int, columns: Sequence[int]) -> None:
        if self._rows is None:
            raise GraphSealedError("cannot insert into a fill-complete graph")
        lrow = self.index_space.local_index(row)
        cols = np.asarray(columns, dtype=GLOBAL_DTYPE).reshape(-1)
        _check_columns(cols, self.index_space.size)
        entries = self._rows[lrow]
        if len(entries) + cols.size > self._allocated[lrow]:
            raise ValueError(
                f"row {row} allocated {self._allocated[lrow]} entries, "
                f"cannot hold {len(entries) + cols.size}"
            )
        entries.extend(int(c) for c in cols)

    def fill_complete(self) -> None:
        if self._rows is None:
            raise GraphSealedError("graph is already fill-complete")
        rows = [np.unique(np.asarray(r, dtype=GLOBAL_DTYPE)) for r in self._rows]
        lengths = np.array([r.size for r in rows], dtype=np.int64)
        indptr = np.zeros(len(rows) + 1, dtype=np.int64)
        indptr[1:] = np.cumsum(lengths)
        self._indptr = indptr
        self._indices = np.concatenate(rows) if rows else np.empty(0, dtype=GLOBAL_DTYPE)
        self._rows = None

    @property
    def is_filled(self) -> bool:
        return self._rows is None

    @property
    def num_entries(self) -> int:
        if self._rows is not None:
            return sum(len(r) for r in self._rows)
        return int(self._indptr[-1])

    def row(self, gid: int) -> np.ndarray:
        lrow = self.index_space.local_index(gid)
        if self._rows is not None:
            return np.asarray(self._rows[lrow], dtype=GLOBAL_DTYPE)
        return self._indices[self._indptr[lrow]:self._indptr[lrow + 1]].copy()

    def pattern(self):
        """CSR ``(indptr, indices)`` over the owned rows of a filled graph."""
        if self._rows is not None:
            raise ValueError("graph pattern is only available after fill_complete")
        return self._indptr, self._indices


class ArrayVector(DistributedVector):
    def __init__(self, index_space: IndexSpace):
        self.index_space = index_space
        self._values = np.zeros(index_space.num_local, dtype=SCALAR_DTYPE)

    def sum_into_global_value(self, gid: int, value: float) -> None:
        self._values[self.index_space.local_index(gid)] += value

    def local_values(self) -> np.ndarray:
        return self._values.copy()


class ArrayMatrix(DistributedMatrix):
    def __init__(self, graph: ConnectivityGraph):
        if not graph.is_filled:
            raise ValueError("a matrix needs a fill-complete graph")
        self.graph = graph
        self._values = np.zeros(graph.num_entries, dtype=SCALAR_DTYPE)

    @property
    def nnz(self) -> int:
        return int(self._values.size)

    def local_values(self) -> np.ndarray:
        return self._values.copy()


class NumpyBackend(Backend):
    def create_map(self, size: int, element_ids: Sequence[int]) -> ArrayIndexSpace:
        return ArrayIndexSpace(size, element_ids)

    def create_vector(self, index_space: IndexSpace) -> ArrayVector:
        return ArrayVector(index_space)

    def create_graph(self, index_space: IndexSpace, entries_per_row: Sequence[int]) -> ArrayGraph:
        return ArrayGraph(index_space, entries_per_row)

    def create_matrix(self, graph: ConnectivityGraph) -> ArrayMatrix:
        return ArrayMatrix(graph)
