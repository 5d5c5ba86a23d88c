"""
Capabilities the event loop needs from a distributed linear-algebra library.

Handlers only create objects and call the few mutators below; storage,
arithmetic and inter-worker communication stay inside the backend.
"""

from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np


class GraphSealedError(RuntimeError):
    pass


class NotOwnedError(LookupError):
    pass


class IndexSpace(ABC):
    """Partition of ``size`` global ids; this worker owns ``global_ids``."""

    size: int

    @property
    @abstractmethod
    def num_local(self) -> int:
        pass

    @property
    @abstractmethod
    def global_ids(self) -> np.ndarray:
        """Locally owned global ids, in local order."""
        pass

    @abstractmethod
    def owns(self, gid: int) -> bool:
        pass

    @abstractmethod
    def local_index(self, gid: int) -> int:
        """Position of ``gid`` among the owned ids; NotOwnedError otherwise."""
        pass


class ConnectivityGraph(ABC):
    """Nonzero pattern of a sparse matrix over the rows of an index space."""

    index_space: IndexSpace

    @abstractmethod
    def insert_global_indices(self, row: int, columns: Sequence[int]) -> None:
        """Add column ids to an owned row (only before fill_complete)."""
        pass

    @abstractmethod
    def fill_complete(self) -> None:
        """Seal the graph; later insertions raise GraphSealedError."""
        pass

    @property
    @abstractmethod
    def is_filled(self) -> bool:
        pass

    @property
    @abstractmethod
    def num_entries(self) -> int:
        pass

    @abstractmethod
    def row(self, gid: int) -> np.ndarray:
        pass


class DistributedVector(ABC):
    index_space: IndexSpace

    @abstractmethod
    def sum_into_global_value(self, gid: int, value: float) -> None:
        pass

    @abstractmethod
    def local_values(self) -> np.ndarray:
        """Copy of the locally owned values, in local order."""
        pass


class DistributedMatrix(ABC):
    graph: ConnectivityGraph

    @property
    @abstractmethod
    def nnz(self) -> int:
        pass

    @abstractmethod
    def local_values(self) -> np.ndarray:
        pass


class Backend(ABC):
    """Factory for the objects a worker registers."""

    @abstractmethod
    def create_map(self, size: int, element_ids: Sequence[int]) -> IndexSpace:
        pass

    @abstractmethod
    def create_vector(self, index_space: IndexSpace) -> DistributedVector:
        pass

    @abstractmethod
    def create_graph(self, index_space: IndexSpace, entries_per_row: Sequence[int]) -> ConnectivityGraph:
        pass

    @abstractmethod
    def create_matrix(self, graph: ConnectivityGraph) -> DistributedMatrix:
        pass
