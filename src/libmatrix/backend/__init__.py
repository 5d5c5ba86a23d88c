"""
Backends implement the distributed objects behind each handle.

The event loop depends only on the abstract capabilities in ``base``;
``numpy`` is the bundled implementation.
"""

from .base import (
    Backend,
    ConnectivityGraph,
    DistributedMatrix,
    DistributedVector,
    GraphSealedError,
    IndexSpace,
    NotOwnedError,
)
from .numpy import ArrayGraph, ArrayIndexSpace, ArrayMatrix, ArrayVector, NumpyBackend


def create_backend(name: str = 'numpy') -> Backend:
    """Build the backend registered under ``name``."""
    if name == 'numpy':
        return NumpyBackend()
    raise ValueError(f"Unknown backend: {name}")


__all__ = [
    'Backend', 'IndexSpace', 'ConnectivityGraph', 'DistributedVector', 'DistributedMatrix',
    'GraphSealedError', 'NotOwnedError',
    'ArrayIndexSpace', 'ArrayGraph', 'ArrayVector', 'ArrayMatrix', 'NumpyBackend',
    'create_backend',
]
