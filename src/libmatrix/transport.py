"""Worker-side collective transports over the controller channel."""

from __future__ import annotations

import abc
import logging

import numpy as np

logger = logging.getLogger(__name__)

# the controller is rank 0 of the remote group and the root of every exchange
ROOT = 0


class TransportError(RuntimeError):
    pass


class GroupDeadlock(TransportError):
    pass


class ProtocolDesync(TransportError):
    pass


class Channel(abc.ABC):
    """Worker end of the inter-group channel.

    Every call is collective with the controller: the worker blocks until
    the controller (and, for collectives, every other worker) issues the
    matching call. Workers are never the root of an exchange.
    """

    rank: int
    size: int

    @abc.abstractmethod
    def bcast(self, dtype):
        """Receive one scalar broadcast by the controller."""

    @abc.abstractmethod
    def scatter(self, dtype):
        """Receive this worker's scalar of a fixed-count scatter."""

    @abc.abstractmethod
    def scatterv(self, count: int, dtype) -> np.ndarray:
        """Receive this worker's ``count`` items of a variable scatter."""

    @abc.abstractmethod
    def gather(self, value, dtype) -> None:
        """Contribute one scalar to a gather at the controller."""

    @abc.abstractmethod
    def gatherv(self, values, dtype) -> None:
        """Contribute a variable number of items to a gather at the controller."""

    @abc.abstractmethod
    def recv(self, count: int, dtype, tag: int = 0) -> np.ndarray:
        """Receive ``count`` items sent point-to-point by the controller."""

    @abc.abstractmethod
    def disconnect(self) -> None:
        pass


class IntercommChannel(Channel):
    """Channel over the MPI intercommunicator to the spawning controller."""

    def __init__(self, intercomm, errors=()):
        self._comm = intercomm
        self._errors = tuple(errors)
        self._closed = False
        self.rank = intercomm.Get_rank()
        self.size = intercomm.Get_size()

    def _call(self, op, *args, **kwargs):
        if self._closed:
            raise TransportError("channel already disconnected")
        try:
            return op(*args, **kwargs)
        except self._errors as exc:
            raise TransportError(f"MPI call {op.__name__} failed: {exc}") from exc

    def bcast(self, dtype):
        buf = np.empty(1, dtype=dtype)
        self._call(self._comm.Bcast, buf, root=ROOT)
        return buf[0].item()

    def scatter(self, dtype):
        buf = np.empty(1, dtype=dtype)
        self._call(self._comm.Scatter, None, buf, root=ROOT)
        return buf[0].item()

    def scatterv(self, count: int, dtype) -> np.ndarray:
        buf = np.empty(count, dtype=dtype)
        self._call(self._comm.Scatterv, None, buf, root=ROOT)
        return buf

    def gather(self, value, dtype) -> None:
        buf = np.array([value], dtype=dtype)
        self._call(self._comm.Gather, buf, None, root=ROOT)

    def gatherv(self, values, dtype) -> None:
        buf = np.ascontiguousarray(values, dtype=dtype)
        self._call(self._comm.Gatherv, buf, None, root=ROOT)

    def recv(self, count: int, dtype, tag: int = 0) -> np.ndarray:
        buf = np.empty(count, dtype=dtype)
        self._call(self._comm.Recv, buf, source=ROOT, tag=tag)
        return buf

    def disconnect(self) -> None:
        if self._closed:
            return
        self._call(self._comm.Disconnect)
        self._closed = True


def connect_to_parent() -> IntercommChannel:
    """Join the spawned worker group and open the channel to its controller."""
    try:
        from mpi4py import MPI
    except ImportError as exc:
        raise TransportError("mpi4py is required to run the event loop; install libmatrix[mpi]") from exc

    parent = MPI.Comm.Get_parent()
    if parent == MPI.COMM_NULL:
        raise TransportError("no parent intercommunicator; workers must be spawned by a controller")
    parent.Set_errhandler(MPI.ERRORS_RETURN)
    channel = IntercommChannel(parent, errors=(MPI.Exception,))
    logger.debug("connected to controller as worker %d of %d", channel.rank, channel.size)
    return channel
