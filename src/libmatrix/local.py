"""In-process worker group for driving the event loop without MPI.

A ``LocalGroup`` wires one controller endpoint to ``size`` worker channels
through in-memory queues and runs each worker's event loop on its own
thread. Every blocking receive honours ``timeout`` so that a call left
unmatched by a peer surfaces as ``GroupDeadlock`` instead of hanging the
test run, and every message is checked against the operation the receiver
expects so that divergent peers surface as ``ProtocolDesync``.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .backend import create_backend
from .config import WorkerConfig, get_config
from .protocol import P2P_TAG
from .transport import ROOT, Channel, GroupDeadlock, ProtocolDesync, TransportError
from .worker import Session

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 5.0

OP_BCAST = "bcast"
OP_SCATTER = "scatter"
OP_SCATTERV = "scatterv"
OP_GATHER = "gather"
OP_GATHERV = "gatherv"
OP_SEND = "send"


@dataclass
class Message:
    src: int
    op: str
    tag: int
    payload: np.ndarray


def _get(inbox: queue.Queue, timeout: Optional[float], waiting_for: str) -> Message:
    try:
        return inbox.get(timeout=timeout)
    except queue.Empty:
        raise GroupDeadlock(f"timed out after {timeout}s waiting for {waiting_for}") from None


def _check(msg: Message, op: str, dtype, count: Optional[int], who: str, tag: int = 0) -> np.ndarray:
    if msg.op != op or msg.tag != tag:
        raise ProtocolDesync(f"{who} expected {op}(tag={tag}) but peer issued {msg.op}(tag={msg.tag})")
    if msg.payload.dtype != np.dtype(dtype):
        raise ProtocolDesync(f"{who} expected {np.dtype(dtype)} items for {op}, got {msg.payload.dtype}")
    if count is not None and msg.payload.size != count:
        raise ProtocolDesync(f"{who} expected {count} items for {op}, got {msg.payload.size}")
    return msg.payload


class LocalChannel(Channel):
    def __init__(self, group: "LocalGroup", rank: int):
        self._group = group
        self._inbox: queue.Queue[Message] = queue.Queue()
        self._closed = False
        self.rank = rank
        self.size = group.size

    def _recv(self, op: str, dtype, count: Optional[int], tag: int = 0) -> np.ndarray:
        if self._closed:
            raise TransportError(f"worker {self.rank} channel already disconnected")
        msg = _get(self._inbox, self._group.timeout, f"{op} on worker {self.rank}")
        return _check(msg, op, dtype, count, f"worker {self.rank}", tag=tag)

    def _reply(self, op: str, values, dtype):
        if self._closed:
            raise TransportError(f"worker {self.rank} channel already disconnected")
        payload = np.array(values, dtype=dtype).reshape(-1)
        self._group._controller_inbox.put(Message(src=self.rank, op=op, tag=0, payload=payload))

    def bcast(self, dtype):
        return self._recv(OP_BCAST, dtype, 1)[0].item()

    def scatter(self, dtype):
        return self._recv(OP_SCATTER, dtype, 1)[0].item()

    def scatterv(self, count: int, dtype) -> np.ndarray:
        return self._recv(OP_SCATTERV, dtype, count).copy()

    def gather(self, value, dtype) -> None:
        self._reply(OP_GATHER, [value], dtype)

    def gatherv(self, values, dtype) -> None:
        self._reply(OP_GATHERV, values, dtype)

    def recv(self, count: int, dtype, tag: int = P2P_TAG) -> np.ndarray:
        return self._recv(OP_SEND, dtype, count, tag=tag).copy()

    def disconnect(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed


class ControllerEndpoint:
    """Root end of the channel: every exchange in the protocol starts or ends here."""

    def __init__(self, group: "LocalGroup"):
        self._group = group
        self.rank = ROOT
        self.size = group.size

    def _post(self, dest: int, op: str, values, dtype, tag: int = 0):
        payload = np.array(values, dtype=dtype).reshape(-1)
        self._group.channels[dest]._inbox.put(Message(src=ROOT, op=op, tag=tag, payload=payload))

    def _check_count(self, values: Sequence, what: str):
        if len(values) != self.size:
            raise ValueError(f"{what} needs one entry per worker ({self.size}), got {len(values)}")

    def bcast(self, value, dtype) -> None:
        for dest in range(self.size):
            self._post(dest, OP_BCAST, [value], dtype)

    def scatter(self, values: Sequence, dtype) -> None:
        self._check_count(values, "scatter")
        for dest, value in enumerate(values):
            self._post(dest, OP_SCATTER, [value], dtype)

    def scatterv(self, chunks: Sequence, dtype) -> None:
        self._check_count(chunks, "scatterv")
        for dest, chunk in enumerate(chunks):
            self._post(dest, OP_SCATTERV, chunk, dtype)

    def send(self, dest: int, values, dtype, tag: int = P2P_TAG) -> None:
        if not 0 <= dest < self.size:
            raise ValueError(f"unknown destination rank {dest}")
        self._post(dest, OP_SEND, values, dtype, tag=tag)

    def _collect(self, op: str, dtype, count: Optional[int]) -> List[np.ndarray]:
        parts: List[Optional[np.ndarray]] = [None] * self.size
        for _ in range(self.size):
            msg = _get(self._group._controller_inbox, self._group.timeout, f"{op} at the controller")
            parts[msg.src] = _check(msg, op, dtype, count, "controller")
        return parts

    def gather(self, dtype) -> np.ndarray:
        return np.concatenate(self._collect(OP_GATHER, dtype, 1))

    def gatherv(self, dtype) -> List[np.ndarray]:
        return self._collect(OP_GATHERV, dtype, None)


class LocalGroup:
    def __init__(self, size: int, timeout: Optional[float] = DEFAULT_TIMEOUT_S):
        if size <= 0:
            raise ValueError("worker group size must be positive")
        self.size = size
        self.timeout = timeout
        self._controller_inbox: queue.Queue[Message] = queue.Queue()
        self.channels = [LocalChannel(self, rank) for rank in range(size)]
        self.controller = ControllerEndpoint(self)
        self.sessions: List[Session] = []
        self.errors: List[Tuple[int, BaseException]] = []
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, size: int, cfg: Optional[WorkerConfig] = None) -> "LocalGroup":
        cfg = cfg or get_config() or WorkerConfig()
        return cls(size, timeout=cfg.timeout_s)

    def start(self, backend: str = "numpy") -> "LocalGroup":
        if self._threads:
            raise RuntimeError("worker group already started")
        self.sessions = [Session(channel, create_backend(backend)) for channel in self.channels]
        for session in self.sessions:
            t = threading.Thread(
                target=self._run_worker,
                args=(session,),
                name=f"libmatrix-worker-{session.rank}",
                daemon=True,
            )
            t.start()
            self._threads.append(t)
        return self

    def _run_worker(self, session: Session):
        try:
            session.eventloop()
        except Exception as exc:
            with self._lock:
                self.errors.append((session.rank, exc))

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for every worker to leave its event loop and re-raise the first failure."""
        timeout = self.timeout if timeout is None else timeout
        for t in self._threads:
            t.join(timeout)
        alive = [t.name for t in self._threads if t.is_alive()]
        if self.errors:
            raise self.errors[0][1]
        if alive:
            raise GroupDeadlock(f"workers still running after {timeout}s: {', '.join(alive)}")
