"""One handler per command; each is a fixed sequence of collective calls.

The exchange order below is a rendezvous with the controller and must not
change: ``->`` marks data flowing from the controller, ``<-`` data
flowing back to it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict

from .protocol import GLOBAL_DTYPE, HANDLE_DTYPE, P2P_TAG, SCALAR_DTYPE, SIZE_DTYPE, Command
from .registry import Kind

if TYPE_CHECKING:
    from .worker import Session


def new_matrix(session: Session) -> None:
    """
     -> bcast (HANDLE) graph id
    <-  gather (HANDLE) matrix id
    """
    channel, registry = session.channel, session.registry
    igraph = channel.bcast(HANDLE_DTYPE)
    graph = registry.resolve(Kind.GRAPH, igraph)
    session.log.debug("creating matrix #%d from graph #%d", registry.next_handle(Kind.MATRIX), igraph)
    imat = registry.allocate(Kind.MATRIX, session.backend.create_matrix(graph))
    channel.gather(imat, HANDLE_DTYPE)


def new_vector(session: Session) -> None:
    """
     -> bcast (HANDLE) map id
    <-  gather (HANDLE) vector id
    """
    channel, registry = session.channel, session.registry
    imap = channel.bcast(HANDLE_DTYPE)
    index_space = registry.resolve(Kind.MAP, imap)
    session.log.debug("creating vector #%d from map #%d", registry.next_handle(Kind.VECTOR), imap)
    ivec = registry.allocate(Kind.VECTOR, session.backend.create_vector(index_space))
    channel.gather(ivec, HANDLE_DTYPE)


def add_evec(session: Session) -> None:
    """
     -> bcast (SIZE) target rank
    if target rank is ours:
     -> recv (HANDLE) vector id
     -> recv (SIZE) number of items
     -> recv (GLOBAL) indices
     -> recv (SCALAR) values
    """
    channel = session.channel
    rank = channel.bcast(SIZE_DTYPE)
    if rank != channel.rank:
        return

    ivec = int(channel.recv(1, HANDLE_DTYPE, tag=P2P_TAG)[0])
    nitems = int(channel.recv(1, SIZE_DTYPE, tag=P2P_TAG)[0])
    session.log.debug("ivec = %d, nitems = %d", ivec, nitems)
    indices = channel.recv(nitems, GLOBAL_DTYPE, tag=P2P_TAG)
    values = channel.recv(nitems, SCALAR_DTYPE, tag=P2P_TAG)

    vector = session.registry.resolve(Kind.VECTOR, ivec)
    for gid, value in zip(indices, values):
        session.log.debug("%d : %g", gid, value)
        vector.sum_into_global_value(int(gid), float(value))


def get_vector(session: Session) -> None:
    """
     -> bcast (HANDLE) vector id
    <-  gatherv (SCALAR) locally owned values
    """
    channel = session.channel
    ivec = channel.bcast(HANDLE_DTYPE)
    vector = session.registry.resolve(Kind.VECTOR, ivec)
    channel.gatherv(vector.local_values(), SCALAR_DTYPE)


def new_map(session: Session) -> None:
    """
     -> bcast (SIZE) map size
     -> scatter (SIZE) number of items
     -> scatterv (GLOBAL) items
    <-  gather (HANDLE) map id
    """
    channel, registry = session.channel, session.registry
    size = channel.bcast(SIZE_DTYPE)
    ndofs = channel.scatter(SIZE_DTYPE)
    session.log.debug("creating map #%d with %d/%d items", registry.next_handle(Kind.MAP), ndofs, size)
    element_ids = channel.scatterv(ndofs, GLOBAL_DTYPE)
    imap = registry.allocate(Kind.MAP, session.backend.create_map(size, element_ids))
    channel.gather(imap, HANDLE_DTYPE)


def new_graph(session: Session) -> None:
    """
     -> bcast (HANDLE) map id
     -> scatterv (SIZE) number of columns per owned row
     -> scatterv (GLOBAL) columns, concatenated in row order
    <-  gather (HANDLE) graph id
    """
    channel, registry = session.channel, session.registry
    imap = channel.bcast(HANDLE_DTYPE)
    index_space = registry.resolve(Kind.MAP, imap)

    nrows = index_space.num_local
    session.log.debug("creating graph #%d from map #%d with %d rows", registry.next_handle(Kind.GRAPH), imap, nrows)
    numcols = channel.scatterv(nrows, SIZE_DTYPE)
    items = channel.scatterv(int(numcols.sum()), GLOBAL_DTYPE)

    graph = session.backend.create_graph(index_space, numcols)
    offset = 0
    for row, ncols in zip(index_space.global_ids, numcols):
        graph.insert_global_indices(int(row), items[offset:offset + ncols])
        offset += int(ncols)
    graph.fill_complete()

    igraph = registry.allocate(Kind.GRAPH, graph)
    channel.gather(igraph, HANDLE_DTYPE)


HANDLERS: Dict[Command, Callable[["Session"], None]] = {
    Command.NEW_MATRIX: new_matrix,
    Command.NEW_VECTOR: new_vector,
    Command.ADD_EVEC: add_evec,
    Command.GET_VECTOR: get_vector,
    Command.NEW_MAP: new_map,
    Command.NEW_GRAPH: new_graph,
}
