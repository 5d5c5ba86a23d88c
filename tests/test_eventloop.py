"""Worker groups driven end to end through the in-process channel."""

import logging

import numpy as np
import pytest

from libmatrix.backend import NotOwnedError
from libmatrix.config import WorkerConfig
from libmatrix.controller import Controller, assemble, block_partition
from libmatrix.local import DEFAULT_TIMEOUT_S, LocalGroup
from libmatrix.protocol import COMMAND_DTYPE, HANDLE_DTYPE, SIZE_DTYPE, Command
from libmatrix.registry import InvalidHandle, Kind
from libmatrix.transport import GroupDeadlock, ProtocolDesync


@pytest.fixture
def group():
    return LocalGroup(2, timeout=2.0).start()


@pytest.fixture
def ctl(group):
    return Controller(group.controller)


def test_two_worker_scenario(group, ctl):
    parts = [[0, 1], [2, 3]]
    imap = ctl.new_map(4, parts)
    assert imap == 0
    ivec = ctl.new_vector(imap)
    assert ivec == 0
    ctl.add_evec(0, ivec, [0], [5.0])
    ctl.add_evec(1, ivec, [2], [7.0])
    fragments = ctl.get_vector(ivec)
    np.testing.assert_array_equal(fragments[0], [5.0, 0.0])
    np.testing.assert_array_equal(fragments[1], [7.0, 0.0])
    np.testing.assert_array_equal(assemble(fragments, parts, 4), [5.0, 0.0, 7.0, 0.0])
    ctl.quit()
    group.join()


def test_handles_count_up_per_kind(group, ctl):
    parts = block_partition(6, 2)
    assert [ctl.new_map(6, parts) for _ in range(3)] == [0, 1, 2]
    assert [ctl.new_vector(1) for _ in range(2)] == [0, 1]
    assert ctl.new_map(6, parts) == 3
    ctl.quit()
    group.join()
    for session in group.sessions:
        assert session.registry.count(Kind.MAP) == 4
        assert session.registry.count(Kind.VECTOR) == 2


def test_map_partition_reaches_each_worker(group, ctl):
    parts = [[3, 0], [1, 2, 4]]
    imap = ctl.new_map(5, parts)
    ctl.quit()
    group.join()
    owned = [s.registry.resolve(Kind.MAP, imap).global_ids for s in group.sessions]
    np.testing.assert_array_equal(owned[0], [3, 0])
    np.testing.assert_array_equal(owned[1], [1, 2, 4])
    assert all(s.registry.resolve(Kind.MAP, imap).size == 5 for s in group.sessions)
    assert sorted(np.concatenate(owned).tolist()) == list(range(5))


def test_accumulate_only_touches_target_worker(group, ctl):
    parts = [[0, 1], [2, 3]]
    ivec = ctl.new_vector(ctl.new_map(4, parts))
    ctl.add_evec(1, ivec, [3, 2, 3], [1.0, 2.0, 4.0])
    fragments = ctl.get_vector(ivec)
    np.testing.assert_array_equal(fragments[0], [0.0, 0.0])
    np.testing.assert_array_equal(fragments[1], [2.0, 5.0])
    ctl.add_evec(0, ivec, [], [])
    np.testing.assert_array_equal(assemble(ctl.get_vector(ivec), parts, 4), [0.0, 0.0, 2.0, 5.0])
    ctl.quit()
    group.join()


def test_graph_rows_follow_map_order(group, ctl):
    imap = ctl.new_map(4, [[3, 0], [1, 2]])
    rows = [
        [[3, 2], [0]],
        [[0, 1, 2], []],
    ]
    igraph = ctl.new_graph(imap, rows)
    assert igraph == 0
    imat = ctl.new_matrix(igraph)
    assert imat == 0
    assert ctl.new_matrix(igraph) == 1
    ctl.quit()
    group.join()

    first, second = group.sessions
    graph = first.registry.resolve(Kind.GRAPH, igraph)
    assert graph.is_filled
    np.testing.assert_array_equal(graph.row(3), [2, 3])
    np.testing.assert_array_equal(graph.row(0), [0])
    other = second.registry.resolve(Kind.GRAPH, igraph)
    np.testing.assert_array_equal(other.row(1), [0, 1, 2])
    assert other.row(2).size == 0
    assert second.registry.resolve(Kind.MATRIX, imat).nnz == 3
    assert first.registry.resolve(Kind.MATRIX, 1).graph is graph


def test_quit_code_ends_every_worker(group, ctl):
    ctl.new_vector(ctl.new_map(2, [[0], [1]]))
    ctl.quit(len(Command))
    group.join()
    assert all(channel.closed for channel in group.channels)
    assert group.errors == []


def test_quit_rejects_command_codes(group, ctl):
    with pytest.raises(ValueError):
        ctl.quit(int(Command.NEW_MAP))
    ctl.quit()
    group.join()


def test_invalid_handle_is_fatal_for_workers():
    group = LocalGroup(2, timeout=0.5).start()
    ctl = Controller(group.controller)
    with pytest.raises(GroupDeadlock):
        ctl.new_vector(3)
    with pytest.raises(InvalidHandle):
        group.join()


def test_accumulate_into_foreign_index_is_fatal():
    group = LocalGroup(2, timeout=0.5).start()
    ctl = Controller(group.controller)
    ivec = ctl.new_vector(ctl.new_map(4, [[0, 1], [2, 3]]))
    ctl.add_evec(0, ivec, [2], [1.0])
    with pytest.raises(NotOwnedError):
        group.join()
    assert group.errors[0][0] == 0


def test_mismatched_collective_is_desync():
    group = LocalGroup(2, timeout=0.5).start()
    group.controller.bcast(int(Command.NEW_MAP), COMMAND_DTYPE)
    group.controller.scatter([4, 4], SIZE_DTYPE)
    with pytest.raises(ProtocolDesync):
        group.join()


def test_wrong_row_count_is_desync():
    group = LocalGroup(2, timeout=0.5).start()
    ctl = Controller(group.controller)
    imap = ctl.new_map(4, [[0, 1], [2, 3]])
    with pytest.raises(GroupDeadlock):
        ctl.new_graph(imap, [[[0], [1], [2]], [[2], [3]]])
    with pytest.raises(ProtocolDesync):
        group.join()


def test_silent_controller_deadlocks_group():
    group = LocalGroup(2, timeout=0.2).start()
    group.controller.bcast(int(Command.NEW_VECTOR), COMMAND_DTYPE)
    with pytest.raises(GroupDeadlock):
        group.join(timeout=2.0)


def test_controller_gather_times_out_without_workers():
    group = LocalGroup(3, timeout=0.1)
    with pytest.raises(GroupDeadlock):
        group.controller.gather(HANDLE_DTYPE)


def test_debug_log_is_rank_prefixed(caplog, group, ctl):
    caplog.set_level(logging.DEBUG, logger="libmatrix")
    ctl.new_map(4, [[0, 1], [2, 3]])
    ctl.quit()
    group.join()
    assert "[0/2] creating map #0 with 2/4 items" in caplog.messages
    assert "[1/2] quit" in caplog.messages


def test_group_timeout_from_config():
    assert LocalGroup.from_config(2, WorkerConfig(timeout_s=0.25)).timeout == 0.25
    assert LocalGroup.from_config(2, WorkerConfig()).timeout is None
    assert LocalGroup(2).timeout == DEFAULT_TIMEOUT_S


def test_group_starts_once(group, ctl):
    with pytest.raises(RuntimeError):
        group.start()
    ctl.quit()
    group.join()


def test_new_map_requires_complete_partition(group, ctl):
    with pytest.raises(ValueError):
        ctl.new_map(5, [[0, 1], [2, 3]])
    with pytest.raises(ValueError):
        ctl.new_map(4, [[0, 1, 2], [2]])
    assert ctl.new_map(4, [[0, 1], [2, 3]]) == 0
    ctl.quit()
    group.join()
    assert all(s.registry.count(Kind.MAP) == 1 for s in group.sessions)
