"""Example of driving a two-worker group in-process and reading a vector back."""

from libmatrix import Controller, assemble, block_partition, configure_worker
from libmatrix.local import LocalGroup


def tridiagonal_rows(ids, n):
    return [[j for j in (i - 1, i, i + 1) if 0 <= j < n] for i in ids]


def main():
    cfg = configure_worker(debug=False, timeout_s=5.0)
    group = LocalGroup.from_config(2, cfg).start()
    ctl = Controller(group.controller)

    parts = block_partition(4, ctl.size)
    imap = ctl.new_map(4, parts)
    ivec = ctl.new_vector(imap)
    ctl.add_evec(0, ivec, [0], [5.0])
    ctl.add_evec(1, ivec, [2], [7.0])

    rows = [tridiagonal_rows(part, 4) for part in parts]
    igraph = ctl.new_graph(imap, rows)
    imat = ctl.new_matrix(igraph)

    print(assemble(ctl.get_vector(ivec), parts, 4))
    print(f"map #{imap}, vector #{ivec}, graph #{igraph}, matrix #{imat}")
    ctl.quit()
    group.join()


if __name__ == "__main__":
    main()
