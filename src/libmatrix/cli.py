"""Command line entry: ``libmatrix info|eventloop``."""

from __future__ import annotations

import os
import sys
from typing import List, Optional

from .protocol import describe
from .worker import worker_main


def _prog(argv: List[str]) -> str:
    if not argv or os.path.basename(argv[0]) == "__main__.py":
        return "libmatrix"
    return argv[0]


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv if argv is None else argv
    if len(argv) == 2 and argv[1] == "info":
        for line in describe():
            print(line)
        return 0
    if len(argv) == 2 and argv[1] == "eventloop":
        worker_main()
        return 0
    print(f"syntax: {_prog(argv)} info|eventloop")
    return 1
