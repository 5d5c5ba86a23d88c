"""Command codes and wire types shared by the controller and the workers."""

import enum
from typing import List

import numpy as np


class Command(enum.IntEnum):
    NEW_MATRIX = 0
    NEW_VECTOR = 1
    ADD_EVEC = 2
    GET_VECTOR = 3
    NEW_MAP = 4
    NEW_GRAPH = 5


# any code outside the command table ends the session
QUIT = 255

COMMAND_DTYPE = np.dtype(np.uint8)
LOCAL_DTYPE = np.dtype(np.int32)
GLOBAL_DTYPE = np.dtype(np.int64)
SIZE_DTYPE = np.dtype(np.int32)
HANDLE_DTYPE = np.dtype(np.int32)
SCALAR_DTYPE = np.dtype(np.float64)

# point-to-point tag used for every add_evec payload
P2P_TAG = 0

WIRE_TYPES = (
    ("local", LOCAL_DTYPE),
    ("global", GLOBAL_DTYPE),
    ("size", SIZE_DTYPE),
    ("handle", HANDLE_DTYPE),
    ("scalar", SCALAR_DTYPE),
)


def is_command(code: int) -> bool:
    return 0 <= code < len(Command)


def describe() -> List[str]:
    tokens = ", ".join(command.name.lower() for command in Command)
    lines = [f"token: enum({tokens})"]
    for name, dtype in WIRE_TYPES:
        kind = "float" if dtype.kind == "f" else "int"
        lines.append(f"{name}: {kind}{dtype.itemsize * 8}")
    return lines
